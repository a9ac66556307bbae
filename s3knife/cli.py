from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

from s3knife.client import ClientFactory
from s3knife.commands import (
    CommandContext,
    CommandResult,
    cat_keys,
    get_keys,
    grep_keys,
    list_all_buckets,
    list_keys,
    make_buckets,
    put_keys,
    remove_buckets,
    rm_keys,
    sync_files,
)
from s3knife.config import KnifeConfig, build_run_options, check_min_args, load_config
from s3knife.errors import ConfigError
from s3knife.filters import build_path_filter
from s3knife.output import Reporter


app = typer.Typer(
    help="Swiss army pen-knife for S3: list, copy, delete, search and sync buckets and local trees.",
    no_args_is_help=True,
)
err_console = Console(stderr=True, highlight=False)

EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


@dataclass(slots=True)
class AppState:
    """Invocation-wide settings from the top-level callback.

    Tests pass one in as the click context object to inject a client.
    """

    config: KnifeConfig | None = None
    region: str | None = None
    endpoint_url: str | None = None
    client: Any = None
    console: Console | None = None


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    for noisy in ("botocore", "boto3", "s3transfer", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _print_error(message: str, exc: BaseException | None = None) -> None:
    text = Text(message, style="red")
    if exc is not None:
        text.append(f" {exc}")
    err_console.print(text)


def _parallel_option():
    return typer.Option(None, "-p", "--parallel", help="Number of parallel operations to run (default 32).")


def _dry_run_option():
    return typer.Option(False, "-n", "--dry-run", help="Dry-run, report actions without taking them.")


def _quiet_option():
    return typer.Option(False, "-q", "--quiet", help="Quieter (less verbose) output.")


def _ignore_errors_option():
    return typer.Option(False, "--ignore-errors", help="Report per-file errors and keep going.")


def _acl_option():
    return typer.Option(
        None,
        "--acl",
        help="Canned ACL: private, public-read, public-read-write, authenticated-read, "
        "bucket-owner-read, bucket-owner-full-control, log-delivery-write.",
    )


def _public_option():
    return typer.Option(False, "-P", "--public", help="Shortcut for --acl public-read.")


def _include_option():
    return typer.Option(None, "--include", help="Include glob pattern(s) for relative paths (repeatable).")


def _exclude_option():
    return typer.Option(None, "--exclude", help="Exclude glob pattern(s) for relative paths (repeatable).")


def _execute(
    ctx: typer.Context,
    command: str,
    args: list[str],
    run: Callable[[CommandContext], CommandResult],
    *,
    include: list[str] | None = None,
    exclude: list[str] | None = None,
    **option_values: Any,
) -> int:
    state: AppState = ctx.obj if isinstance(ctx.obj, AppState) else AppState()
    try:
        check_min_args(command, args)
        config = state.config if state.config is not None else load_config()
        options = build_run_options(
            config=config,
            path_filter=build_path_filter(include, exclude),
            **option_values,
        )
        factory = ClientFactory(
            config=config,
            region=state.region,
            endpoint_url=state.endpoint_url,
            client=state.client,
        )
        factory.max_pool_connections = max(options.parallel, 10)
        reporter = Reporter(state.console, quiet=options.quiet, dry_run=options.dry_run)
        result = run(CommandContext(options, reporter, factory, region=factory.region))
    except ConfigError as exc:
        _print_error(str(exc))
        return EXIT_USAGE
    except KeyboardInterrupt:
        _print_error(f"{command} interrupted.")
        return EXIT_INTERRUPTED
    except Exception as exc:
        _print_error(f"{command} failed:", exc)
        return 1
    return result.exit_code


@app.callback()
def main(
    ctx: typer.Context,
    region: str | None = typer.Option(
        None,
        "--region",
        help="Region; otherwise AWS_DEFAULT_REGION, EC2_REGION, the config file, or us-east-1.",
    ),
    endpoint_url: str | None = typer.Option(
        None,
        "--endpoint-url",
        help="Custom S3-compatible endpoint; otherwise S3_ENDPOINT_URL or the config file.",
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging on stderr."),
) -> None:
    """Swiss army pen-knife for S3."""
    state = ctx.obj if isinstance(ctx.obj, AppState) else AppState()
    if region:
        state.region = region
    if endpoint_url:
        state.endpoint_url = endpoint_url
    ctx.obj = state
    _configure_logging(verbose)


@app.command()
def ls(
    ctx: typer.Context,
    roots: list[str] | None = typer.Argument(None, help="Roots to list; buckets when omitted."),
    quiet: bool = _quiet_option(),
    include: list[str] | None = _include_option(),
    exclude: list[str] | None = _exclude_option(),
) -> None:
    """List buckets or keys."""
    args = list(roots or [])

    def run(command_ctx: CommandContext) -> CommandResult:
        if not args:
            return list_all_buckets(command_ctx)
        return list_keys(command_ctx, args)

    raise typer.Exit(code=_execute(ctx, "ls", args, run, include=include, exclude=exclude, quiet=quiet))


@app.command()
def get(
    ctx: typer.Context,
    roots: list[str] = typer.Argument(..., help="Roots to download into the current directory."),
    parallel: int | None = _parallel_option(),
    dry_run: bool = _dry_run_option(),
    quiet: bool = _quiet_option(),
    ignore_errors: bool = _ignore_errors_option(),
    include: list[str] | None = _include_option(),
    exclude: list[str] | None = _exclude_option(),
) -> None:
    """Download keys."""
    raise typer.Exit(
        code=_execute(
            ctx,
            "get",
            roots,
            lambda command_ctx: get_keys(command_ctx, roots),
            include=include,
            exclude=exclude,
            parallel=parallel,
            dry_run=dry_run,
            quiet=quiet,
            ignore_errors=ignore_errors,
        )
    )


@app.command()
def put(
    ctx: typer.Context,
    roots: list[str] = typer.Argument(..., help="Source root(s) followed by the destination root."),
    parallel: int | None = _parallel_option(),
    dry_run: bool = _dry_run_option(),
    quiet: bool = _quiet_option(),
    ignore_errors: bool = _ignore_errors_option(),
    acl: str | None = _acl_option(),
    public: bool = _public_option(),
    include: list[str] | None = _include_option(),
    exclude: list[str] | None = _exclude_option(),
) -> None:
    """Upload files."""
    raise typer.Exit(
        code=_execute(
            ctx,
            "put",
            roots,
            lambda command_ctx: put_keys(command_ctx, roots),
            include=include,
            exclude=exclude,
            parallel=parallel,
            dry_run=dry_run,
            quiet=quiet,
            ignore_errors=ignore_errors,
            acl=acl,
            public=public,
        )
    )


@app.command()
def cat(
    ctx: typer.Context,
    roots: list[str] = typer.Argument(..., help="Roots whose content to print."),
    parallel: int | None = _parallel_option(),
    ignore_errors: bool = _ignore_errors_option(),
    include: list[str] | None = _include_option(),
    exclude: list[str] | None = _exclude_option(),
) -> None:
    """Cat key contents (.gz keys are decompressed)."""
    raise typer.Exit(
        code=_execute(
            ctx,
            "cat",
            roots,
            lambda command_ctx: cat_keys(command_ctx, roots),
            include=include,
            exclude=exclude,
            parallel=parallel,
            ignore_errors=ignore_errors,
        )
    )


@app.command()
def grep(
    ctx: typer.Context,
    pattern: str = typer.Argument(..., help="Literal text to search for."),
    roots: list[str] = typer.Argument(..., help="Roots to search."),
    parallel: int | None = _parallel_option(),
    ignore_case: bool = typer.Option(False, "-i", "--ignore-case", help="Case-insensitive match."),
    files_with_matches: bool = typer.Option(
        False,
        "-l",
        "--files-with-matches",
        help="Print only the names of matching keys.",
    ),
    no_filename: bool = typer.Option(False, "--no-filename", help="Do not prefix matching lines with the key name."),
    ignore_errors: bool = _ignore_errors_option(),
    include: list[str] | None = _include_option(),
    exclude: list[str] | None = _exclude_option(),
) -> None:
    """Search key contents for a literal string."""
    raise typer.Exit(
        code=_execute(
            ctx,
            "grep",
            [pattern, *roots],
            lambda command_ctx: grep_keys(command_ctx, pattern, roots),
            include=include,
            exclude=exclude,
            parallel=parallel,
            ignore_case=ignore_case,
            files_with_matches=files_with_matches,
            with_filename=not no_filename,
            ignore_errors=ignore_errors,
        )
    )


@app.command()
def rm(
    ctx: typer.Context,
    roots: list[str] = typer.Argument(..., help="Roots whose keys/files to delete."),
    parallel: int | None = _parallel_option(),
    dry_run: bool = _dry_run_option(),
    quiet: bool = _quiet_option(),
    ignore_errors: bool = _ignore_errors_option(),
    include: list[str] | None = _include_option(),
    exclude: list[str] | None = _exclude_option(),
) -> None:
    """Delete keys."""
    raise typer.Exit(
        code=_execute(
            ctx,
            "rm",
            roots,
            lambda command_ctx: rm_keys(command_ctx, roots),
            include=include,
            exclude=exclude,
            parallel=parallel,
            dry_run=dry_run,
            quiet=quiet,
            ignore_errors=ignore_errors,
        )
    )


@app.command()
def mb(
    ctx: typer.Context,
    buckets: list[str] = typer.Argument(..., help="Bucket names (or s3://bucket)."),
    acl: str | None = _acl_option(),
    public: bool = _public_option(),
) -> None:
    """Create buckets."""
    raise typer.Exit(
        code=_execute(
            ctx,
            "mb",
            buckets,
            lambda command_ctx: make_buckets(command_ctx, buckets),
            acl=acl,
            public=public,
        )
    )


@app.command()
def rb(
    ctx: typer.Context,
    buckets: list[str] = typer.Argument(..., help="Bucket names (or s3://bucket)."),
) -> None:
    """Remove buckets."""
    raise typer.Exit(
        code=_execute(ctx, "rb", buckets, lambda command_ctx: remove_buckets(command_ctx, buckets))
    )


@app.command()
def sync(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="Source root."),
    destination: str = typer.Argument(..., help="Destination root."),
    parallel: int | None = _parallel_option(),
    dry_run: bool = _dry_run_option(),
    quiet: bool = _quiet_option(),
    ignore_errors: bool = _ignore_errors_option(),
    delete: bool = typer.Option(False, "--delete", help="Delete extraneous files from the destination."),
    acl: str | None = _acl_option(),
    public: bool = _public_option(),
    include: list[str] | None = _include_option(),
    exclude: list[str] | None = _exclude_option(),
) -> None:
    """Synchronise local to S3, S3 to S3 or S3 to local."""
    raise typer.Exit(
        code=_execute(
            ctx,
            "sync",
            [source, destination],
            lambda command_ctx: sync_files(command_ctx, source, destination),
            include=include,
            exclude=exclude,
            parallel=parallel,
            dry_run=dry_run,
            quiet=quiet,
            ignore_errors=ignore_errors,
            delete_extraneous=delete,
            acl=acl,
            public=public,
        )
    )
