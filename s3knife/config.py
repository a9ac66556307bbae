from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from s3knife.errors import ConfigError
from s3knife.filters import PathFilter


CONFIG_FILENAME = ".s3knife.json"
CONFIG_ENV_VAR = "S3KNIFE_CONFIG"
DEFAULT_REGION = "us-east-1"
DEFAULT_PARALLEL = 32
DEFAULT_QUEUE_SIZE = 1000

VALID_ACLS = (
    "private",
    "public-read",
    "public-read-write",
    "authenticated-read",
    "bucket-owner-read",
    "bucket-owner-full-control",
    "log-delivery-write",
)

MIN_ARGS = {
    "cat": 1,
    "get": 1,
    "grep": 2,
    "ls": 0,
    "mb": 1,
    "put": 2,
    "rb": 1,
    "rm": 1,
    "sync": 2,
}


@dataclass(slots=True)
class KnifeConfig:
    region: str | None = None
    endpoint_url: str | None = None
    profile: str | None = None
    parallel: int | None = None
    acl: str | None = None


@dataclass(slots=True)
class RunOptions:
    parallel: int = DEFAULT_PARALLEL
    queue_size: int = DEFAULT_QUEUE_SIZE
    dry_run: bool = False
    quiet: bool = False
    ignore_errors: bool = False
    delete_extraneous: bool = False
    acl: str | None = None
    ignore_case: bool = False
    files_with_matches: bool = False
    with_filename: bool = True
    path_filter: PathFilter = field(default_factory=PathFilter)


def config_path() -> Path:
    override = os.getenv(CONFIG_ENV_VAR, "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / CONFIG_FILENAME


def load_config(path: Path | None = None) -> KnifeConfig:
    """Load defaults from the JSON config file; a missing file yields defaults."""
    path = path or config_path()
    if not path.exists():
        return KnifeConfig()

    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Unreadable config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    parallel = data.get("parallel")
    if parallel is not None and not isinstance(parallel, int):
        raise ConfigError(f"`parallel` in {path} must be an integer")

    return KnifeConfig(
        region=data.get("region") or None,
        endpoint_url=data.get("endpoint_url") or None,
        profile=data.get("profile") or None,
        parallel=parallel,
        acl=data.get("acl") or None,
    )


def resolve_region(flag_value: str | None, config: KnifeConfig | None = None) -> str:
    for value in (
        flag_value,
        os.getenv("AWS_DEFAULT_REGION"),
        os.getenv("EC2_REGION"),
        config.region if config else None,
    ):
        if value and value.strip():
            return value.strip()
    return DEFAULT_REGION


def resolve_endpoint_url(flag_value: str | None, config: KnifeConfig | None = None) -> str | None:
    for value in (flag_value, os.getenv("S3_ENDPOINT_URL"), config.endpoint_url if config else None):
        if value and value.strip():
            return value.strip()
    return None


def normalize_acl(acl: str | None, *, public: bool = False) -> str | None:
    if public:
        acl = "public-read"
    if not acl:
        return None
    value = acl.strip().lower()
    if value not in VALID_ACLS:
        raise ConfigError(f"--acl should be one of: {', '.join(VALID_ACLS)}")
    return value


def check_min_args(command: str, args: list[str] | tuple[str, ...]) -> None:
    required = MIN_ARGS[command]
    if len(args) < required:
        raise ConfigError(
            f"`{command}` needs at least {required} argument(s), got {len(args)}"
        )
    if command == "sync" and len(args) != 2:
        raise ConfigError("`sync` takes exactly one source and one destination")


def build_run_options(
    *,
    config: KnifeConfig | None = None,
    parallel: int | None = None,
    dry_run: bool = False,
    quiet: bool = False,
    ignore_errors: bool = False,
    delete_extraneous: bool = False,
    acl: str | None = None,
    public: bool = False,
    ignore_case: bool = False,
    files_with_matches: bool = False,
    with_filename: bool = True,
    path_filter: PathFilter | None = None,
) -> RunOptions:
    config = config or KnifeConfig()
    if parallel is None:
        parallel = config.parallel if config.parallel is not None else DEFAULT_PARALLEL
    if parallel < 1:
        raise ConfigError("--parallel must be at least 1")

    return RunOptions(
        parallel=parallel,
        dry_run=dry_run,
        quiet=quiet,
        ignore_errors=ignore_errors,
        delete_extraneous=delete_extraneous,
        acl=normalize_acl(acl or config.acl, public=public),
        ignore_case=ignore_case,
        files_with_matches=files_with_matches,
        with_filename=with_filename,
        path_filter=path_filter or PathFilter(),
    )
