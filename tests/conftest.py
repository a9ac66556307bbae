from __future__ import annotations

import io

import pytest
from rich.console import Console
from typer.testing import CliRunner

from fakes import FakeS3
from s3knife.cli import AppState, app
from s3knife.client import ClientFactory
from s3knife.commands import CommandContext
from s3knife.config import KnifeConfig, build_run_options
from s3knife.output import Reporter


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    for name in ("AWS_DEFAULT_REGION", "EC2_REGION", "S3_ENDPOINT_URL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("S3KNIFE_CONFIG", str(tmp_path / "no-such-config.json"))


@pytest.fixture
def fake_s3() -> FakeS3:
    return FakeS3()


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def invoke(runner, fake_s3):
    """Run the CLI against the in-memory object store."""

    def _invoke(*args: str):
        state = AppState(config=KnifeConfig(), client=fake_s3)
        return runner.invoke(app, list(args), obj=state)

    return _invoke


@pytest.fixture
def command_context(fake_s3):
    """Build a CommandContext whose output lands in a StringIO."""

    def _build(**option_values) -> tuple[CommandContext, io.StringIO]:
        buffer = io.StringIO()
        console = Console(file=buffer, highlight=False, soft_wrap=True, color_system=None)
        options = build_run_options(**option_values)
        reporter = Reporter(console, quiet=options.quiet, dry_run=options.dry_run)
        factory = ClientFactory(config=KnifeConfig(), client=fake_s3)
        return CommandContext(options, reporter, factory, region=factory.region), buffer

    return _build
