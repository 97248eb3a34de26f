"""Main CLI interface for autocommit."""

import logging
from typing import Callable, Optional

import click
from rich.console import Console
from rich.markup import escape

from autocommit import __version__
from autocommit.config import Settings, configure_logging, load_settings
from autocommit.core.message import MessageGenerator
from autocommit.core.pipeline import CommitPipeline
from autocommit.core.registry import ScheduleRegistry, ScheduleStore
from autocommit.core.repository import canonical_path
from autocommit.core.run_log import RunLog
from autocommit.core.triggers import CrontabTrigger, Trigger
from autocommit.errors import (
    AlreadyExistsError,
    AutocommitError,
    NotFoundError,
    RegistryError,
    ValidationError,
)
from autocommit.models import PipelineState

console = Console()
logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_USAGE = 2


class AppContext:
    """Settings and collaborators shared by every command."""

    def __init__(
        self,
        settings: Settings,
        trigger_factory: Optional[Callable[[Settings], Trigger]] = None,
        pipeline_factory: Optional[Callable[[Settings], CommitPipeline]] = None,
    ):
        self.settings = settings
        self.trigger_factory = trigger_factory or _crontab_trigger
        self.pipeline_factory = pipeline_factory or _default_pipeline

    def registry(self) -> ScheduleRegistry:
        return ScheduleRegistry(
            ScheduleStore(self.settings.registry_file),
            self.trigger_factory(self.settings),
        )

    def pipeline(self) -> CommitPipeline:
        return self.pipeline_factory(self.settings)


def _crontab_trigger(settings: Settings) -> Trigger:
    # Scheduled runs need the credential to summarize
    environment = {"OPENAI_API_KEY": settings.api_key} if settings.api_key else {}
    return CrontabTrigger(environment=environment)


def _default_pipeline(settings: Settings) -> CommitPipeline:
    return CommitPipeline(generator=MessageGenerator.from_settings(settings))


def _fail(ctx: click.Context, message: str, code: int = EXIT_FAILURE) -> None:
    console.print(f"[red]{escape(message)}[/red]", soft_wrap=True)
    ctx.exit(code)


def _report_registry_error(ctx: click.Context, error: AutocommitError) -> None:
    if isinstance(error, ValidationError):
        _fail(ctx, f"Invalid input: {error}", EXIT_USAGE)
    elif isinstance(error, AlreadyExistsError):
        _fail(ctx, f"Already exists: {error}")
    elif isinstance(error, NotFoundError):
        _fail(ctx, f"Not found: {error}")
    else:
        _fail(ctx, f"Registry error: {error}")


@click.group()
@click.version_option(__version__, prog_name="autocommit")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """Autocommit - commit uncommitted changes on a schedule."""
    if ctx.obj is None:
        try:
            ctx.obj = AppContext(load_settings())
        except ValidationError as e:
            _fail(ctx, str(e), EXIT_USAGE)
    configure_logging("DEBUG" if verbose else ctx.obj.settings.log_level)


@main.command()
@click.option("--path", "-p", required=True, type=click.Path(), help="Path to the git repo")
@click.pass_obj
def run(app: AppContext, path: str):
    """Commit pending changes in a repository once."""
    ctx = click.get_current_context()
    root = canonical_path(path)
    logger.info("Running %s", root)

    result = app.pipeline().run(root, app.settings.api_key)

    if result.state == PipelineState.NOOP:
        console.print("No changes detected.")
    elif result.state == PipelineState.DONE:
        source = "summarized" if result.summarized else "timestamp"
        console.print(
            f"[green]Committed[/green] {result.commit.hexsha[:8]} "
            f"({source}): {escape(result.message)}",
            soft_wrap=True,
        )
    else:
        _fail(ctx, f"Run failed while {result.failed_stage.value}: {result.error}")


@main.command()
@click.option(
    "--frequency", "-f", required=True, type=int, help="Minutes between autocommits"
)
@click.option("--path", "-p", required=True, type=click.Path(), help="Path to the git repo")
@click.pass_obj
def create(app: AppContext, frequency: int, path: str):
    """Schedule automatic commits for a repository."""
    ctx = click.get_current_context()
    try:
        with app.registry() as registry:
            entry = registry.create(path, frequency)
    except AutocommitError as e:
        _report_registry_error(ctx, e)
        return

    console.print(
        f"[green]Scheduled[/green] {escape(str(entry.repository_path))} "
        f"every {entry.frequency_minutes} minutes",
        soft_wrap=True,
    )


@main.command(name="list")
@click.pass_obj
def list_schedules(app: AppContext):
    """List configured autocommits."""
    ctx = click.get_current_context()
    try:
        with app.registry() as registry:
            entries = registry.list()
            drift = registry.drift()
    except RegistryError as e:
        _report_registry_error(ctx, e)
        return

    if not entries:
        console.print("[yellow]No autocommits configured[/yellow]")
    else:
        for entry in entries:
            console.print(
                f"{escape(str(entry.repository_path))}  every {entry.frequency_minutes} minutes",
                soft_wrap=True,
                highlight=False,
            )

    for path in drift.missing_triggers:
        console.print(
            f"[yellow]Warning: no trigger installed for {escape(str(path))}; "
            "run 'autocommit repair'[/yellow]",
            soft_wrap=True,
        )
    for path in drift.orphan_triggers:
        console.print(
            f"[yellow]Warning: trigger without schedule for {escape(str(path))}; "
            "run 'autocommit repair'[/yellow]",
            soft_wrap=True,
        )


@main.command()
@click.option("--path", "-p", required=True, type=click.Path(), help="Path of autocommit repo to delete")
@click.pass_obj
def delete(app: AppContext, path: str):
    """Remove the autocommit for a repository."""
    ctx = click.get_current_context()
    try:
        with app.registry() as registry:
            entry = registry.delete(path)
    except AutocommitError as e:
        _report_registry_error(ctx, e)
        return

    if entry is None:
        console.print(
            f"[yellow]Removed orphaned trigger for {escape(str(canonical_path(path)))}[/yellow]",
            soft_wrap=True,
        )
    else:
        console.print(
            f"[green]Deleted[/green] {escape(str(entry.repository_path))}", soft_wrap=True
        )


@main.command()
@click.pass_obj
def repair(app: AppContext):
    """Make installed triggers match the configured autocommits."""
    ctx = click.get_current_context()
    try:
        with app.registry() as registry:
            drift = registry.repair()
    except AutocommitError as e:
        _report_registry_error(ctx, e)
        return

    if drift.consistent:
        console.print("Nothing to repair.")
        return
    for path in drift.missing_triggers:
        console.print(f"Reinstalled trigger for {escape(str(path))}", soft_wrap=True)
    for path in drift.orphan_triggers:
        console.print(f"Removed orphaned trigger for {escape(str(path))}", soft_wrap=True)


@main.command()
@click.option("--path", "-p", required=True, type=click.Path(), help="Path to the git repo")
@click.option("--limit", default=10, help="Number of runs to show")
def log(path: str, limit: int):
    """Show recent runs recorded for a repository."""
    lines = RunLog.for_repository(canonical_path(path)).tail(limit)
    if not lines:
        console.print("[yellow]No runs recorded[/yellow]")
        return
    for line in lines:
        console.print(escape(line), soft_wrap=True, highlight=False)


if __name__ == "__main__":
    main()
