"""CLI entrypoint for xpcshell-timings."""

import logging
from pathlib import Path

import rich_click as click

from xpcshell_timings import __version__
from xpcshell_timings.config import WORKER_BACKENDS
from xpcshell_timings.controllers import FetchCommand, IndexCommand, TimingsCliController
from xpcshell_timings.pool.coordinator import WorkerPoolError

click.rich_click.USE_MARKDOWN = True
TIMINGS_CONTROLLER = TimingsCliController()


@click.group()
@click.version_option(version=__version__, prog_name="xpcshell-timings")
def xpcshell_timings() -> None:
    """xpcshell test timings CLI."""


@xpcshell_timings.command("fetch")
@click.option(
    "--days",
    type=click.IntRange(min=1, max=30),
    default=3,
    show_default=True,
    help="How many past days (ending yesterday) to process.",
)
@click.option(
    "--try",
    "try_revision",
    default=None,
    help="Process the xpcshell jobs of a single try push revision instead of dates.",
)
@click.option(
    "--force/--no-force",
    default=False,
    show_default=True,
    help="Rebuild datasets that already exist in the output directory.",
)
@click.option(
    "--debug/--no-debug",
    default=False,
    show_default=True,
    help="Only process yesterday, write indented JSON, and log debug output.",
)
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=None,
    help="Worker count. Defaults to XPCSHELL_TIMINGS_WORKERS or half the CPUs.",
)
@click.option(
    "--backend",
    type=click.Choice(sorted(WORKER_BACKENDS)),
    default=None,
    help="Run workers as processes or threads.",
)
@click.option("--output-dir", type=click.Path(path_type=Path), default=None, help="Dataset dir.")
@click.option("--cache-dir", type=click.Path(path_type=Path), default=None, help="Profile cache.")
def fetch(  # noqa: PLR0913
    days: int,
    try_revision: str | None,
    force: bool,
    debug: bool,
    workers: int | None,
    backend: str | None,
    output_dir: Path | None,
    cache_dir: Path | None,
) -> None:
    """Fetch resource profiles and build the compact test timings dataset."""

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        TIMINGS_CONTROLLER.fetch(
            FetchCommand(
                days=days,
                try_revision=try_revision,
                force=force,
                debug=debug,
                workers=workers,
                backend=backend,
                output_dir=output_dir,
                cache_dir=cache_dir,
            ),
            emit=click.echo,
        )
    except (WorkerPoolError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc


@xpcshell_timings.command("index")
@click.option("--output-dir", type=click.Path(path_type=Path), default=None, help="Dataset dir.")
def index(output_dir: Path | None) -> None:
    """Rebuild index.json from the datasets in the output directory."""

    _emit_lines(TIMINGS_CONTROLLER.rebuild_index(IndexCommand(output_dir=output_dir)))


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    xpcshell_timings()
