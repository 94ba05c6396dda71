from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

import typer

from roamsync.core.checkpoint import CheckpointStore
from roamsync.core.settings import Settings
from roamsync.core.sync_job import run_sync
from roamsync.providers.readwise import ReadwiseClient, ReadwiseError

app = typer.Typer(help="Sync Readwise Reader highlights into org-roam.")
checkpoint_app = typer.Typer(help="Inspect or reset the incremental sync watermark.")
app.add_typer(checkpoint_app, name="checkpoint")

ConfigOption = typer.Option(None, "--config", "-c", help="TOML config file (default ~/.config/roamsync/config.toml).")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.command()
def sync(
    config: Path | None = ConfigOption,
    full: bool = typer.Option(False, "--full", help="Ignore the watermark and fetch everything."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Plan only; write no files and no checkpoint."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Fetch new documents and highlights, then create or update org files."""
    _setup_logging(verbose)
    settings = Settings.load(config)
    if not settings.readwise_token:
        typer.echo("READWISE_API_KEY is not set", err=True)
        raise typer.Exit(code=2)

    try:
        with ReadwiseClient(settings.readwise_token) as client:
            job = run_sync(settings, client, full=full, dry_run=dry_run)
    except ReadwiseError as e:
        typer.echo(f"sync failed: {e}", err=True)
        raise typer.Exit(code=1)
    except sqlite3.Error as e:
        typer.echo(f"sync failed: cannot read org-roam database {settings.org_roam_db_path}: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo(json.dumps(job.to_dict(), indent=2))
    if job.items_failed:
        raise typer.Exit(code=1)


@checkpoint_app.command("show")
def checkpoint_show(config: Path | None = ConfigOption) -> None:
    """Print the stored watermark."""
    settings = Settings.load(config)
    watermark = CheckpointStore(settings.updated_after_file_path).read_watermark()
    typer.echo(watermark.isoformat() if watermark else "none (next sync is a full sync)")


@checkpoint_app.command("reset")
def checkpoint_reset(config: Path | None = ConfigOption) -> None:
    """Delete the watermark so the next sync fetches everything."""
    settings = Settings.load(config)
    if CheckpointStore(settings.updated_after_file_path).reset():
        typer.echo(f"removed {settings.updated_after_file_path}")
    else:
        typer.echo("no checkpoint to remove")


if __name__ == "__main__":
    app()
