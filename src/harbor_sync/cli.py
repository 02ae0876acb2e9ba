"""Command-line interface for the harbor-sync tool."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
from dotenv import load_dotenv
from rich.logging import RichHandler

from harbor_sync.config import AppConfig, Config, StorageConfig, load_settings
from harbor_sync.exceptions import HarborSyncError
from harbor_sync.signals import GracefulShutdown

logger: logging.Logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    """Configure rich-based logging for the application."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # Silence noisy loggers
    for logger_name in ["botocore", "aiobotocore", "urllib3"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


async def main_async(config: Config) -> None:
    """
    Asynchronously execute the sync pipeline.

    Args:
        config (Config): The application configuration.
    """
    # Lazily import to keep CLI start-up fast
    from harbor_sync.pipeline import HarborSyncPipeline

    async with GracefulShutdown() as shutdown_event:
        await HarborSyncPipeline(config, shutdown_event).run()


@click.command(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML settings file.",
)
@click.option(
    "--public-path",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Local directory the object keys are relative to.  [default: public]",
)
@click.option(
    "--prefix",
    default=None,
    help="Assets prefix, locally and in the bucket.  [default: assets]",
)
@click.option(
    "--gzip/--no-gzip",
    "gzip_compression",
    default=None,
    help="Upload smaller .gz siblings in place of the originals.",
)
@click.option(
    "--concurrent/--sequential",
    "concurrent_uploads",
    default=None,
    help="Upload files concurrently.",
)
@click.option(
    "--max-threads",
    type=int,
    default=None,
    help="Maximum number of concurrent uploads.  [default: 10]",
)
@click.option(
    "--existing-remote-files",
    "remote_files_mode",
    type=click.Choice(["compare", "ignore", "keep"], case_sensitive=False),
    default=None,
    help="Compare with, ignore, or keep (never delete) existing remote files.",
)
@click.option(
    "--cache-file",
    "cache_file_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Local remote-file-list cache.",
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Set the logging level.",
    show_default=True,
)
def cli(config_path: Optional[Path], log_level: str, **overrides: Any) -> None:
    """
    Sync compiled static assets to an S3-compatible bucket.

    Uploads local files the bucket does not have yet, skips fingerprinted
    files that are already there, and deletes stale remote files.

    Credentials and the bucket must be set via HARBOR_* environment
    variables; sync behaviour is read from the --config file and flags.
    """
    load_dotenv()
    setup_logging(log_level)

    try:
        settings: Dict[str, Any] = load_settings(config_path)
        app_config: AppConfig = AppConfig.from_mapping(settings, **overrides)
        config: Config = Config(storage=StorageConfig.from_env(), app=app_config)

        asyncio.run(main_async(config))
        logger.info("✅ Sync completed successfully.")
    except HarborSyncError as e:
        logger.critical(f"A critical application error occurred: {e}")
        sys.exit(1)
    except Exception:
        logger.critical(
            "An unexpected error caused the application to fail:", exc_info=True
        )
        sys.exit(1)


if __name__ == "__main__":
    cli()
