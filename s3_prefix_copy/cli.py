from __future__ import annotations

import logging
import sys
import time
from typing import Any

import click

from .copier import S3Copier
from .errors import S3CopyError
from .settings import load_settings_from_env

LOG = logging.getLogger("s3_prefix_copy.cli")


@click.command(name="s3-prefix-copy")
@click.argument("source_bucket")
@click.argument("dest_bucket")
@click.argument("prefix", default="")
@click.option("--endpoint", default=None, help="S3 endpoint URL (default: AWS).")
@click.option("--region", default=None, help="Region name for the S3 client.")
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=None,
    help="Number of objects copied concurrently.",
)
@click.option(
    "--part-size",
    type=click.IntRange(min=1),
    default=None,
    help="Byte size of each part for multipart copies.",
)
@click.option(
    "--abort-on-failure/--no-abort-on-failure",
    default=None,
    help="Abort multipart uploads left behind by a failed copy.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
)
def main(
    source_bucket: str,
    dest_bucket: str,
    prefix: str,
    endpoint: str | None,
    region: str | None,
    workers: int | None,
    part_size: int | None,
    abort_on_failure: bool | None,
    log_level: str,
) -> None:
    """Copy every object under PREFIX from SOURCE_BUCKET to DEST_BUCKET."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, Any] = {
        "endpoint": endpoint,
        "region": region,
        "worker_count": workers,
        "part_size": part_size,
        "abort_on_failure": abort_on_failure,
    }
    settings = load_settings_from_env().model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )
    LOG.debug(
        "settings: %s",
        settings.model_dump(exclude={"access_key", "secret_key", "session_token"}),
    )
    copier = S3Copier(settings)

    started = time.monotonic()
    try:
        accounting = copier.copy_with_prefix_sync(source_bucket, dest_bucket, prefix)
    except S3CopyError as error:
        click.echo(f"copy failed: {error}", err=True)
        sys.exit(1)
    duration = time.monotonic() - started
    click.echo(f"copied {accounting.completed} objects in {duration:.2f}s")
