"""CLI commands for bilde."""

import asyncio
import json
import logging
import mimetypes
import os
import signal
import sys
from pathlib import Path

import click

from bilde.errors import BildeError


def _setup(log_level: str):
    from bilde.config import get_settings
    from bilde.lib import observability

    settings = get_settings()
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    observability.configure(settings)
    return settings


async def _with_imaging(settings, fn):
    from bilde.context import create_imaging

    imaging = await create_imaging(settings)
    try:
        return await fn(imaging)
    finally:
        await imaging.close()


def _run(settings, fn):
    try:
        return asyncio.run(_with_imaging(settings, fn))
    except BildeError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(package_name="bilde")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level (defaults to the configured one)",
)
@click.pass_context
def cli(ctx, log_level):
    """bilde - store images and serve cached variants."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--content-type", default=None, help="Content type (guessed from the name if omitted)")
@click.option("--name", "file_name", default=None, help="File name to record (defaults to the path's name)")
@click.pass_context
def ingest(ctx, path, content_type, file_name):
    """Upload an image and queue its precomputed versions."""
    settings = _setup(ctx.obj["log_level"])
    file_name = file_name or path.name
    content_type = content_type or mimetypes.guess_type(file_name)[0] or "application/octet-stream"
    data = path.read_bytes()

    result = _run(settings, lambda imaging: imaging.ingest(data, content_type, file_name))
    click.echo(f"{result.identifier} {result.key}")


@cli.command()
@click.argument("key")
@click.option("--width", default=0, type=int, help="Target width (0 keeps aspect ratio)")
@click.option("--height", default=0, type=int, help="Target height (0 keeps aspect ratio)")
@click.option("--format", "fmt", default=None, help="Output format (jpeg, png, gif, ...)")
@click.option(
    "--quality", default=0, type=int, help="Encoder quality, 1-100 (0 uses the configured default)"
)
@click.option("--cache/--no-cache", default=True, help="Read and fill the variant cache")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.pass_context
def variant(ctx, key, width, height, fmt, quality, cache, output):
    """Fetch a resized variant of KEY, computing it on a cache miss."""
    settings = _setup(ctx.obj["log_level"])
    result = _run(
        settings,
        lambda imaging: imaging.get_variant(
            key, width, height, format=fmt, quality=quality, use_cache=cache
        ),
    )
    target = output or Path(result.key)
    target.write_bytes(result.data)
    state = "cached" if result.cached else "computed"
    click.echo(f"{target} {result.content_type} {len(result.data)} bytes ({state})")
    if result.cache_error is not None:
        click.echo(f"Warning: variant not cached: {result.cache_error}", err=True)


@cli.command()
@click.argument("key")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.pass_context
def get(ctx, key, output):
    """Fetch the stored bytes of KEY unchanged."""
    settings = _setup(ctx.obj["log_level"])
    result = _run(settings, lambda imaging: imaging.get(key))
    target = output or Path(result.key)
    target.write_bytes(result.data)
    click.echo(f"{target} {result.content_type} {len(result.data)} bytes")


@cli.command()
@click.option("--identifier", default=None)
@click.option("--variant", "variant_key", default=None)
@click.option("--file-name", default=None)
@click.option("--limit", default=None, type=int)
@click.pass_context
def query(ctx, identifier, variant_key, file_name, limit):
    """List index records as JSON lines."""
    settings = _setup(ctx.obj["log_level"])
    records = _run(
        settings,
        lambda imaging: imaging.query(identifier, variant_key, file_name, limit=limit),
    )
    for record in records:
        click.echo(json.dumps(record.to_dict(), default=str))


@cli.command()
@click.option("--once", is_flag=True, help="Exit when the queue is empty")
@click.pass_context
def worker(ctx, once):
    """Consume the job queue and precompute versions."""
    from bilde.worker import run_worker

    settings = _setup(ctx.obj["log_level"])

    async def consume(imaging):
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, stop.set)
        loop.add_signal_handler(signal.SIGTERM, stop.set)
        return await run_worker(imaging.context.queue, imaging.variants, stop=stop, once=once)

    processed = _run(settings, consume)
    click.echo(f"Processed {processed} jobs")


def _run_alembic(args: list[str]) -> None:
    """Build an Alembic Config programmatically and run the given command."""
    from alembic.config import CommandLine, Config

    bilde_dir = Path(__file__).parent

    alembic_ini = Path.cwd() / "alembic.ini"
    if not alembic_ini.exists():
        alembic_ini = bilde_dir / "alembic.ini"

    cfg = Config(str(alembic_ini))
    cfg.set_main_option("script_location", str(bilde_dir / "alembic"))

    # Parse and run through CommandLine for proper subcommand dispatch
    cmd = CommandLine()
    options = cmd.parser.parse_args(args)
    if not hasattr(options, "cmd"):
        cmd.parser.error("too few arguments")
    else:
        cfg.cmd_opts = options
        fn, positional, kwarg = options.cmd
        fn(
            cfg,
            *[getattr(options, k, None) for k in positional],
            **{k: getattr(options, k, None) for k in kwarg},
        )


@cli.command(
    context_settings=dict(
        ignore_unknown_options=True,
        allow_extra_args=True,
    )
)
@click.pass_context
def db(ctx):
    """Run metadata index migrations via Alembic.

    \b
    Examples:
        bilde db upgrade head    # Create or update the image_records table
        bilde db downgrade -1    # Rollback one migration
        bilde db current         # Show current revision
    """
    args = ctx.args
    if not args:
        click.echo(ctx.get_help())
        return

    os.environ.setdefault("BILDE_CONFIG", str(Path.cwd() / "app.yaml"))
    _run_alembic(args)


if __name__ == "__main__":
    cli()
