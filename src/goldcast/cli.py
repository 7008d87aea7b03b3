"""goldcast CLI."""

import asyncio
import logging
import sys

import click

from goldcast.app import GoldcastApp


@click.group()
def cli():
    """goldcast Command Line Interface."""
    pass


@cli.command()
@click.option(
    "--config",
    type=click.Path(exists=True),
    default="config/config.yaml",
    help="Path to configuration file",
)
@click.option("--source", type=click.Choice(["treasury", "sim"]), help="Override price source")
@click.option("--dry-run", is_flag=True, help="Use the in-memory session transport")
def run(config, source, dry_run):
    """Start the broadcast bot."""
    from goldcast.config_loader import load_config_with_overrides

    try:
        cfg = load_config_with_overrides(config, dry_run=dry_run or None, source=source)
        app = GoldcastApp(config_path=config, config=cfg)
        exit_reason = asyncio.run(app.run())
    except KeyboardInterrupt:
        return
    except Exception as e:
        click.echo(f"Fatal error: {e}", err=True)
        import traceback

        traceback.print_exc()
        sys.exit(1)

    if exit_reason:
        click.echo(f"Stopped: {exit_reason}", err=True)
        sys.exit(2)


@cli.command()
@click.option(
    "--config",
    type=click.Path(exists=True),
    default="config/config.yaml",
    help="Path to configuration file",
)
def smoke_test(config):
    """Run a smoke test (initialize components and exit)."""
    try:
        app = GoldcastApp(config_path=config, dry_run=True)
        asyncio.run(app.initialize())
        click.echo("Smoke test passed: Components initialized successfully.")
    except Exception as e:
        click.echo(f"Smoke test failed: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option(
    "--config",
    type=click.Path(exists=True),
    default="config/config.yaml",
    help="Path to configuration file",
)
@click.option("--source", type=click.Choice(["treasury", "sim"]), help="Override price source")
def check_rate(config, source):
    """Fetch the rate once and print the message subscribers would get."""
    from goldcast.config_loader import load_config_with_overrides
    from goldcast.messages import FETCH_FAILED_TEXT, render_rate
    from goldcast.retry import RetryPolicy, fetch_with_retry
    from goldcast.transport.registry import get_value_source

    logging.basicConfig(level=logging.WARNING, format="%(message)s")

    cfg = load_config_with_overrides(config, source=source)
    value_source = get_value_source(cfg)
    policy = RetryPolicy(
        max_attempts=cfg.source.retry_attempts, timeout_seconds=cfg.source.timeout_seconds
    )

    async def fetch_once():
        try:
            return await fetch_with_retry(value_source, policy, purpose="check")
        finally:
            await value_source.close()

    snapshot = asyncio.run(fetch_once())
    if snapshot is None:
        click.echo(FETCH_FAILED_TEXT, err=True)
        sys.exit(1)
    click.echo(render_rate(snapshot))


if __name__ == "__main__":
    cli()

# Alias for __main__.py
main = cli
