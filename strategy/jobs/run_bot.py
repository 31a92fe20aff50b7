#!/usr/bin/env python3
"""
strategy/jobs/run_bot.py - CLI entrypoint for the arbitrage bot.

Usage:
    python -m strategy.jobs.run_bot --config config/config.sample.yaml
    python -m strategy.jobs.run_bot --execute --duration 3600
    arby-mev --test-mode --plain-logs
"""

import asyncio
import signal
import sys
import time

import click

from config import load_config
from core.exceptions import ArbyError
from core.logging import get_logger, set_global_context, setup_logging
from strategy.pipeline import build_pipeline

logger = get_logger("arby.bot")

VERSION = "0.1.0"

# Graceful shutdown flag
_shutdown_requested = False


def handle_shutdown(signum: int, frame: object) -> None:
    """Handle shutdown signals."""
    global _shutdown_requested
    _shutdown_requested = True
    logger.info("Shutdown requested", extra={"context": {"signal": signum}})


async def run_bot(config, duration: int | None, continuous_scan: bool) -> None:
    """Run the pipeline until shutdown is requested or duration elapses."""
    pipeline = build_pipeline(config)
    started = time.monotonic()

    await pipeline.start(continuous_scanning=continuous_scan)
    try:
        while not _shutdown_requested:
            if duration is not None and time.monotonic() - started >= duration:
                logger.info("Session duration reached")
                break
            if pipeline.feed is not None and pipeline.feed.failed:
                logger.error("Block feed failed, stopping")
                break
            await asyncio.sleep(1)
    finally:
        await pipeline.stop()
        logger.info(
            "Bot stopped",
            extra={"context": {
                "runtime_seconds": round(time.monotonic() - started, 1),
                **vars(pipeline.stats),
            }},
        )


@click.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML config file (default: bundled sample)",
)
@click.option(
    "--log-level",
    "-l",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Log level",
)
@click.option(
    "--json-logs/--plain-logs",
    default=True,
    help="Use JSON log format",
)
@click.option("--log-file", default=None, help="Also write logs to this file")
@click.option(
    "--execute/--detect-only",
    default=None,
    help="Submit transactions (overrides execution_enabled in config)",
)
@click.option("--test-mode", is_flag=True, help="Quiet mode: slower scan cadence")
@click.option(
    "--continuous-scan",
    is_flag=True,
    help="Also scan on a timer, independent of new blocks",
)
@click.option(
    "--duration",
    "-d",
    default=None,
    type=int,
    help="Session duration in seconds (default: infinite)",
)
def main(
    config_path: str | None,
    log_level: str,
    json_logs: bool,
    log_file: str | None,
    execute: bool | None,
    test_mode: bool,
    continuous_scan: bool,
    duration: int | None,
) -> None:
    """ARBY-MEV: cross-venue arbitrage detection and execution."""
    setup_logging(level=log_level, json_output=json_logs, log_file=log_file)
    set_global_context(service="arby-mev", version=VERSION)

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    try:
        config = load_config(config_path)
    except (ArbyError, FileNotFoundError) as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(2)

    if execute is not None:
        config.execution_enabled = execute
    if test_mode:
        config.test_mode = True

    logger.info(
        "Starting ARBY-MEV",
        extra={"context": {
            "chain_id": config.ethereum.chain_id,
            "execution_enabled": config.execution_enabled,
            "test_mode": config.test_mode,
            "gas_strategy": config.gas.strategy.value,
            "mev_share": config.mev_share.enabled,
            "tokens": [t.symbol for t in config.tokens],
            "venues": [v.kind.value for v in config.venues if v.enabled],
        }},
    )

    try:
        asyncio.run(run_bot(config, duration, continuous_scan))
    except KeyboardInterrupt:
        logger.info("Bot interrupted")
    except Exception as e:
        logger.error(f"Bot error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
