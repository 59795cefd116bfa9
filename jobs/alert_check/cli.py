"""CLI entry point for the scheduled alert check."""

from __future__ import annotations

import argparse
import asyncio
import logging
import time
from typing import Optional, Sequence

from common.config import get_settings
from common.db import get_engine
from monitor_api.store.setup import ensure_schema

from .config import RunnerConfig
from .runner import run_once

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None, default_interval: float = 300.0) -> RunnerConfig:
    p = argparse.ArgumentParser(description="Cold storage alert check (threshold + connectivity alerts)")
    p.add_argument("--interval-seconds", type=float, default=default_interval)
    p.add_argument("--once", action="store_true", help="run a single iteration and exit")
    args = p.parse_args(argv)
    return RunnerConfig(interval_seconds=args.interval_seconds, once=bool(args.once))


def main(argv: Optional[Sequence[str]] = None) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    settings = get_settings()
    cfg = parse_args(argv, default_interval=settings.alert_check_interval_seconds)

    engine = get_engine(settings)
    ensure_schema(engine)

    logger.info("Alert check started")
    logger.info("Config: interval=%.1fs once=%s", cfg.interval_seconds, cfg.once)

    while True:
        try:
            asyncio.run(run_once(engine, settings))
            if cfg.once:
                return
            logger.info("Iteration done, sleeping %.1fs...", cfg.interval_seconds)
        except Exception as e:
            logger.error("Iteration failed: %s", e)
            if cfg.once:
                raise
            logger.info("Continuing with next iteration...")
        time.sleep(cfg.interval_seconds)


if __name__ == "__main__":
    main()
