#!/usr/bin/env python3
"""Run one print-panel job from the command line, without the server.

Usage:
    python run_pipeline.py jobs/panels.csv
    python run_pipeline.py jobs/panels.csv --session-id nightly
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pipeline.events import LoggingEventSink
from pipeline.orchestrator import PipelineOrchestrator
from pipeline.session_store import SessionStore
from settings import Settings

logger = logging.getLogger("run_pipeline")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("csv_file", type=Path, help="Job file with url,name,tag1,tag2,... rows")
    parser.add_argument("--session-id", default="cli", dest="session_id",
                        help="Session id used in log output (default: cli)")
    args = parser.parse_args(argv)

    settings = Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        csv_data = args.csv_file.read_text(encoding="utf-8")
    except OSError as exc:
        logger.error("Could not read %s: %s", args.csv_file, exc)
        return 1

    orchestrator = PipelineOrchestrator(settings, SessionStore(), LoggingEventSink())
    result = asyncio.run(orchestrator.submit(args.session_id, csv_data))

    if result.success:
        logger.info("=== Done → %s ===", (result.data or {}).get("printpanelsOutputDir"))
        return 0
    logger.error("=== Failed: %s ===", result.error)
    return 1


if __name__ == "__main__":
    sys.exit(main())
