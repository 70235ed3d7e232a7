"""
Run the sign-book preprocessing service.

Usage:
    python -m signbook [--config config/config.properties] [--once]
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .config import ConfigurationError, load_config
from .logging_setup import configure_logging
from .service import ProcessorService

logger = logging.getLogger("signbook")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="signbook", description="Split marker-delimited documents into pages")
    parser.add_argument("--config", default=None, type=Path, help="Path to the .properties configuration file")
    parser.add_argument("--once", action="store_true", help="Run a single polling cycle and exit")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        configure_logging()
        logger.error("Error initializing application: %s", exc)
        return 1

    configure_logging(config.log_file, config.log_level, config.log_rotation_hours)

    try:
        service = ProcessorService.from_config(config)
    except (SQLAlchemyError, OSError):
        logger.exception("Error initializing application")
        return 1

    if args.once:
        with service:
            report = service.run_once()
        return 0 if report.failed == 0 else 2

    service.start()
    service.run_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
