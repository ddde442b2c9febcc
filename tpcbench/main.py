"""
tpcbench - Main Entry Point

Configures logging and hands the command line to the dispatcher.
"""

import logging
import sys
from typing import Optional, Sequence

from tpcbench.config import settings


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format=settings.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(settings.LOG_FILE)
            if settings.LOG_FILE
            else logging.NullHandler(),
        ],
    )

    # Suppress verbose driver internals
    logging.getLogger("asyncpg").setLevel(logging.WARNING)


def main(argv: Optional[Sequence[str]] = None) -> int:
    from tpcbench.core.dispatcher import run

    configure_logging()
    try:
        return run(argv)
    except KeyboardInterrupt:
        print("[tpcbench] interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
