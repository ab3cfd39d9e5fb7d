"""Command line entry point: one-shot send or the web UI."""

import argparse
import asyncio
import logging
from typing import Optional, Sequence

from digestarr.core.config import get_settings
from digestarr.core.log_buffer import setup_logging
from digestarr.services.mailer import MailerError
from digestarr.services.newsletter import newsletter
from digestarr.services.pipeline import AllSourcesFailedError
from digestarr.services.stats import stats

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Newsletter digest for Sonarr, Radarr and Trakt",
    )
    parser.add_argument(
        "--web",
        action="store_true",
        help="Run the web UI and the scheduler instead of sending once",
    )
    return parser


def run_web() -> int:
    import uvicorn

    from digestarr.main import app

    settings = get_settings()
    uvicorn.run(app, host="0.0.0.0", port=settings.webui_port, log_level=settings.log_level)
    return 0


def run_once() -> int:
    stats.load()
    try:
        report = asyncio.run(newsletter.send())
    except AllSourcesFailedError as e:
        logger.error("Newsletter not sent: %s", e)
        return 1
    except MailerError as e:
        logger.error("Failed to send newsletter: %s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    if report.status == "skipped":
        logger.info("Nothing new to send")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    setup_logging(get_settings().log_level)

    if args.web:
        return run_web()
    return run_once()


if __name__ == "__main__":
    raise SystemExit(main())
