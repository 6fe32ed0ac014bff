from __future__ import annotations

import logging
import time

import schedule

from match_models import NetworkError

logger = logging.getLogger(__name__)

POLL_SECONDS = 30


def _guarded(run_fn):  # noqa: ANN001, ANN202
    def run() -> None:
        try:
            run_fn()
        except NetworkError as exc:
            logger.error("Scheduled export skipped, listing unavailable: %s", exc)
    return run


def start(run_fn, interval_minutes: float = 30) -> None:  # noqa: ANN001
    """Export now, then again every *interval_minutes*; a failed fetch waits for the next slot."""
    logger.info("Scheduler started — interval: every %s minute(s)", interval_minutes)
    job = _guarded(run_fn)
    schedule.every(interval_minutes).minutes.do(job)

    job()

    while True:
        schedule.run_pending()
        time.sleep(POLL_SECONDS)
