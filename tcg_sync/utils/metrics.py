"""Progress and ETA tracking for multi-set sync runs"""

import time
from typing import Callable, List, Optional

from ..models import SetOutcome, SyncSummary
from .logger import logger


class SyncProgress:
    """Accumulator threaded through a multi-set run.

    The ETA is the average wall-clock time per finished set multiplied by the
    number of sets still to go.
    """

    def __init__(self, total_sets: int, clock: Callable[[], float] = time.monotonic):
        self.total_sets = total_sets
        self._clock = clock
        self.start_time: Optional[float] = None
        self.outcomes: List[SetOutcome] = []
        self.succeeded = 0
        self.failed = 0
        self.skipped = 0
        self.total_cards = 0

    def start(self) -> None:
        """Mark start of processing"""
        self.start_time = self._clock()

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    @property
    def remaining(self) -> int:
        return max(0, self.total_sets - self.processed)

    @property
    def elapsed(self) -> float:
        if self.start_time is None:
            return 0.0
        return self._clock() - self.start_time

    def eta_seconds(self) -> Optional[float]:
        if not self.processed:
            return None
        return self.elapsed / self.processed * self.remaining

    def record(self, outcome: SetOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.skipped:
            self.skipped += 1
        elif outcome.success:
            self.succeeded += 1
            self.total_cards += outcome.count
        else:
            self.failed += 1

    def percent_complete(self) -> int:
        if not self.total_sets:
            return 100
        return round(self.processed / self.total_sets * 100)

    def log_progress(self) -> None:
        eta = self.eta_seconds()
        logger.info(
            f"📊 Progress: {self.percent_complete()}% complete "
            f"({self.processed}/{self.total_sets} sets, {self.total_cards} cards)"
            f" - elapsed {format_duration(self.elapsed)}"
            + (f", ETA {format_duration(eta)}" if eta is not None else "")
        )

    def summary(self) -> SyncSummary:
        return SyncSummary(
            success=self.failed == 0,
            sets_total=self.total_sets,
            sets_processed=self.processed,
            succeeded=self.succeeded,
            failed=self.failed,
            skipped=self.skipped,
            total_cards=self.total_cards,
            duration_seconds=round(self.elapsed, 2),
            results=list(self.outcomes),
        )


def format_duration(seconds: float) -> str:
    seconds = int(round(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


def print_summary(summary: SyncSummary) -> None:
    """Log the final report of a multi-set run"""
    logger.info("\n==== Sync Complete ====")
    logger.info(f"Total sets processed: {summary.sets_processed}/{summary.sets_total}")
    logger.info(f"Successful sets: {summary.succeeded}")
    logger.info(f"Failed sets: {summary.failed}")
    if summary.skipped:
        logger.info(f"Skipped sets (recently updated): {summary.skipped}")
    logger.info(f"Total cards synced: {summary.total_cards}")
    logger.info(f"Duration: {format_duration(summary.duration_seconds)}")
    for outcome in summary.results:
        if not outcome.success and not outcome.skipped:
            logger.info(f"  ❌ {outcome.name} ({outcome.id}): {outcome.error or 'failed'}")
    logger.info("======================")
