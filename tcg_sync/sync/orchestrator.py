"""Multi-set runs: comprehensive sync and batch sync of selected sets"""

import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional, Tuple

from tqdm import tqdm

from ..models import SetOutcome, SyncSummary
from ..utils.logger import logger
from ..utils.metrics import SyncProgress
from .fallback_sets import FALLBACK_SETS
from .service import PokemonTCGSyncService


class CatalogOrchestrator:
    """Drives the card sync across many sets and reports one summary.

    A failing set is recorded in the summary and the run moves on.
    """

    def __init__(
        self,
        service: PokemonTCGSyncService,
        show_progress: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service = service
        self.store = service.store
        self.config = service.config
        self._sleep = service.sleep
        self.show_progress = show_progress
        self._clock = clock

    async def sync_all(self, skip_recent_hours: Optional[float] = None) -> SyncSummary:
        """Refresh set metadata, then the cards of every stored set, newest first"""
        if skip_recent_hours is None:
            skip_recent_hours = self.config.skip_recent_hours

        logger.info("🚀 Starting comprehensive sync of all sets and cards")
        set_result = await self.service.sync_sets()
        if not set_result.success:
            logger.warning(f"⚠️ Set metadata sync failed, continuing with stored sets: {set_result.error}")

        sets = self.store.list_sets()
        if not sets:
            return SyncSummary(success=False, error=set_result.error or "No sets available to sync")

        logger.info(f"Found {len(sets)} sets to process")
        return await self._run(sets, skip_recent_hours)

    async def sync_selected_sets(self, set_ids: Iterable[str]) -> SyncSummary:
        """Sync metadata, then only the listed sets"""
        set_ids = list(set_ids)
        logger.info(f"🚀 Starting batch sync of {len(set_ids)} sets: {', '.join(set_ids)}")

        set_result = await self.service.sync_sets()
        if not set_result.success:
            logger.warning(f"⚠️ Set metadata sync failed: {set_result.error}")

        sets = [(set_id, self._set_name(set_id)) for set_id in set_ids]
        return await self._run(sets, skip_recent_hours=None)

    async def _run(self, sets: List[Tuple[str, str]], skip_recent_hours: Optional[float]) -> SyncSummary:
        progress = SyncProgress(len(sets), clock=self._clock)
        progress.start()
        synced_before = False

        with tqdm(total=len(sets), desc="Syncing sets", disable=not self.show_progress) as pbar:
            for set_id, name in sets:
                if self._recently_updated(set_id, skip_recent_hours):
                    logger.info(f"⏭️ Skipping {name} ({set_id}), updated within {skip_recent_hours}h")
                    progress.record(SetOutcome(id=set_id, name=name, success=True, skipped=True))
                    pbar.update(1)
                    continue

                if synced_before:
                    await self._sleep(self.config.batch_set_delay)
                synced_before = True

                logger.info(f"\n📦 Processing set {progress.processed + 1}/{len(sets)}: {name} ({set_id})")
                result = await self.service.sync_set_cards(set_id)
                progress.record(
                    SetOutcome(
                        id=set_id,
                        name=name,
                        success=result.success,
                        count=result.count,
                        failed=result.failed,
                        error=result.error,
                    )
                )
                pbar.update(1)
                progress.log_progress()

        return progress.summary()

    def _recently_updated(self, set_id: str, hours: Optional[float]) -> bool:
        if not hours:
            return False
        oldest = self.store.oldest_card_update(set_id)
        if oldest is None:
            return False
        return datetime.now(timezone.utc) - oldest < timedelta(hours=hours)

    def _set_name(self, set_id: str) -> str:
        stored = self.store.get_set(set_id)
        if stored is not None:
            return stored.name
        return FALLBACK_SETS.get(set_id, {}).get("name", set_id)
