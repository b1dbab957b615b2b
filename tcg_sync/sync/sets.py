"""Set catalog synchronization: full refresh and new-set diff import"""

import asyncio
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..api.pokemon_tcg import PokemonTCGClient
from ..database.service import DatabaseService
from ..models import ImportedSet, NewSetsResult, SetSyncResult, SyncConfig
from ..utils.logger import logger
from ..utils.rate_limiter import SleepFunc
from .fallback_sets import merge_fallback_sets

if TYPE_CHECKING:
    from .cards import CardSynchronizer


class SetSynchronizer:
    """Keeps the stored set list in step with the upstream catalog"""

    def __init__(
        self,
        client: PokemonTCGClient,
        store: DatabaseService,
        config: Optional[SyncConfig] = None,
        sleep: Optional[SleepFunc] = None,
    ):
        self.client = client
        self.store = store
        self.config = config or SyncConfig()
        self._sleep = sleep or asyncio.sleep

    async def fetch_sets(self) -> List[Dict[str, Any]]:
        """Upstream sets, newest release first"""
        response = await self.client.get_sets(page_size=self.config.sets_page_size)
        sets = response.get("data") or []
        if self.config.use_fallback_sets:
            sets = merge_fallback_sets(sets)
        return sets

    async def sync_sets(self) -> SetSyncResult:
        """Upsert every upstream set. A failing set never stops the batch."""
        logger.info("🔄 Syncing Pokemon TCG sets...")
        sets = await self.fetch_sets()
        logger.info(f"Fetched {len(sets)} sets from API")

        result = SetSyncResult(success=True, fetched=len(sets))
        for set_data in sets:
            set_id = set_data.get("id", "?")
            try:
                self.store.upsert_set(set_data)
                result.count += 1
            except Exception as e:
                logger.error(f"❌ Error syncing set {set_id}: {e}")
                result.failed += 1
                result.failed_set_ids.append(set_id)

        logger.info(f"✅ Synced {result.count}/{result.fetched} sets")
        return result

    async def sync_new_sets(self, card_synchronizer: "CardSynchronizer") -> NewSetsResult:
        """Import sets that exist upstream but not locally, cards included"""
        logger.info("🔄 Checking for new sets...")
        api_sets = await self.fetch_sets()
        existing_ids = self.store.get_set_ids()
        new_sets = [s for s in api_sets if s["id"] not in existing_ids]

        result = NewSetsResult(success=True, count=len(new_sets), new_sets=[s["id"] for s in new_sets])
        if not new_sets:
            logger.info("✅ No new sets found")
            return result

        logger.info(f"Found {len(new_sets)} new sets: {', '.join(result.new_sets)}")

        for index, set_data in enumerate(new_sets):
            if index:
                await self._sleep(self.config.new_set_delay)

            set_id = set_data["id"]
            try:
                self.store.create_set(set_data)
                logger.info(f"Created new set: {set_data.get('name', set_id)}")

                card_result = await card_synchronizer.sync_set_cards(set_id)
                result.imported_sets.append(
                    ImportedSet(id=set_id, name=set_data.get("name", set_id), card_count=card_result.count)
                )
            except Exception as e:
                logger.error(f"❌ Failed to import new set {set_id}: {e}")
                result.failed_set_ids.append(set_id)

        logger.info(f"✅ Imported {len(result.imported_sets)}/{len(new_sets)} new sets")
        return result
