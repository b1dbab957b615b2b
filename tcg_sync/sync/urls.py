"""Backfill of direct TCGplayer product URLs for stored cards"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from ..api.pokemon_tcg import PokemonTCGClient
from ..database.service import DatabaseService
from ..models import SyncConfig, UrlUpdateResult
from ..utils.logger import logger
from ..utils.rate_limiter import SleepFunc
from .prices import chunk


def has_tcgplayer_url(tcgplayer: Optional[Dict[str, Any]]) -> bool:
    url = tcgplayer.get("url") if isinstance(tcgplayer, dict) else None
    return isinstance(url, str) and "tcgplayer.com" in url


class TcgplayerUrlUpdater:
    """Replaces the price redirect in ``tcgplayer.url`` with the product page it points at.

    Cards whose URL already points at tcgplayer.com are skipped. The rest are
    split into ``url_batch_size`` batches; up to ``url_concurrent_batches``
    batches run at once and the cards of a batch resolve concurrently.
    """

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

    async def update_urls(self, card_ids: Optional[List[str]] = None) -> UrlUpdateResult:
        """Backfill URLs for ``card_ids``; every stored card when omitted"""
        cards = self.store.list_card_tcgplayer(card_ids)
        pending = [card_id for card_id, tcgplayer in cards if not has_tcgplayer_url(tcgplayer)]
        skipped = len(cards) - len(pending)
        logger.info(f"Found {len(cards)} cards, {skipped} already have a TCGplayer URL")

        if not pending:
            return UrlUpdateResult(success=True, skipped=skipped)

        batches = chunk(pending, self.config.url_batch_size)
        semaphore = asyncio.Semaphore(max(1, self.config.url_concurrent_batches))

        async def run(index: int, batch: List[str]) -> List[Tuple[str, bool]]:
            async with semaphore:
                if index:
                    await self._sleep(self.config.url_batch_delay)
                return await self._process_batch(index, len(batches), batch)

        outcomes = await asyncio.gather(*(run(i, batch) for i, batch in enumerate(batches)))

        result = UrlUpdateResult(success=True, skipped=skipped)
        for card_id, updated in (outcome for batch in outcomes for outcome in batch):
            if updated:
                result.count += 1
            else:
                result.failed += 1
                result.failed_card_ids.append(card_id)

        logger.info(
            f"✅ Updated {result.count} TCGplayer URLs "
            f"(skipped {result.skipped}, failed {result.failed})"
        )
        return result

    async def _process_batch(self, index: int, total: int, batch: List[str]) -> List[Tuple[str, bool]]:
        logger.info(f"Resolving URL batch {index + 1}/{total} ({len(batch)} cards)...")
        updated = await asyncio.gather(*(self._update_card(card_id) for card_id in batch))

        failures = [card_id for card_id, ok in zip(batch, updated) if not ok]
        if failures:
            logger.warning(f"⚠️ Batch {index + 1}: failed updates: {', '.join(failures)}")
        return list(zip(batch, updated))

    async def _update_card(self, card_id: str) -> bool:
        try:
            url = await self.client.resolve_tcgplayer_url(card_id)
            return self.store.update_card_url(card_id, url)
        except Exception as e:
            logger.error(f"❌ Failed to update TCGplayer URL for card {card_id}: {e}")
            return False
