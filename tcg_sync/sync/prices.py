"""Batched market price refresh for a list of cards"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..api.pokemon_tcg import PokemonTCGClient, extract_market_prices
from ..database.service import DatabaseService
from ..exceptions import DuplicateRecordError
from ..models import PriceUpdateResult, SyncConfig
from ..utils.logger import logger
from ..utils.rate_limiter import SleepFunc


def chunk(items: List[str], size: int) -> List[List[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def build_id_query(card_ids: List[str]) -> str:
    """``id:A OR id:B ...`` search expression"""
    return " OR ".join(f"id:{card_id}" for card_id in card_ids)


class PriceRefresher:
    """Refreshes TCGplayer prices for specific cards, or for every collected card"""

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

    async def update_card_prices(
        self, card_ids: Optional[List[str]] = None, captured_at: Optional[datetime] = None
    ) -> PriceUpdateResult:
        """Refresh prices for ``card_ids``; all cards in any collection when omitted"""
        if not card_ids:
            card_ids = self.store.get_collection_card_ids()
            logger.info(f"Found {len(card_ids)} unique cards in user collections")
            if not card_ids:
                return PriceUpdateResult(success=True, count=0)

        captured_at = captured_at or datetime.now(timezone.utc)
        batches = chunk(list(card_ids), self.config.price_batch_size)
        logger.info(f"Updating prices for {len(card_ids)} cards in {len(batches)} batches")

        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrent_price_batches))

        async def run(index: int, batch: List[str]) -> int:
            async with semaphore:
                if index:
                    await self._sleep(self.config.price_batch_delay)
                return await self._process_batch(index, len(batches), batch, captured_at)

        counts = await asyncio.gather(*(run(i, batch) for i, batch in enumerate(batches)))
        updated = sum(counts)

        logger.info(f"✅ Updated prices for {updated} cards")
        return PriceUpdateResult(success=True, count=updated)

    async def _process_batch(
        self, index: int, total: int, batch: List[str], captured_at: datetime
    ) -> int:
        logger.info(f"Processing batch {index + 1}/{total} ({len(batch)} cards)...")
        try:
            response = await self.client.get_cards(q=build_id_query(batch), page_size=len(batch))
        except Exception as e:
            logger.error(f"❌ Error processing batch {index + 1}: {e}")
            return 0

        updated = 0
        for card in response.get("data") or []:
            try:
                if self._refresh_card(card, captured_at):
                    updated += 1
            except Exception as e:
                logger.error(f"❌ Error updating price for card {card.get('id')}: {e}")
        return updated

    def _refresh_card(self, card: Dict[str, Any], captured_at: datetime) -> bool:
        prices = extract_market_prices(card)
        if prices is None:
            logger.debug(f"No price data available for card {card['id']}")
            return False

        if self.store.get_card(card["id"]) is None:
            logger.warning(f"⚠️ Card {card['id']} is not in the local catalog, price not stored")
            return False

        try:
            self.store.append_price_history(card["id"], prices, captured_at)
        except DuplicateRecordError:
            logger.debug(f"Price history for {card['id']} already recorded for this run")

        return self.store.update_card_pricing(card["id"], card["tcgplayer"])
