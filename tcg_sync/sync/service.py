"""Invocation surface for catalog sync operations

Every operation returns a result object instead of raising, so an admin
endpoint or the CLI can hand ``result.to_dict()`` straight back to its caller.
"""

import asyncio
from typing import List, Optional

from ..api.pokemon_tcg import PokemonTCGClient
from ..database.service import DatabaseService
from ..models import (
    CardSyncResult,
    NewSetsResult,
    PriceUpdateResult,
    SetSyncResult,
    SyncConfig,
    SyncState,
    UrlUpdateResult,
)
from ..utils.logger import logger
from ..utils.rate_limiter import SleepFunc
from .cards import CardSynchronizer
from .prices import PriceRefresher
from .sets import SetSynchronizer
from .urls import TcgplayerUrlUpdater


class PokemonTCGSyncService:
    def __init__(
        self,
        client: PokemonTCGClient,
        store: DatabaseService,
        config: Optional[SyncConfig] = None,
        sleep: Optional[SleepFunc] = None,
    ):
        self.client = client
        self.store = store
        self.config = config or client.config
        self.sleep = sleep or asyncio.sleep

        self.sets = SetSynchronizer(client, store, self.config, self.sleep)
        self.cards = CardSynchronizer(client, store, self.config, self.sleep)
        self.prices = PriceRefresher(client, store, self.config, self.sleep)
        self.urls = TcgplayerUrlUpdater(client, store, self.config, self.sleep)

    async def sync_sets(self) -> SetSyncResult:
        try:
            return await self.sets.sync_sets()
        except Exception as e:
            logger.error(f"❌ Failed to sync sets: {e}")
            return SetSyncResult(success=False, error=str(e))

    async def sync_new_sets(self) -> NewSetsResult:
        try:
            return await self.sets.sync_new_sets(self.cards)
        except Exception as e:
            logger.error(f"❌ Failed to sync new sets: {e}")
            return NewSetsResult(success=False, error=str(e))

    async def sync_set_cards(self, set_id: str) -> CardSyncResult:
        try:
            return await self.cards.sync_set_cards(set_id)
        except Exception as e:
            logger.error(f"❌ Failed to sync cards from set {set_id}: {e}")
            return CardSyncResult(success=False, set_id=set_id, state=SyncState.FAILED, error=str(e))

    async def update_card_prices(self, card_ids: Optional[List[str]] = None) -> PriceUpdateResult:
        try:
            return await self.prices.update_card_prices(card_ids)
        except Exception as e:
            logger.error(f"❌ Failed to update card prices: {e}")
            return PriceUpdateResult(success=False, error=str(e))

    async def update_tcgplayer_urls(self, card_ids: Optional[List[str]] = None) -> UrlUpdateResult:
        try:
            return await self.urls.update_urls(card_ids)
        except Exception as e:
            logger.error(f"❌ Failed to update TCGplayer URLs: {e}")
            return UrlUpdateResult(success=False, error=str(e))
