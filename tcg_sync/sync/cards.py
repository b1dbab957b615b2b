"""Per-set card synchronization with paging, pacing and failure isolation"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..api.pokemon_tcg import PokemonTCGClient, extract_market_prices
from ..database.service import DatabaseService
from ..exceptions import DuplicateRecordError, NotFoundError, RateLimitError
from ..models import CardSyncResult, SyncConfig, SyncState
from ..utils.logger import logger
from ..utils.rate_limiter import SleepFunc
from .fallback_sets import fallback_set


class CardSynchronizer:
    """Pulls every card of one set and upserts it into the store.

    Pages are fetched strictly one after another with ``page_delay`` between
    them. A card that fails to store is recorded and skipped. A page that
    fails with a rate limit is retried after ``rate_limit_backoff``; any other
    page error moves on to the next page. ``max_page_errors`` consecutive page
    errors abort the set, keeping what was stored so far.
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

    async def resolve_set(self, set_id: str) -> Dict[str, Any]:
        """Set metadata from the API, or from the fallback table when allowed

        Raises:
            NotFoundError: the set is unknown upstream and has no fallback
        """
        try:
            response = await self.client.get_set(set_id)
            return response.get("data") or {}
        except NotFoundError:
            fallback = fallback_set(set_id) if self.config.use_fallback_sets else None
            if fallback is None:
                raise NotFoundError(f"Set with ID {set_id} not found and no fallback available", status=404)
            logger.info(f"Set {set_id} not found in API, using fallback data")
            return fallback

    async def sync_set_cards(
        self, set_id: str, captured_at: Optional[datetime] = None
    ) -> CardSyncResult:
        """Sync all cards of ``set_id``.

        ``captured_at`` stamps every price history row written by this run.
        """
        captured_at = captured_at or datetime.now(timezone.utc)
        result = CardSyncResult(success=True, set_id=set_id)

        set_data = await self.resolve_set(set_id)
        set_name = set_data.get("name", set_id)
        logger.info(f"Starting sync for set: {set_name} ({set_id})")

        page_size = self.config.cards_page_size
        query = f"set.id:{set_id}"
        page = 1
        page_errors = 0
        fetches = 0

        while True:
            if fetches:
                await self._sleep(self.config.page_delay)
            fetches += 1
            result.state = SyncState.FETCHING_PAGE

            try:
                logger.debug(f"Fetching page {page} for set {set_name}...")
                response = await self.client.search_cards(query, page=page, page_size=page_size)
            except RateLimitError as e:
                page_errors += 1
                result.state = SyncState.ERROR_RATE_LIMITED
                logger.warning(f"⏳ Rate limited on page {page} for set {set_id}: {e}")
                if self._should_abort(result, page_errors):
                    break
                result.state = SyncState.BACKOFF
                await self._sleep(self.config.rate_limit_backoff)
                continue
            except Exception as e:
                page_errors += 1
                logger.error(f"❌ Error processing page {page} for set {set_id}: {e}")
                if self._should_abort(result, page_errors):
                    break
                page += 1
                continue

            page_errors = 0
            cards = response.get("data") or []
            if not cards:
                logger.debug(f"No cards found for set {set_name} on page {page}")
                break

            result.state = SyncState.UPSERTING_CARDS
            logger.info(f"Processing {len(cards)} cards from set {set_name} (page {page})...")
            await self._process_page(cards, result, captured_at)
            result.total += len(cards)
            result.state = SyncState.PAGE_DONE

            if not self._has_more(response, cards, page, page_size):
                break
            page += 1

        if result.state != SyncState.ABORTED:
            result.state = SyncState.SET_DONE

        self._backfill_totals(set_id, set_data, result.count)

        logger.info(
            f"✅ Completed sync of {result.total} cards from set {set_name} "
            f"(processed: {result.count}, failed: {result.failed})"
        )
        return result

    async def _process_page(
        self, cards: List[Dict[str, Any]], result: CardSyncResult, captured_at: datetime
    ) -> None:
        every = self.config.micro_delay_every
        for index, card in enumerate(cards):
            if every and index and index % every == 0:
                await self._sleep(self.config.micro_delay)

            card_id = card.get("id", "?")
            try:
                self.store.upsert_card(card)
            except Exception as e:
                logger.error(f"❌ Error processing card {card_id}: {e}")
                result.failed += 1
                result.failed_card_ids.append(card_id)
                continue

            result.count += 1
            if self._record_price(card, captured_at):
                result.price_records += 1

    def _record_price(self, card: Dict[str, Any], captured_at: datetime) -> bool:
        prices = extract_market_prices(card)
        if prices is None:
            return False
        try:
            self.store.append_price_history(card["id"], prices, captured_at)
            return True
        except DuplicateRecordError:
            logger.debug(f"Price history for {card['id']} already recorded for this run")
        except Exception as e:
            logger.warning(f"⚠️ Error creating price history for card {card['id']}: {e}")
        return False

    def _should_abort(self, result: CardSyncResult, page_errors: int) -> bool:
        if page_errors < self.config.max_page_errors:
            return False
        logger.error(
            f"❌ Too many errors ({page_errors} consecutive), stopping sync for set {result.set_id}"
        )
        result.aborted = True
        result.state = SyncState.ABORTED
        return True

    @staticmethod
    def _has_more(response: Dict[str, Any], cards: List[Any], page: int, page_size: int) -> bool:
        if len(cards) < page_size:
            return False
        total_count = response.get("totalCount")
        if total_count is not None and page * page_size >= total_count:
            return False
        return True

    def _backfill_totals(self, set_id: str, set_data: Dict[str, Any], processed: int) -> None:
        """Fill in set totals the API did not publish"""
        if processed <= 0 or set_data.get("printedTotal"):
            return
        try:
            if self.store.update_set_totals(set_id, processed):
                logger.info(f"Updated set {set_id} totals to {processed} cards")
        except Exception as e:
            logger.warning(f"⚠️ Could not update totals for set {set_id}: {e}")
