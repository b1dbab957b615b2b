"""Pokemon TCG API client with bounded retries and pluggable rate limiting"""

import asyncio
import json
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from ..config import DEFAULT_BASE_URL
from ..exceptions import APIError, MalformedResponseError, NotFoundError, RateLimitError
from ..models import SyncConfig
from ..utils.http_session import create_session
from ..utils.logger import logger
from ..utils.rate_limiter import RateLimitPolicy, SleepFunc, build_rate_limit_policy

# Retried inside the client; anything else propagates on the first failure
TRANSIENT_ERRORS = (
    RateLimitError,
    MalformedResponseError,
    aiohttp.ClientError,
    asyncio.TimeoutError,
)

# Redirects to the TCGplayer product page of a card
TCGPLAYER_REDIRECT_URL = "https://prices.pokemontcg.io/tcgplayer/{card_id}"
TCGPLAYER_SEARCH_URL = "https://www.tcgplayer.com/search/pokemon/product?q={query}"

# TCGplayer finish keys -> PriceHistory columns
PRICE_FINISHES = {
    "normal": "normal",
    "holofoil": "holofoil",
    "reverseHolofoil": "reverse_holofoil",
    "1stEditionHolofoil": "first_edition",
}


class PokemonTCGClient:
    """Client for https://api.pokemontcg.io/v2

    ``request`` retries 429s, network failures and malformed bodies up to
    ``config.max_retries`` times. The wait before retry N is
    ``config.retry_delay * N`` seconds (2.5s, 5s, 7.5s, ... by default), or the
    server's ``Retry-After`` when a 429 carries one.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Optional[SyncConfig] = None,
        base_url: str = DEFAULT_BASE_URL,
        session: Optional[aiohttp.ClientSession] = None,
        rate_limiter: Optional[RateLimitPolicy] = None,
        sleep: Optional[SleepFunc] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
    ):
        self.api_key = api_key
        self.config = config or SyncConfig()
        self.base_url = base_url.rstrip("/")
        self._sleep = sleep or asyncio.sleep
        self.rate_limiter = rate_limiter or build_rate_limit_policy(
            self.config, bool(api_key), sleep=self._sleep
        )
        self._session = session
        self._owns_session = session is None
        self._timeout = timeout
        self.request_count = 0

        logger.debug(
            f"Pokemon TCG API client initialized (API key: {'present' if api_key else 'absent'}, "
            f"rate limit policy: {self.rate_limiter.name})"
        )

    async def __aenter__(self) -> "PokemonTCGClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = create_session(self._timeout)
            self._owns_session = True
        return self._session

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        return headers

    # ── Core request ──────────────────────────────────────────────────────────

    async def request(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None, retries: Optional[int] = None
    ) -> Any:
        """GET ``endpoint`` and return the decoded JSON body.

        ``retries`` overrides the configured retry budget for this call.
        """
        url = f"{self.base_url}{endpoint}"
        query = {key: str(value) for key, value in (params or {}).items() if value is not None}
        max_retries = self.config.max_retries if retries is None else max(0, retries)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_retries + 1),
            wait=self._backoff,
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                body = await self._send(url, query)
        return body

    async def _send(self, url: str, query: Dict[str, str]) -> Any:
        await self.rate_limiter.acquire()
        session = self._get_session()

        logger.debug(f"Making request to: {url} {query}")
        async with session.get(url, params=query, headers=self._headers()) as response:
            self.request_count += 1

            if response.status == 429:
                retry_after = _parse_retry_after(response.headers.get("Retry-After"))
                self.rate_limiter.report_rate_limited(retry_after)
                raise RateLimitError(f"Rate limit reached (HTTP 429) for {url}", retry_after)

            if not 200 <= response.status < 300:
                text = await response.text(errors="replace")
                raise _api_error(response.status, response.reason, text)

            try:
                text = await response.text()
            except UnicodeDecodeError as e:
                raise MalformedResponseError("Response body is not valid UTF-8") from e

            if not text or not text.strip():
                raise MalformedResponseError("Empty response received from server")

            try:
                body = json.loads(text)
            except ValueError as e:
                logger.debug(f"Failed to parse response as JSON: {text[:200]}")
                raise MalformedResponseError("Failed to parse API response") from e

        self.rate_limiter.report_success()
        return body

    def _backoff(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RateLimitError) and exc.retry_after is not None:
            return exc.retry_after
        return self.config.retry_delay * retry_state.attempt_number

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception()
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        attempts_left = self.config.max_retries + 1 - retry_state.attempt_number
        if isinstance(exc, RateLimitError):
            logger.warning(f"⏳ Rate limit reached. Waiting {wait:.1f}s before retrying...")
        else:
            logger.warning(
                f"⚠️ Request failed ({exc}). Retrying in {wait:.1f}s... "
                f"({attempts_left} attempts left)"
            )

    # ── Catalog fetchers ──────────────────────────────────────────────────────

    async def get_sets(
        self, page_size: Optional[int] = None, order_by: Optional[str] = None, **params
    ) -> Dict[str, Any]:
        """List sets, newest release first unless ``order_by`` says otherwise"""
        return await self.request(
            "/sets", {**params, "pageSize": page_size, "orderBy": order_by or "-releaseDate"}
        )

    async def get_set(self, set_id: str) -> Dict[str, Any]:
        return await self.request(f"/sets/{set_id}")

    async def get_cards(
        self,
        q: Optional[str] = None,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        **params,
    ) -> Dict[str, Any]:
        return await self.request(
            "/cards", {**params, "q": q, "page": page, "pageSize": page_size}
        )

    async def search_cards(
        self, query: str, page: Optional[int] = None, page_size: Optional[int] = None
    ) -> Dict[str, Any]:
        """Search cards with the API query syntax, e.g. ``set.id:sv4``"""
        return await self.get_cards(q=query, page=page, page_size=page_size)

    async def get_card(self, card_id: str) -> Dict[str, Any]:
        response = await self.request(f"/cards/{card_id}")
        return response.get("data")

    async def get_types(self) -> List[str]:
        return (await self.request("/types")).get("data", [])

    async def get_subtypes(self) -> List[str]:
        return (await self.request("/subtypes")).get("data", [])

    async def get_supertypes(self) -> List[str]:
        return (await self.request("/supertypes")).get("data", [])

    async def get_rarities(self) -> List[str]:
        return (await self.request("/rarities")).get("data", [])

    async def resolve_tcgplayer_url(self, card_id: str) -> str:
        """Follow the price redirect for ``card_id`` to its TCGplayer product page.

        Falls back to a TCGplayer search URL when the redirect fails or does
        not land on tcgplayer.com.
        """
        url = TCGPLAYER_REDIRECT_URL.format(card_id=quote(card_id))
        fallback = TCGPLAYER_SEARCH_URL.format(query=quote(card_id))
        session = self._get_session()

        try:
            async with session.get(url, allow_redirects=True) as response:
                self.request_count += 1
                final_url = str(response.url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"⚠️ Failed to resolve TCGplayer URL for {card_id}: {e}")
            return fallback

        if "tcgplayer.com" not in final_url:
            logger.debug(f"Redirect for {card_id} ended at {final_url}, using search URL")
            return fallback
        return final_url


def extract_market_prices(card: Dict[str, Any]) -> Optional[Dict[str, Optional[float]]]:
    """Market price per finish, or None when the card carries no TCGplayer prices"""
    prices = (card.get("tcgplayer") or {}).get("prices")
    if not prices:
        return None

    snapshot = {}
    for finish, column in PRICE_FINISHES.items():
        market = (prices.get(finish) or {}).get("market")
        snapshot[column] = float(market) if market else None
    return snapshot


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After in seconds; HTTP-date values are ignored"""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _api_error(status: int, reason: Optional[str], text: str) -> APIError:
    reason = reason or f"HTTP {status}"
    try:
        data = json.loads(text)
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            detail = error.get("message")
        else:
            detail = error
        message = f"API Error: {detail or reason}"
    except ValueError:
        message = f"API Error: {text or reason}"

    error_cls = NotFoundError if status == 404 else APIError
    return error_cls(f"{message} (HTTP {status})", status=status)
