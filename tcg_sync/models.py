"""Data models and types for the catalog sync"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class SyncConfig:
    """Tunables for requests, pagination and pacing (seconds unless noted)"""

    # HTTP client
    max_retries: int = 5
    retry_delay: float = 2.5  # linear backoff: retry_delay * attempt
    request_timeout: float = 60.0

    # Rate limiting policy: "fixed", "token_bucket" or "sliding_window"
    rate_limit_policy: str = "fixed"
    request_delay: float = 0.05
    requests_per_second: float = 10.0
    daily_request_limit: Optional[int] = None  # defaults depend on the API key
    requests_per_minute: Optional[int] = None

    # Pagination
    sets_page_size: int = 250
    cards_page_size: int = 50

    # Card sync pacing
    page_delay: float = 2.5
    rate_limit_backoff: float = 5.0
    max_page_errors: int = 10
    micro_delay_every: int = 5
    micro_delay: float = 0.2

    # Set pacing
    new_set_delay: float = 10.0
    batch_set_delay: float = 5.0

    # Price refresh
    price_batch_size: int = 25
    price_batch_delay: float = 3.0
    max_concurrent_price_batches: int = 1

    # TCGplayer URL backfill
    url_batch_size: int = 100
    url_concurrent_batches: int = 5
    url_batch_delay: float = 0.05

    # Extras
    use_fallback_sets: bool = False
    skip_recent_hours: Optional[float] = None


class SyncState(str, Enum):
    """Per-set progress through a card sync"""

    PENDING = "pending"
    FETCHING_PAGE = "fetching_page"
    UPSERTING_CARDS = "upserting_cards"
    PAGE_DONE = "page_done"
    ERROR_RATE_LIMITED = "error_rate_limited"
    BACKOFF = "backoff"
    SET_DONE = "set_done"
    ABORTED = "aborted"
    FAILED = "failed"


class _Result:
    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if data.get("error") is None:
            data.pop("error", None)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        return data


@dataclass
class SetSyncResult(_Result):
    success: bool
    count: int = 0  # sets actually upserted
    fetched: int = 0
    failed: int = 0
    failed_set_ids: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class ImportedSet:
    id: str
    name: str
    card_count: int


@dataclass
class NewSetsResult(_Result):
    success: bool
    count: int = 0  # new sets detected upstream
    new_sets: List[str] = field(default_factory=list)
    imported_sets: List[ImportedSet] = field(default_factory=list)
    failed_set_ids: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class CardSyncResult(_Result):
    success: bool
    set_id: str = ""
    count: int = 0  # cards upserted
    total: int = 0  # cards seen upstream
    failed: int = 0
    failed_card_ids: List[str] = field(default_factory=list)
    price_records: int = 0
    aborted: bool = False
    state: SyncState = SyncState.PENDING
    error: Optional[str] = None


@dataclass
class PriceUpdateResult(_Result):
    success: bool
    count: int = 0
    error: Optional[str] = None


@dataclass
class UrlUpdateResult(_Result):
    success: bool
    count: int = 0  # URLs written
    skipped: int = 0  # already pointing at tcgplayer.com
    failed: int = 0
    failed_card_ids: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class SetOutcome:
    """Result of one set inside a multi-set run"""

    id: str
    name: str
    success: bool
    count: int = 0
    failed: int = 0
    skipped: bool = False
    error: Optional[str] = None


@dataclass
class SyncSummary(_Result):
    success: bool
    sets_total: int = 0
    sets_processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    total_cards: int = 0
    duration_seconds: float = 0.0
    results: List[SetOutcome] = field(default_factory=list)
    error: Optional[str] = None
