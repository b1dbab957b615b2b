"""Shared fixtures and test doubles.

No test touches the network: the HTTP layer is replaced by ``FakeSession``
and the catalog by ``FakeCatalogClient``. Every delay goes through a
``SleepRecorder`` so nothing actually waits.
"""
import json

import pytest

from tcg_sync.database.service import DatabaseService
from tcg_sync.exceptions import NotFoundError
from tcg_sync.models import SyncConfig


# ── Timing ────────────────────────────────────────────────────────────────────

class SleepRecorder:
    """Records requested delays; optionally advances a FakeClock"""

    def __init__(self, clock=None):
        self.calls = []
        self.clock = clock

    async def sleep(self, seconds):
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


# ── HTTP layer ────────────────────────────────────────────────────────────────

class FakeResponse:
    """Just enough of aiohttp.ClientResponse for PokemonTCGClient"""

    def __init__(self, status=200, body=None, text=None, headers=None, reason="OK", raw=None, url=None):
        self.status = status
        self.headers = headers or {}
        self.reason = reason
        self.url = url
        if raw is None:
            if text is None:
                text = json.dumps(body) if body is not None else ""
            raw = text.encode("utf-8")
        self._raw = raw

    async def text(self, encoding=None, errors="strict"):
        return self._raw.decode(encoding or "utf-8", errors)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Replays queued responses; queued exceptions are raised from get()"""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def get(self, url, params=None, headers=None, allow_redirects=True):
        self.calls.append({"url": url, "params": params, "headers": headers, "allow_redirects": allow_redirects})
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self):
        self.closed = True


# ── Catalog ───────────────────────────────────────────────────────────────────

def make_set(set_id, name=None, release_date="2024/01/01", printed_total=100, **extra):
    data = {
        "id": set_id,
        "name": name or set_id.upper(),
        "series": "Scarlet & Violet",
        "printedTotal": printed_total,
        "total": printed_total,
        "legalities": {"unlimited": "Legal", "standard": "Legal"},
        "ptcgoCode": set_id.upper(),
        "releaseDate": release_date,
        "updatedAt": "2024/01/01 10:00:00",
        "images": {
            "symbol": f"https://images.pokemontcg.io/{set_id}/symbol.png",
            "logo": f"https://images.pokemontcg.io/{set_id}/logo.png",
        },
    }
    data.update(extra)
    return data


def make_card(set_id, number, rarity="Common", prices=None, set_name=None):
    card = {
        "id": f"{set_id}-{number}",
        "name": f"Card {number}",
        "supertype": "Pokémon",
        "subtypes": ["Basic"],
        "hp": "60",
        "types": ["Fire"],
        "set": {"id": set_id, "name": set_name or set_id.upper()},
        "number": str(number),
        "artist": "Ken Sugimori",
        "rarity": rarity,
        "nationalPokedexNumbers": [number],
        "images": {
            "small": f"https://images.pokemontcg.io/{set_id}/{number}.png",
            "large": f"https://images.pokemontcg.io/{set_id}/{number}_hires.png",
        },
    }
    if prices is not None:
        card["tcgplayer"] = {
            "url": f"https://prices.pokemontcg.io/tcgplayer/{set_id}-{number}",
            "updatedAt": "2025/01/20",
            "prices": prices,
        }
    return card


class FakeCatalogClient:
    """In-memory stand-in for PokemonTCGClient's catalog fetchers.

    ``page_errors`` maps ``(set_id, page)`` to a list of exceptions that the
    next fetches of that page raise, one per call.
    """

    def __init__(self, sets=None, cards=None, page_errors=None, config=None, url_failures=None):
        self.sets = list(sets or [])
        self.cards = {key: list(value) for key, value in (cards or {}).items()}
        self.page_errors = {key: list(value) for key, value in (page_errors or {}).items()}
        self.config = config or SyncConfig()
        self.url_failures = set(url_failures or ())
        self.calls = []

    async def get_sets(self, page_size=None, order_by=None, **params):
        self.calls.append(("get_sets", page_size))
        sets = self.sets[:page_size] if page_size else self.sets
        return {"data": list(sets), "totalCount": len(self.sets)}

    async def get_set(self, set_id):
        self.calls.append(("get_set", set_id))
        for set_data in self.sets:
            if set_data["id"] == set_id:
                return {"data": set_data}
        raise NotFoundError("API Error: Not Found (HTTP 404)", status=404)

    async def search_cards(self, query, page=None, page_size=None):
        set_id = query.split(":", 1)[1]
        self.calls.append(("search_cards", set_id, page))
        errors = self.page_errors.get((set_id, page))
        if errors:
            raise errors.pop(0)

        cards = self.cards.get(set_id, [])
        start = (page - 1) * page_size
        data = cards[start:start + page_size]
        return {"data": data, "page": page, "pageSize": page_size, "count": len(data), "totalCount": len(cards)}

    async def get_cards(self, q=None, page=None, page_size=None, **params):
        ids = [part.strip()[len("id:"):] for part in q.split(" OR ")]
        self.calls.append(("get_cards", ids, page_size))
        every_card = [card for cards in self.cards.values() for card in cards]
        return {"data": [card for card in every_card if card["id"] in ids]}

    async def resolve_tcgplayer_url(self, card_id):
        self.calls.append(("resolve_tcgplayer_url", card_id))
        if card_id in self.url_failures:
            raise RuntimeError(f"redirect failed for {card_id}")
        return f"https://www.tcgplayer.com/product/{card_id}"

    def calls_named(self, name):
        return [call for call in self.calls if call[0] == name]


class FailingStore(DatabaseService):
    """DatabaseService whose card writes fail for selected IDs"""

    def __init__(self, connection_string, fail_ids):
        super().__init__(connection_string)
        self.fail_ids = set(fail_ids)

    def upsert_card(self, card_data):
        if card_data["id"] in self.fail_ids:
            raise RuntimeError(f"write failed for {card_data['id']}")
        return super().upsert_card(card_data)


PRICES = {
    "holofoil": {"low": 10.0, "mid": 12.5, "high": 30.0, "market": 13.37},
    "reverseHolofoil": {"low": 2.0, "mid": 3.0, "high": 5.0, "market": 2.75},
}


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
def store(db_url):
    service = DatabaseService(db_url)
    yield service
    service.close()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def sync_config():
    return SyncConfig()
