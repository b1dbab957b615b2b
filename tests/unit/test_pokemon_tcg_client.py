"""
Tests for PokemonTCGClient: retries, error classification and request shape.

The aiohttp session is replaced with FakeSession; delays are recorded, not slept.
"""
import asyncio

import aiohttp
import pytest

from conftest import FakeResponse, FakeSession, SleepRecorder
from tcg_sync.api.pokemon_tcg import PokemonTCGClient, extract_market_prices
from tcg_sync.exceptions import APIError, MalformedResponseError, NotFoundError, RateLimitError
from tcg_sync.models import SyncConfig
from tcg_sync.utils.http_session import USER_AGENT
from tcg_sync.utils.rate_limiter import FixedDelayPolicy, RateLimitPolicy


def make_client(responses, api_key=None, config=None, rate_limiter=None):
    sleeper = SleepRecorder()
    session = FakeSession(responses)
    client = PokemonTCGClient(
        api_key=api_key,
        config=config or SyncConfig(),
        session=session,
        rate_limiter=rate_limiter or RateLimitPolicy(),
        sleep=sleeper.sleep,
    )
    return client, session, sleeper


def ok(body):
    return FakeResponse(200, body=body)


# ── Retry behaviour ───────────────────────────────────────────────────────────

def test_rate_limited_once_then_success_retries_with_linear_delay():
    client, session, sleeper = make_client([FakeResponse(429, reason="Too Many Requests"), ok({"data": []})])

    body = asyncio.run(client.request("/sets"))

    assert body == {"data": []}
    assert len(session.calls) == 2
    assert sleeper.calls == [2.5]


def test_retry_after_header_overrides_backoff():
    client, _, sleeper = make_client(
        [FakeResponse(429, headers={"Retry-After": "7"}), ok({"data": {"id": "sv4"}})]
    )

    asyncio.run(client.request("/sets/sv4"))

    assert sleeper.calls == [7.0]


def test_backoff_grows_linearly_with_attempt():
    config = SyncConfig(max_retries=3, retry_delay=2.5)
    client, _, sleeper = make_client([FakeResponse(429)] * 3 + [ok({"data": []})], config=config)

    asyncio.run(client.request("/cards"))

    assert sleeper.calls == [2.5, 5.0, 7.5]


def test_rate_limit_budget_exhausted_raises():
    config = SyncConfig(max_retries=2)
    client, session, _ = make_client([FakeResponse(429)] * 3, config=config)

    with pytest.raises(RateLimitError):
        asyncio.run(client.request("/cards"))
    assert len(session.calls) == 3


def test_malformed_body_is_retried():
    client, session, sleeper = make_client([FakeResponse(200, text="<html>oops"), ok({"data": [1]})])

    body = asyncio.run(client.request("/types"))

    assert body == {"data": [1]}
    assert len(session.calls) == 2
    assert sleeper.calls == [2.5]


def test_empty_body_exhausts_into_malformed_error():
    config = SyncConfig(max_retries=1)
    client, _, _ = make_client([FakeResponse(200, text=""), FakeResponse(200, text="  ")], config=config)

    with pytest.raises(MalformedResponseError):
        asyncio.run(client.request("/types"))


def test_undecodable_body_is_malformed_and_retried():
    garbled = FakeResponse(200, raw=b'{"data": "\xff\xfe"}')
    client, session, sleeper = make_client([garbled, ok({"data": []})], config=SyncConfig(max_retries=2))

    body = asyncio.run(client.request("/sets"))

    assert body == {"data": []}
    assert len(session.calls) == 2
    assert sleeper.calls == [2.5]


def test_undecodable_body_exhausts_into_malformed_error():
    config = SyncConfig(max_retries=1)
    responses = [FakeResponse(200, raw=b"\xff\xfe\xfd") for _ in range(2)]
    client, session, _ = make_client(responses, config=config)

    with pytest.raises(MalformedResponseError):
        asyncio.run(client.request("/sets"))
    assert len(session.calls) == 2


def test_undecodable_error_body_still_classified():
    client, session, _ = make_client([FakeResponse(500, raw=b"bad \xff gateway", reason="Internal Server Error")])

    with pytest.raises(APIError) as excinfo:
        asyncio.run(client.request("/cards"))

    assert excinfo.value.status == 500
    assert "bad" in str(excinfo.value)
    assert len(session.calls) == 1


def test_network_errors_reraise_original_after_budget():
    config = SyncConfig(max_retries=2)
    errors = [aiohttp.ClientConnectionError("connection reset") for _ in range(3)]
    client, session, sleeper = make_client(errors, config=config)

    with pytest.raises(aiohttp.ClientConnectionError):
        asyncio.run(client.request("/sets"))
    assert len(session.calls) == 3
    assert sleeper.calls == [2.5, 5.0]


def test_timeout_is_retried():
    client, _, _ = make_client([asyncio.TimeoutError(), ok({"data": []})])

    assert asyncio.run(client.request("/sets")) == {"data": []}


def test_per_call_retry_override():
    client, session, _ = make_client([FakeResponse(429)])

    with pytest.raises(RateLimitError):
        asyncio.run(client.request("/sets", retries=0))
    assert len(session.calls) == 1


# ── Error classification ──────────────────────────────────────────────────────

def test_error_message_extracted_from_json_body():
    client, session, _ = make_client(
        [FakeResponse(400, body={"error": {"message": "Bad query syntax", "code": 400}}, reason="Bad Request")]
    )

    with pytest.raises(APIError) as excinfo:
        asyncio.run(client.request("/cards", {"q": "set.id:"}))

    assert "Bad query syntax" in str(excinfo.value)
    assert excinfo.value.status == 400
    assert len(session.calls) == 1


def test_error_message_falls_back_to_raw_text():
    client, _, _ = make_client([FakeResponse(500, text="upstream exploded", reason="Internal Server Error")])

    with pytest.raises(APIError) as excinfo:
        asyncio.run(client.request("/cards"))

    assert "upstream exploded" in str(excinfo.value)


def test_error_message_falls_back_to_reason():
    client, _, _ = make_client([FakeResponse(503, text="", reason="Service Unavailable")])

    with pytest.raises(APIError) as excinfo:
        asyncio.run(client.request("/cards"))

    assert "Service Unavailable" in str(excinfo.value)


def test_404_is_not_found_and_not_retried():
    client, session, sleeper = make_client(
        [FakeResponse(404, body={"error": {"message": "Not found", "code": 404}}, reason="Not Found")]
    )

    with pytest.raises(NotFoundError):
        asyncio.run(client.get_set("nope"))
    assert len(session.calls) == 1
    assert sleeper.calls == []


# ── Request shape ─────────────────────────────────────────────────────────────

def test_api_key_header_sent_when_configured():
    client, session, _ = make_client([ok({"data": []})], api_key="secret")

    asyncio.run(client.request("/sets"))

    assert session.calls[0]["headers"]["X-Api-Key"] == "secret"


def test_no_api_key_header_without_key():
    client, session, _ = make_client([ok({"data": []})])

    asyncio.run(client.request("/sets"))

    assert "X-Api-Key" not in session.calls[0]["headers"]


def test_none_params_dropped_and_values_stringified():
    client, session, _ = make_client([ok({"data": []})])

    asyncio.run(client.get_cards(q="set.id:sv4", page=2, page_size=None))

    call = session.calls[0]
    assert call["url"] == "https://api.pokemontcg.io/v2/cards"
    assert call["params"] == {"q": "set.id:sv4", "page": "2"}


def test_get_sets_defaults_to_newest_first():
    client, session, _ = make_client([ok({"data": []})])

    asyncio.run(client.get_sets(page_size=250))

    assert session.calls[0]["params"] == {"pageSize": "250", "orderBy": "-releaseDate"}


def test_get_card_unwraps_data():
    client, _, _ = make_client([ok({"data": {"id": "sv4-1", "name": "Pawmi"}})])

    assert asyncio.run(client.get_card("sv4-1")) == {"id": "sv4-1", "name": "Pawmi"}


def test_reference_lists():
    client, _, _ = make_client([ok({"data": ["Fire", "Water"]}), ok({"data": ["Common", "Rare"]})])

    assert asyncio.run(client.get_types()) == ["Fire", "Water"]
    assert asyncio.run(client.get_rarities()) == ["Common", "Rare"]


def test_rate_limit_policy_consulted_before_each_attempt():
    sleeper = SleepRecorder()
    policy = FixedDelayPolicy(0.05, sleep=sleeper.sleep)
    client = PokemonTCGClient(
        session=FakeSession([FakeResponse(429), ok({"data": []})]),
        rate_limiter=policy,
        sleep=sleeper.sleep,
    )

    asyncio.run(client.request("/sets"))

    assert policy.total_requests == 2
    assert sleeper.calls == [0.05, 2.5, 0.05]


def test_close_leaves_injected_session_open():
    client, session, _ = make_client([])

    asyncio.run(client.close())

    assert session.closed is False


# ── TCGplayer URLs ────────────────────────────────────────────────────────────

def test_resolve_tcgplayer_url_follows_redirect():
    product = "https://www.tcgplayer.com/product/517045/pokemon-paradox-rift-pawmi"
    client, session, _ = make_client([FakeResponse(200, url=product)])

    assert asyncio.run(client.resolve_tcgplayer_url("sv4-1")) == product
    assert session.calls[0]["url"] == "https://prices.pokemontcg.io/tcgplayer/sv4-1"
    assert session.calls[0]["allow_redirects"] is True


def test_resolve_tcgplayer_url_falls_back_to_search_on_network_error():
    client, _, _ = make_client([aiohttp.ClientConnectionError("connection reset")])

    url = asyncio.run(client.resolve_tcgplayer_url("sv4-1"))

    assert url == "https://www.tcgplayer.com/search/pokemon/product?q=sv4-1"


def test_resolve_tcgplayer_url_falls_back_when_redirect_stays_off_site():
    client, _, _ = make_client([FakeResponse(404, url="https://prices.pokemontcg.io/tcgplayer/zzz-1")])

    url = asyncio.run(client.resolve_tcgplayer_url("zzz-1"))

    assert url == "https://www.tcgplayer.com/search/pokemon/product?q=zzz-1"


# ── Price extraction ──────────────────────────────────────────────────────────

def test_extract_market_prices_maps_finishes():
    card = {
        "tcgplayer": {
            "prices": {
                "holofoil": {"market": 13.37},
                "1stEditionHolofoil": {"market": 250},
                "reverseHolofoil": {"low": 1.0},
            }
        }
    }

    assert extract_market_prices(card) == {
        "normal": None,
        "holofoil": 13.37,
        "reverse_holofoil": None,
        "first_edition": 250.0,
    }


def test_extract_market_prices_without_prices():
    assert extract_market_prices({"id": "x"}) is None
    assert extract_market_prices({"tcgplayer": {"url": "u"}}) is None


def test_client_creates_and_closes_its_own_session():
    async def run():
        client = PokemonTCGClient(rate_limiter=RateLimitPolicy())
        session = client._get_session()
        assert session.headers["User-Agent"] == USER_AGENT
        await client.close()
        return session

    assert asyncio.run(run()).closed
