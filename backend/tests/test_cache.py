"""Tests for the dashboard read cache."""

import fnmatch

import pytest
import redis.asyncio as redis

from farmvault.config import settings
from farmvault.utils import cache
from farmvault.utils.cache import cache_key, cached, invalidate_cache


class InMemoryRedis:
    """Just enough of the redis client for the cache helpers."""

    def __init__(self):
        self.store: dict[str, str] = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value

    async def scan_iter(self, match):
        for key in list(self.store):
            if fnmatch.fnmatch(key, match):
                yield key

    async def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)


class DownRedis:
    async def get(self, key):
        raise redis.ConnectionError("connection refused")


@pytest.fixture
def fake_redis(monkeypatch):
    client = InMemoryRedis()
    monkeypatch.setattr(settings, "cache_enabled", True)

    async def _get_redis():
        return client

    monkeypatch.setattr(cache, "get_redis", _get_redis)
    return client


@pytest.mark.unit
def test_cache_key_generation():
    assert cache_key(limit=50, offset=0) == cache_key(offset=0, limit=50)
    assert cache_key(limit=50, offset=0) != cache_key(limit=100, offset=0)


@pytest.mark.unit
@pytest.mark.asyncio
class TestCachedDecorator:
    async def test_hit_skips_function(self, fake_redis):
        calls = 0

        @cached(ttl=10, prefix="collections")
        async def summaries(*, company_id: str, limit: int, _ledger=None):
            nonlocal calls
            calls += 1
            return {"total": limit}

        assert await summaries(company_id="company-1", limit=5, _ledger=object()) == {"total": 5}
        assert await summaries(company_id="company-1", limit=5, _ledger=object()) == {"total": 5}
        assert calls == 1

        await summaries(company_id="company-2", limit=5)
        assert calls == 2
        assert all(k.split(":")[0] in ("company-1", "company-2") for k in fake_redis.store)

    async def test_invalidation_is_per_company(self, fake_redis):
        fake_redis.store = {
            "company-1:collections:summaries:a": "1",
            "company-1:collections:summaries:b": "2",
            "company-2:collections:summaries:a": "3",
        }

        await invalidate_cache("company-1", "collections")

        assert list(fake_redis.store) == ["company-2:collections:summaries:a"]

    async def test_disabled_cache_always_calls(self, fake_redis, monkeypatch):
        monkeypatch.setattr(settings, "cache_enabled", False)
        calls = 0

        @cached(prefix="collections")
        async def summaries(*, company_id: str):
            nonlocal calls
            calls += 1
            return []

        await summaries(company_id="company-1")
        await summaries(company_id="company-1")
        assert calls == 2
        assert fake_redis.store == {}

    async def test_redis_down_falls_back(self, monkeypatch):
        monkeypatch.setattr(settings, "cache_enabled", True)

        async def _get_redis():
            return DownRedis()

        monkeypatch.setattr(cache, "get_redis", _get_redis)

        @cached(prefix="collections")
        async def summaries(*, company_id: str):
            return ["fresh"]

        assert await summaries(company_id="company-1") == ["fresh"]


def _listing_keys(store: dict) -> list[str]:
    return [k for k in store if k.startswith("company-1:collections:")]


@pytest.mark.api
@pytest.mark.asyncio
class TestListingInvalidation:
    """Writes through the collection routes drop the cached listing."""

    async def test_cash_routes_clear_listing(self, client, headers, fake_redis):
        resp = await client.post(
            "/api/collections/",
            json={
                "project_id": "project-1",
                "crop_type": "french-beans",
                "name": "Block A morning",
                "harvest_date": "2026-03-14",
                "price_per_kg_picker": 20,
            },
            headers=headers,
        )
        cid = resp.json()["id"]
        resp = await client.post(
            f"/api/collections/{cid}/pickers", json={"picker_name": "Wanjiru"}, headers=headers
        )
        picker_id = resp.json()["id"]

        await client.get("/api/collections/", headers=headers)
        assert _listing_keys(fake_redis.store)

        resp = await client.put(
            f"/api/collections/{cid}/cash-pool", json={"cash_received": 500}, headers=headers
        )
        assert resp.status_code == 200
        assert _listing_keys(fake_redis.store) == []

        await client.get("/api/collections/", headers=headers)
        assert _listing_keys(fake_redis.store)

        resp = await client.post(
            f"/api/collections/{cid}/pickers/{picker_id}/mark-paid", headers=headers
        )
        assert resp.status_code == 200
        assert _listing_keys(fake_redis.store) == []
