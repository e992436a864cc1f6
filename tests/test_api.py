"""
Tests for the diagnostics endpoints.
"""
import pytest
from fastapi.testclient import TestClient

from swrcache import CacheOptions, CacheTag
from swrcache.api import create_app


@pytest.fixture
def client(cache):
    return TestClient(create_app(cache))


def test_health_endpoint_returns_ok(client):
    """Test that /health returns status: ok"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_stats_endpoint(client, cache, clock):
    """Test that /cache/stats reports counts by state"""
    cache.set("a", 1, CacheOptions(fresh_for=10, stale_for=20))
    cache.set("b", 2, CacheOptions(fresh_for=100, stale_for=200))
    clock.advance(15)
    data = client.get("/cache/stats").json()
    assert data["total"] == 2
    assert data["fresh"] == 1
    assert data["stale"] == 1
    assert data["expired"] == 0
    assert "hit_rate_percent" in data


def test_invalidate_by_tags_endpoint(client, cache):
    """Test that POST /cache/invalidate removes only tagged entries"""
    cache.set("images", 1, CacheOptions(tags={CacheTag.USER_IMAGES}))
    cache.set("quota", 2, CacheOptions(tags={CacheTag.USER_QUOTA}))
    response = client.post("/cache/invalidate", json={"tags": [CacheTag.USER_IMAGES]})
    assert response.status_code == 200
    assert response.json() == {"invalidated": 1}
    assert "images" not in cache
    assert "quota" in cache


def test_invalidate_requires_tags(client):
    """Test that an empty tag list is a validation error"""
    response = client.post("/cache/invalidate", json={"tags": []})
    assert response.status_code == 422


def test_delete_key_endpoint(client, cache):
    cache.set("k", 1)
    assert client.delete("/cache/k").json() == {"invalidated": True}
    assert client.delete("/cache/k").status_code == 404


def test_clear_endpoint(client, cache):
    cache.set("a", 1)
    cache.set("b", 2)
    response = client.delete("/cache")
    assert response.json() == {"cleared": 2}
    assert len(cache) == 0
