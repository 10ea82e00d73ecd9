"""Tests for the operator health endpoints."""

from fastapi.testclient import TestClient

from controller.src.k8s.informer import SiteCache
from controller.src.models.site import parse_website
from controller.src.routes.health import create_health_app

def test_healthz():
    client = TestClient(create_health_app(SiteCache(), lambda: 0))

    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

def test_readyz_waits_for_cache_sync(site_factory):
    cache = SiteCache()
    client = TestClient(create_health_app(cache, lambda: 3))

    assert client.get("/readyz").status_code == 503

    cache.replace([parse_website(site_factory())])
    response = client.get("/readyz")

    assert response.status_code == 200
    assert response.json() == {"status": "ready", "websites": 1, "queue_length": 3}
