"""Tests for the repo-checker HTTP client."""

import httpx
import pytest
from controller.src.models.site import parse_website
from controller.src.services.revision import RevisionCheckError, RevisionClient, RevisionNotReady

def client_answering(handler):
    return RevisionClient(timeout=1, cluster_domain="cluster.local", transport=httpx.MockTransport(handler))

def test_url_for(site_factory):
    site = parse_website(site_factory())
    client = RevisionClient(cluster_domain="example.local")

    assert client.url_for(site) == "http://mysite-repo-checker.test.svc.example.local/"
    client.close()

def test_returns_stripped_revision(site_factory):
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, text="abc123\n")

    client = client_answering(handler)
    assert client.get_latest_revision(parse_website(site_factory())) == "abc123"
    assert seen == ["http://mysite-repo-checker.test.svc.cluster.local/"]

def test_404_means_not_ready(site_factory):
    client = client_answering(lambda request: httpx.Response(404, text="revision not found"))

    with pytest.raises(RevisionNotReady):
        client.get_latest_revision(parse_website(site_factory()))

def test_other_status_is_an_error(site_factory):
    client = client_answering(lambda request: httpx.Response(500))

    with pytest.raises(RevisionCheckError) as exc_info:
        client.get_latest_revision(parse_website(site_factory()))
    assert "500" in str(exc_info.value)

def test_transport_error(site_factory):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = client_answering(handler)

    with pytest.raises(RevisionCheckError) as exc_info:
        client.get_latest_revision(parse_website(site_factory()))
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
