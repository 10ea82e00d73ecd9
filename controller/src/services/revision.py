"""
Client for the per-site repo-checker endpoint.
"""

import logging
from typing import Optional

import httpx

from controller.src.config import get_settings
from controller.src.k8s.builders import repo_checker_name
from controller.src.models.site import WebSite

logger = logging.getLogger(__name__)
settings = get_settings()

class RevisionNotReady(Exception):
    """The repo-checker has not fetched a revision yet."""
    pass

class RevisionCheckError(Exception):
    """The repo-checker could not be reached or answered unexpectedly."""
    pass

class RevisionClient:
    """Asks a site's repo-checker Service for the latest commit hash."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        cluster_domain: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.revision_request_timeout
        self.cluster_domain = cluster_domain or settings.cluster_domain
        self._client = httpx.Client(timeout=self.timeout, transport=transport)

    def url_for(self, site: WebSite) -> str:
        host = f"{repo_checker_name(site)}.{site.namespace}.svc.{self.cluster_domain}"
        return f"http://{host}/"

    def get_latest_revision(self, site: WebSite) -> str:
        url = self.url_for(site)
        try:
            response = self._client.get(url)
        except httpx.HTTPError as e:
            raise RevisionCheckError(f"Failed to reach repo-checker at {url}: {e}") from e

        if response.status_code == 404:
            raise RevisionNotReady(f"Revision of {site.key} is not ready yet")

        if response.status_code != 200:
            raise RevisionCheckError(
                f"repo-checker for {site.key} answered {response.status_code} {response.reason_phrase}"
            )

        return response.text.strip()

    def close(self):
        self._client.close()
