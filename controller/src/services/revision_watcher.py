"""
Background loop that turns repo-checker polling into reconcile triggers.
"""

import asyncio
import logging

from controller.src.k8s.informer import SiteCache
from controller.src.models.site import ReadyStatus

logger = logging.getLogger(__name__)

class RevisionWatcher:
    """
    Periodically compares every ready site's latest upstream revision with
    the revision it last applied, and puts the key of each changed site on
    the trigger channel. Sites are checked one after another.
    """

    def __init__(self, cache: SiteCache, revision_client, channel: asyncio.Queue, interval: float = 60.0):
        self.cache = cache
        self.revision_client = revision_client
        self.channel = channel
        self.interval = interval

    async def run(self):
        """Tick until cancelled; cancellation propagates to the caller."""
        logger.info(f"Revision watcher started, interval {self.interval}s")
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.check_revisions()
            except Exception as e:
                logger.exception(f"Revision check failed: {e}")

    async def check_revisions(self) -> int:
        """Run one tick. Returns the number of triggers emitted."""
        emitted = 0

        for site in self.cache.by_ready(ReadyStatus.TRUE.value):
            try:
                latest = await asyncio.to_thread(self.revision_client.get_latest_revision, site)
            except Exception as e:
                logger.error(f"Failed to get latest revision of WebSite {site.key}: {e}")
                continue

            if latest == site.status.revision:
                continue

            logger.info(
                f"Revision of WebSite {site.key} changed: "
                f"current={site.status.revision or '<none>'} latest={latest}"
            )
            await self.channel.put(site.key)
            emitted += 1

        return emitted
