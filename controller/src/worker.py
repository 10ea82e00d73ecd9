"""
Event dispatch - feeds WebSite keys to reconcile workers.
"""

import asyncio
import logging
import threading
from typing import Dict, List, Optional, Set

import uvicorn

from controller.src.config import Settings, get_settings
from controller.src.k8s.builders import MANAGED_BY_KEY, OPERATOR_NAME
from controller.src.k8s.informer import (
    ResourceWatch,
    SiteCache,
    object_key,
    owner_key,
    parse_or_none,
    sites_referencing_config_map,
)
from controller.src.models.site import API_GROUP_VERSION, KIND, split_key
from controller.src.routes.health import create_health_app
from controller.src.services.revision_watcher import RevisionWatcher

logger = logging.getLogger(__name__)

OWNED_KINDS = [
    ("apps/v1", "Deployment"),
    ("v1", "Service"),
    ("v1", "ConfigMap"),
    ("batch/v1", "Job"),
]

class WorkQueue:
    """
    De-duplicating queue of WebSite keys.

    A key is never handed to two workers at once: adding a key that is
    being processed marks it dirty, and it is queued again once done()
    is called for it. Must be used from a single event loop.
    """

    def __init__(self, base_delay: float = 0.5, max_delay: float = 300.0):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._queue: asyncio.Queue = asyncio.Queue()
        self._pending: Set[str] = set()
        self._processing: Set[str] = set()
        self._dirty: Set[str] = set()
        self._failures: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def add(self, key: str):
        if key in self._processing:
            self._dirty.add(key)
            return
        if key in self._pending:
            return
        self._pending.add(key)
        self._queue.put_nowait(key)

    def add_after(self, key: str, delay: float):
        if delay <= 0:
            self.add(key)
            return
        asyncio.get_running_loop().call_later(delay, self.add, key)

    def add_rate_limited(self, key: str):
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        self.add_after(key, self.backoff(failures))

    def backoff(self, failures: int) -> float:
        return min(self.base_delay * (2 ** failures), self.max_delay)

    def forget(self, key: str):
        self._failures.pop(key, None)

    def num_requeues(self, key: str) -> int:
        return self._failures.get(key, 0)

    async def get(self) -> str:
        key = await self._queue.get()
        self._pending.discard(key)
        self._processing.add(key)
        return key

    def done(self, key: str):
        self._processing.discard(key)
        if key in self._dirty:
            self._dirty.discard(key)
            self.add(key)

class Manager:
    """Runs watches, reconcile workers, the revision watcher and health endpoints."""

    def __init__(self, kube, reconciler, revision_client, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.kube = kube
        self.reconciler = reconciler
        self.revision_client = revision_client
        self.cache = SiteCache()
        self.queue = WorkQueue(self.settings.requeue_base_delay, self.settings.requeue_max_delay)
        self._stop = threading.Event()

    # Watch handlers run in watch threads and hop onto the loop to enqueue.

    def _site_handlers(self, enqueue):
        def on_list(items):
            sites = [site for site in (parse_or_none(obj) for obj in items) if site]
            self.cache.replace(sites)
            logger.info(f"WebSite cache synced with {len(sites)} sites")
            for site in sites:
                enqueue(site.key)

        def on_event(event_type, obj):
            key = object_key(obj)
            if event_type == "DELETED":
                self.cache.delete(key)
            else:
                site = parse_or_none(obj)
                if site:
                    self.cache.upsert(site)
            enqueue(key)

        return on_list, on_event

    def _owned_handler(self, enqueue):
        def on_event(event_type, obj):
            key = owner_key(obj)
            if key:
                enqueue(key)
        return on_event

    def _config_map_handler(self, enqueue):
        def on_event(event_type, obj):
            keys = sites_referencing_config_map(self.cache.list(), obj, self.settings.operator_namespace)
            for key in keys:
                logger.debug(f"ConfigMap {object_key(obj)} changed, triggering WebSite {key}")
                enqueue(key)
        return on_event

    def build_watches(self, enqueue) -> List[ResourceWatch]:
        timeout = self.settings.watch_timeout_seconds
        on_list, on_event = self._site_handlers(enqueue)
        watches = [
            ResourceWatch(self.kube, API_GROUP_VERSION, KIND, on_event, on_list=on_list, timeout=timeout),
        ]
        for api_version, kind in OWNED_KINDS:
            watches.append(ResourceWatch(
                self.kube,
                api_version,
                kind,
                self._owned_handler(enqueue),
                label_selector=f"{MANAGED_BY_KEY}={OPERATOR_NAME}",
                timeout=timeout,
            ))
        # Script ConfigMaps written by users carry no operator labels
        watches.append(ResourceWatch(self.kube, "v1", "ConfigMap", self._config_map_handler(enqueue), timeout=timeout))
        return watches

    async def process_next(self):
        """Reconcile one key from the queue and schedule its follow-up."""
        key = await self.queue.get()
        try:
            namespace, name = split_key(key)
            result = await asyncio.to_thread(self.reconciler.reconcile, namespace, name)
        except Exception as e:
            logger.warning(f"Reconcile of WebSite {key} failed, retry #{self.queue.num_requeues(key) + 1}: {e}")
            self.queue.add_rate_limited(key)
        else:
            if result.requeue_after:
                self.queue.forget(key)
                self.queue.add_after(key, result.requeue_after)
            elif result.requeue:
                self.queue.add_rate_limited(key)
            else:
                self.queue.forget(key)
        finally:
            self.queue.done(key)

    async def reconcile_worker(self, worker_id: int):
        logger.info(f"Reconcile worker {worker_id} started")
        while True:
            await self.process_next()

    async def pump_triggers(self, channel: asyncio.Queue):
        """Move revision-watcher triggers onto the work queue."""
        while True:
            key = await channel.get()
            self.queue.add(key)

    async def serve_health(self):
        app = create_health_app(self.cache, lambda: len(self.queue))
        server = uvicorn.Server(uvicorn.Config(
            app,
            host=self.settings.health_host,
            port=self.settings.health_port,
            log_level="warning",
        ))
        await server.serve()

    async def run(self):
        loop = asyncio.get_running_loop()

        def enqueue(key: str):
            loop.call_soon_threadsafe(self.queue.add, key)

        for watch in self.build_watches(enqueue):
            threading.Thread(target=watch.run, args=(self._stop,), daemon=True, name=f"watch-{watch.kind}").start()

        channel: asyncio.Queue = asyncio.Queue(maxsize=self.settings.trigger_channel_size)
        watcher = RevisionWatcher(self.cache, self.revision_client, channel, self.settings.revision_watch_interval)

        tasks = [
            asyncio.create_task(self.reconcile_worker(i))
            for i in range(self.settings.max_concurrent_reconciles)
        ]
        tasks.append(asyncio.create_task(watcher.run()))
        tasks.append(asyncio.create_task(self.pump_triggers(channel)))
        tasks.append(asyncio.create_task(self.serve_health()))

        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if not task.cancelled() and task.exception():
                    raise task.exception()
            logger.info("Health server stopped, shutting down")
        finally:
            self._stop.set()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

def run_worker(manager: Manager):
    """Entry point for the manager loop."""
    try:
        asyncio.run(manager.run())
    except KeyboardInterrupt:
        logger.info("Operator shutting down...")
