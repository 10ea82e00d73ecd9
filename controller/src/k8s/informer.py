"""
Watch-driven WebSite cache and event sources for the work queue.
"""

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Set

from kubernetes.client.rest import ApiException
from pydantic import ValidationError

from controller.src.models.site import API_GROUP, KIND, WebSite, parse_website

logger = logging.getLogger(__name__)

READY_INDEX_UNKNOWN = ""

def ready_index_value(site: WebSite) -> str:
    return site.status.ready.value if site.status.ready else READY_INDEX_UNKNOWN

class SiteCache:
    """
    In-memory copy of every WebSite, indexed by status.ready.

    Written by the WebSite watch thread, read by the event loop.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sites: Dict[str, WebSite] = {}
        self._by_ready: Dict[str, Set[str]] = defaultdict(set)
        self.synced = False

    def _unindex(self, key: str):
        old = self._sites.pop(key, None)
        if old is not None:
            self._by_ready[ready_index_value(old)].discard(key)

    def upsert(self, site: WebSite):
        with self._lock:
            self._unindex(site.key)
            self._sites[site.key] = site
            self._by_ready[ready_index_value(site)].add(site.key)

    def delete(self, key: str):
        with self._lock:
            self._unindex(key)

    def replace(self, sites: List[WebSite]):
        with self._lock:
            self._sites = {}
            self._by_ready = defaultdict(set)
            for site in sites:
                self._sites[site.key] = site
                self._by_ready[ready_index_value(site)].add(site.key)
            self.synced = True

    def get(self, key: str) -> Optional[WebSite]:
        with self._lock:
            return self._sites.get(key)

    def list(self) -> List[WebSite]:
        with self._lock:
            return list(self._sites.values())

    def by_ready(self, value: str) -> List[WebSite]:
        """Sites whose status.ready equals value, without scanning the cache."""
        with self._lock:
            return [self._sites[key] for key in sorted(self._by_ready.get(value, ()))]

def object_key(obj: Dict[str, Any]) -> str:
    metadata = obj.get("metadata") or {}
    return f"{metadata.get('namespace', '')}/{metadata.get('name', '')}"

def owner_key(obj: Dict[str, Any]) -> Optional[str]:
    """Key of the WebSite controlling obj, if any."""
    metadata = obj.get("metadata") or {}
    for ref in metadata.get("ownerReferences") or []:
        if not ref.get("controller"):
            continue
        group = ref.get("apiVersion", "").split("/")[0]
        if ref.get("kind") == KIND and group == API_GROUP:
            return f"{metadata.get('namespace', '')}/{ref.get('name')}"
    return None

def sites_referencing_config_map(
    sites: List[WebSite],
    config_map: Dict[str, Any],
    operator_namespace: str,
) -> List[str]:
    """Keys of sites whose scripts or extra resources read this ConfigMap."""
    metadata = config_map.get("metadata") or {}
    name = metadata.get("name")
    namespace = metadata.get("namespace")

    keys = []
    for site in sites:
        sources = [site.spec.build_script, site.spec.post_build_script, *site.spec.extra_resources]
        for source in sources:
            ref = source.config_map if source else None
            if ref is None:
                continue
            if ref.name == name and (ref.namespace or operator_namespace) == namespace:
                keys.append(site.key)
                break
    return keys

def parse_or_none(obj: Dict[str, Any]) -> Optional[WebSite]:
    try:
        return parse_website(obj)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed WebSite {object_key(obj)}: {e}")
        return None

class ResourceWatch:
    """
    List-then-watch loop for one kind, run in its own thread.

    The watch is restarted whenever the server closes it and relisted when
    the resourceVersion has expired.
    """

    def __init__(
        self,
        kube,
        api_version: str,
        kind: str,
        on_event: Callable[[str, Dict[str, Any]], None],
        on_list: Optional[Callable[[List[Dict[str, Any]]], None]] = None,
        label_selector: Optional[str] = None,
        timeout: int = 300,
        retry_delay: float = 5.0,
    ):
        self.kube = kube
        self.api_version = api_version
        self.kind = kind
        self.on_event = on_event
        self.on_list = on_list
        self.label_selector = label_selector
        self.timeout = timeout
        self.retry_delay = retry_delay

    def run(self, stop: threading.Event):
        resource_version = None
        logger.info(f"Watching {self.kind} ({self.api_version})")

        while not stop.is_set():
            try:
                if resource_version is None:
                    items, resource_version = self.kube.list_with_version(
                        self.api_version, self.kind, label_selector=self.label_selector,
                    )
                    if self.on_list:
                        self.on_list(items)

                for event in self.kube.watch(
                    self.api_version,
                    self.kind,
                    resource_version=resource_version,
                    label_selector=self.label_selector,
                    timeout=self.timeout,
                ):
                    if stop.is_set():
                        return
                    obj = event["object"]
                    if event["type"] == "ERROR":
                        logger.warning(f"Watch of {self.kind} returned an error: {obj.get('message')}")
                        if obj.get("code") == 410:
                            resource_version = None
                        break
                    resource_version = (obj.get("metadata") or {}).get("resourceVersion", resource_version)
                    self.on_event(event["type"], obj)

            except ApiException as e:
                if e.status == 410:
                    resource_version = None
                    continue
                logger.error(f"Watch of {self.kind} failed: {e}")
                stop.wait(self.retry_delay)
            except Exception as e:
                logger.exception(f"Watch of {self.kind} failed: {e}")
                stop.wait(self.retry_delay)
