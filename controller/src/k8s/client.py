"""
Kubernetes client initialization and utilities.
"""

from kubernetes import client, config, dynamic
from kubernetes.client.rest import ApiException
from typing import Any, Dict, Iterator, Optional
import logging

from controller.src.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

_api_client = None
_core_v1 = None
_dynamic = None
_serializer = None

def init_k8s_client():
    """Initialize Kubernetes client."""
    global _api_client, _core_v1, _dynamic

    try:
        if settings.k8s_in_cluster:
            # Running inside Kubernetes
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes config")
        else:
            # Running locally (kind, minikube, etc.)
            config.load_kube_config()
            logger.info("Loaded local Kubernetes config")

        _api_client = client.ApiClient()
        _core_v1 = client.CoreV1Api(_api_client)
        _dynamic = dynamic.DynamicClient(_api_client)

        # Test connection
        _core_v1.list_namespace(limit=1)
        logger.info("Kubernetes client initialized successfully")

        return True
    except Exception as e:
        logger.error(f"Failed to initialize Kubernetes client: {e}")
        return False

def get_dynamic_client() -> dynamic.DynamicClient:
    """Get the dynamic client used for every typed and untyped object."""
    global _dynamic
    if _dynamic is None:
        init_k8s_client()
    return _dynamic

def to_dict(model: Any) -> Dict[str, Any]:
    """Serialize a kubernetes model object into its API (camelCase) form."""
    global _serializer
    if _serializer is None:
        _serializer = client.ApiClient()
    return _serializer.sanitize_for_serialization(model)

class KubeClient:
    """
    Thin facade over the dynamic client that speaks plain dicts.

    Everything the reconciler touches goes through these methods, so tests
    can swap in an in-memory implementation with the same surface.
    """

    def __init__(self, dyn: Optional[dynamic.DynamicClient] = None):
        self._dyn = dyn

    @property
    def dyn(self) -> dynamic.DynamicClient:
        if self._dyn is None:
            self._dyn = get_dynamic_client()
        return self._dyn

    def _resource(self, api_version: str, kind: str):
        return self.dyn.resources.get(api_version=api_version, kind=kind)

    def get(self, api_version: str, kind: str, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        try:
            obj = self._resource(api_version, kind).get(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        return obj.to_dict()

    def list_with_version(
        self,
        api_version: str,
        kind: str,
        label_selector: Optional[str] = None,
    ) -> tuple:
        """List across all namespaces, returning items and the list resourceVersion."""
        result = self._resource(api_version, kind).get(label_selector=label_selector).to_dict()
        return result.get("items") or [], result["metadata"].get("resourceVersion")

    def create(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        resource = self._resource(obj["apiVersion"], obj["kind"])
        return resource.create(body=obj, namespace=obj["metadata"].get("namespace")).to_dict()

    def replace(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        resource = self._resource(obj["apiVersion"], obj["kind"])
        return resource.replace(body=obj, namespace=obj["metadata"].get("namespace")).to_dict()

    def delete(
        self,
        api_version: str,
        kind: str,
        namespace: str,
        name: str,
        propagation_policy: str = "Background",
    ):
        """Delete an object; a missing object is not an error."""
        try:
            self._resource(api_version, kind).delete(
                name=name,
                namespace=namespace,
                body={"propagationPolicy": propagation_policy},
            )
            logger.info(f"Deleted {kind} {namespace}/{name}")
        except ApiException as e:
            if e.status != 404:
                raise

    def patch_status(
        self,
        api_version: str,
        kind: str,
        namespace: str,
        name: str,
        status: Dict[str, Any],
    ) -> Dict[str, Any]:
        resource = self._resource(api_version, kind)
        return resource.status.patch(
            body={"metadata": {"name": name}, "status": status},
            name=name,
            namespace=namespace,
            content_type="application/merge-patch+json",
        ).to_dict()

    def watch(
        self,
        api_version: str,
        kind: str,
        resource_version: Optional[str] = None,
        label_selector: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> Iterator[Dict[str, Any]]:
        """Yield raw watch events ({"type": ..., "object": {...}}) across all namespaces."""
        resource = self._resource(api_version, kind)
        for event in self.dyn.watch(
            resource,
            resource_version=resource_version,
            label_selector=label_selector,
            timeout=timeout,
        ):
            yield {"type": event["type"], "object": event["raw_object"]}
