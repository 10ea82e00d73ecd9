"""Tests for the KubeClient facade over the dynamic client."""

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from controller.src.k8s import client as k8s_client
from controller.src.k8s.client import KubeClient, to_dict

class StubResponse:
    def __init__(self, data):
        self.data = data

    def to_dict(self):
        return self.data

class StubStatus:
    def __init__(self, calls):
        self.calls = calls

    def patch(self, **kwargs):
        self.calls.append(("status.patch", kwargs))
        return StubResponse({"status": kwargs["body"]["status"]})

class StubResource:
    """Records calls; raises `error` from get/delete when set."""

    def __init__(self, api_version, kind):
        self.api_version = api_version
        self.kind = kind
        self.calls = []
        self.error = None
        self.status = StubStatus(self.calls)

    def get(self, **kwargs):
        self.calls.append(("get", kwargs))
        if self.error:
            raise self.error
        if "name" in kwargs:
            return StubResponse({"metadata": {"name": kwargs["name"]}})
        return StubResponse({"metadata": {"resourceVersion": "42"}, "items": [{"metadata": {"name": "a"}}]})

    def create(self, **kwargs):
        self.calls.append(("create", kwargs))
        return StubResponse(kwargs["body"])

    def replace(self, **kwargs):
        self.calls.append(("replace", kwargs))
        return StubResponse(kwargs["body"])

    def delete(self, **kwargs):
        self.calls.append(("delete", kwargs))
        if self.error:
            raise self.error

class StubResources:
    def __init__(self):
        self.by_kind = {}

    def get(self, api_version, kind):
        key = (api_version, kind)
        if key not in self.by_kind:
            self.by_kind[key] = StubResource(api_version, kind)
        return self.by_kind[key]

class StubDynamicClient:
    def __init__(self, events=()):
        self.resources = StubResources()
        self.events = list(events)
        self.watch_calls = []

    def watch(self, resource, **kwargs):
        self.watch_calls.append((resource.kind, kwargs))
        yield from self.events

@pytest.fixture
def dyn():
    return StubDynamicClient()

def test_get_returns_object(dyn):
    kube = KubeClient(dyn=dyn)

    assert kube.get("v1", "ConfigMap", "test", "cm") == {"metadata": {"name": "cm"}}
    resource = dyn.resources.get("v1", "ConfigMap")
    assert resource.calls == [("get", {"name": "cm", "namespace": "test"})]

def test_get_missing_returns_none(dyn):
    dyn.resources.get("apps/v1", "Deployment").error = ApiException(status=404, reason="Not Found")

    assert KubeClient(dyn=dyn).get("apps/v1", "Deployment", "test", "mysite") is None

def test_get_other_errors_propagate(dyn):
    dyn.resources.get("apps/v1", "Deployment").error = ApiException(status=403, reason="Forbidden")

    with pytest.raises(ApiException) as exc_info:
        KubeClient(dyn=dyn).get("apps/v1", "Deployment", "test", "mysite")
    assert exc_info.value.status == 403

def test_list_with_version(dyn):
    items, version = KubeClient(dyn=dyn).list_with_version("v1", "ConfigMap", label_selector="a=b")

    assert items == [{"metadata": {"name": "a"}}]
    assert version == "42"
    assert dyn.resources.get("v1", "ConfigMap").calls == [("get", {"label_selector": "a=b"})]

def test_create_and_replace_use_object_namespace(dyn):
    kube = KubeClient(dyn=dyn)
    obj = {"apiVersion": "batch/v1", "kind": "Job", "metadata": {"name": "mysite", "namespace": "test"}}

    kube.create(obj)
    kube.replace(obj)

    calls = dyn.resources.get("batch/v1", "Job").calls
    assert calls == [
        ("create", {"body": obj, "namespace": "test"}),
        ("replace", {"body": obj, "namespace": "test"}),
    ]

def test_delete_passes_propagation_policy(dyn):
    KubeClient(dyn=dyn).delete("batch/v1", "Job", "test", "mysite")

    assert dyn.resources.get("batch/v1", "Job").calls == [
        ("delete", {"name": "mysite", "namespace": "test", "body": {"propagationPolicy": "Background"}}),
    ]

def test_delete_missing_is_ignored(dyn):
    dyn.resources.get("batch/v1", "Job").error = ApiException(status=404, reason="Not Found")

    KubeClient(dyn=dyn).delete("batch/v1", "Job", "test", "mysite")

def test_delete_other_errors_propagate(dyn):
    dyn.resources.get("batch/v1", "Job").error = ApiException(status=500, reason="Internal")

    with pytest.raises(ApiException):
        KubeClient(dyn=dyn).delete("batch/v1", "Job", "test", "mysite")

def test_patch_status_is_a_merge_patch(dyn):
    result = KubeClient(dyn=dyn).patch_status(
        "sitex.dev/v1beta1", "WebSite", "test", "mysite", {"ready": "True", "revision": "abc123"},
    )

    assert result == {"status": {"ready": "True", "revision": "abc123"}}
    name, kwargs = dyn.resources.get("sitex.dev/v1beta1", "WebSite").calls[0]
    assert name == "status.patch"
    assert kwargs == {
        "body": {"metadata": {"name": "mysite"}, "status": {"ready": "True", "revision": "abc123"}},
        "name": "mysite",
        "namespace": "test",
        "content_type": "application/merge-patch+json",
    }

def test_watch_yields_raw_objects():
    raw = {"metadata": {"name": "mysite", "namespace": "test", "resourceVersion": "7"}}
    dyn = StubDynamicClient(events=[{"type": "MODIFIED", "object": object(), "raw_object": raw}])

    events = list(KubeClient(dyn=dyn).watch("sitex.dev/v1beta1", "WebSite", resource_version="6", timeout=30))

    assert events == [{"type": "MODIFIED", "object": raw}]
    assert dyn.watch_calls == [
        ("WebSite", {"resource_version": "6", "label_selector": None, "timeout": 30}),
    ]

def test_to_dict_serializes_models_with_one_api_client():
    first = to_dict(client.V1EnvVar(name="REVISION", value="abc123"))
    serializer = k8s_client._serializer
    second = to_dict([client.V1LocalObjectReference(name="registry")])

    assert first == {"name": "REVISION", "value": "abc123"}
    assert second == [{"name": "registry"}]
    assert serializer is not None
    assert k8s_client._serializer is serializer
