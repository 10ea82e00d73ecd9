"""Shared fixtures: an in-memory cluster and a scripted repo-checker."""

import copy
import itertools

import pytest
from kubernetes.client.rest import ApiException

from controller.src.config import Settings
from controller.src.models.site import API_GROUP_VERSION, KIND
from controller.src.services.reconciler import WebSiteReconciler

class FakeKube:
    """Stores objects by (apiVersion, kind, namespace, name) like an API server would."""

    def __init__(self):
        self.objects = {}
        self.calls = []
        self._uids = itertools.count(1)
        self._versions = itertools.count(1)

    def _key(self, api_version, kind, namespace, name):
        return (api_version, kind, namespace, name)

    def _obj_key(self, obj):
        meta = obj["metadata"]
        return self._key(obj["apiVersion"], obj["kind"], meta.get("namespace"), meta["name"])

    def add(self, obj):
        """Seed an object directly, bypassing call recording."""
        obj = copy.deepcopy(obj)
        obj["metadata"].setdefault("uid", f"uid-{next(self._uids)}")
        obj["metadata"]["resourceVersion"] = str(next(self._versions))
        self.objects[self._obj_key(obj)] = obj
        return copy.deepcopy(obj)

    def get(self, api_version, kind, namespace, name):
        obj = self.objects.get(self._key(api_version, kind, namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    def find(self, kind, namespace, name):
        for (_, k, ns, n), obj in self.objects.items():
            if (k, ns, n) == (kind, namespace, name):
                return obj
        return None

    def create(self, obj):
        key = self._obj_key(obj)
        if key in self.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        self.calls.append(("create", obj["kind"], obj["metadata"]["name"]))
        obj = copy.deepcopy(obj)
        obj["metadata"]["uid"] = f"uid-{next(self._uids)}"
        obj["metadata"]["resourceVersion"] = str(next(self._versions))
        self.objects[key] = obj
        return copy.deepcopy(obj)

    def replace(self, obj):
        key = self._obj_key(obj)
        live = self.objects.get(key)
        if live is None:
            raise ApiException(status=404, reason="NotFound")
        if obj["metadata"].get("resourceVersion") != live["metadata"]["resourceVersion"]:
            raise ApiException(status=409, reason="Conflict")
        self.calls.append(("replace", obj["kind"], obj["metadata"]["name"]))
        obj = copy.deepcopy(obj)
        obj["metadata"]["uid"] = live["metadata"]["uid"]
        obj["metadata"]["resourceVersion"] = str(next(self._versions))
        self.objects[key] = obj
        return copy.deepcopy(obj)

    def delete(self, api_version, kind, namespace, name, propagation_policy="Background"):
        self.calls.append(("delete", kind, name, propagation_policy))
        self.objects.pop(self._key(api_version, kind, namespace, name), None)

    def patch_status(self, api_version, kind, namespace, name, status):
        self.calls.append(("patch_status", kind, name))
        obj = self.objects[self._key(api_version, kind, namespace, name)]
        obj.setdefault("status", {}).update(status)
        obj["metadata"]["resourceVersion"] = str(next(self._versions))
        return copy.deepcopy(obj)

    def writes(self):
        return [call for call in self.calls if call[0] != "patch_status"]

class FakeRevisionClient:
    """Answers with a fixed revision, or raises the configured exception."""

    def __init__(self, revision="rev1"):
        self.revision = revision
        self.per_site = {}
        self.requests = []

    def get_latest_revision(self, site):
        self.requests.append(site.key)
        answer = self.per_site.get(site.key, self.revision)
        if isinstance(answer, Exception):
            raise answer
        return answer

BUILD_SCRIPT = """#!/bin/bash -ex
cd $HOME
git clone $REPO_URL
cd $REPO_NAME
git checkout $REVISION
npm install && npm run build
cp -r _book/* $OUTPUT/
"""

def make_site(name="mysite", namespace="test", status=None, **spec):
    body = {
        "buildImage": "ghcr.io/sitex-dev/ubuntu:22.04",
        "buildScript": {"rawData": BUILD_SCRIPT},
        "repoURL": "https://github.com/sitex-dev/honkit-sample.git",
        "branch": "main",
    }
    body.update(spec)
    site = {
        "apiVersion": API_GROUP_VERSION,
        "kind": KIND,
        "metadata": {"name": name, "namespace": namespace},
        "spec": body,
    }
    if status is not None:
        site["status"] = status
    return site

@pytest.fixture
def site_factory():
    return make_site

@pytest.fixture
def settings():
    return Settings(
        operator_namespace="sitex-system",
        nginx_container_image="nginx-image:test",
        repo_checker_container_image="repo-checker-image:test",
        post_build_requeue_delay=10.0,
        revision_not_ready_delay=1.0,
    )

@pytest.fixture
def kube():
    return FakeKube()

@pytest.fixture
def revisions():
    return FakeRevisionClient()

@pytest.fixture
def reconciler(kube, revisions, settings):
    return WebSiteReconciler(kube, revisions, settings)
