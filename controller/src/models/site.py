"""
WebSite custom resource models.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any
from enum import Enum

API_GROUP = "sitex.dev"
API_VERSION = "v1beta1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"
KIND = "WebSite"
PLURAL = "websites"

class ReadyStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"

class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

class ConfigMapSource(_Model):
    name: str
    # Empty means the operator's own namespace
    namespace: str = ""
    key: str

class DataSource(_Model):
    """Either inline text or a key in a ConfigMap. Exactly one must be set."""
    config_map: Optional[ConfigMapSource] = Field(None, alias="configMap")
    raw_data: Optional[str] = Field(None, alias="rawData")

class SecretKey(_Model):
    name: str
    key: str

class LocalObjectReference(_Model):
    name: str

class ObjectMetaTemplate(_Model):
    labels: Dict[str, str] = {}
    annotations: Dict[str, str] = {}

class PodTemplate(_Model):
    metadata: ObjectMetaTemplate = ObjectMetaTemplate()

class ServiceTemplate(_Model):
    metadata: ObjectMetaTemplate = ObjectMetaTemplate()

class WebSiteSpec(_Model):
    build_image: str = Field(alias="buildImage")
    build_script: DataSource = Field(alias="buildScript")
    build_secrets: List[SecretKey] = Field([], alias="buildSecrets")
    image_pull_secrets: List[LocalObjectReference] = Field([], alias="imagePullSecrets")
    repo_url: str = Field(alias="repoURL")
    branch: str = "main"
    deploy_key_secret_name: Optional[str] = Field(None, alias="deployKeySecretName")
    extra_resources: List[DataSource] = Field([], alias="extraResources")
    replicas: int = 1
    pod_template: Optional[PodTemplate] = Field(None, alias="podTemplate")
    service_template: Optional[ServiceTemplate] = Field(None, alias="serviceTemplate")
    post_build_script: Optional[DataSource] = Field(None, alias="postBuildScript")
    # Raw Volume objects that replace the default emptyDir volumes by name
    volume_templates: List[Dict[str, Any]] = Field([], alias="volumeTemplates")

class WebSiteStatus(_Model):
    revision: str = ""
    ready: Optional[ReadyStatus] = None

class WebSiteMetadata(_Model):
    name: str
    namespace: str = "default"
    uid: str = ""
    resource_version: Optional[str] = Field(None, alias="resourceVersion")
    deletion_timestamp: Optional[str] = Field(None, alias="deletionTimestamp")

class WebSite(_Model):
    metadata: WebSiteMetadata
    spec: WebSiteSpec
    status: WebSiteStatus = WebSiteStatus()

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def key(self) -> str:
        return f"{self.metadata.namespace}/{self.metadata.name}"

    @property
    def repo_name(self) -> str:
        """Repository name derived from the last segment of the URL."""
        last = self.spec.repo_url.rstrip("/").split("/")[-1]
        if last.endswith(".git"):
            last = last[: -len(".git")]
        return last

    @property
    def is_ready(self) -> bool:
        return self.status.ready == ReadyStatus.TRUE

    def owner_reference(self) -> Dict[str, Any]:
        return {
            "apiVersion": API_GROUP_VERSION,
            "kind": KIND,
            "name": self.metadata.name,
            "uid": self.metadata.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }

def parse_website(obj: Dict[str, Any]) -> WebSite:
    """Build a WebSite model from a raw API object."""
    return WebSite.model_validate(obj)

def split_key(key: str) -> tuple:
    namespace, _, name = key.partition("/")
    return namespace, name
