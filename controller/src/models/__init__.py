from controller.src.models.site import (
    ReadyStatus,
    ConfigMapSource,
    DataSource,
    SecretKey,
    LocalObjectReference,
    ObjectMetaTemplate,
    PodTemplate,
    ServiceTemplate,
    WebSiteSpec,
    WebSiteStatus,
    WebSite,
    parse_website,
    split_key,
)
from controller.src.models.result import OperationResult, Result

__all__ = [
    "ReadyStatus",
    "ConfigMapSource",
    "DataSource",
    "SecretKey",
    "LocalObjectReference",
    "ObjectMetaTemplate",
    "PodTemplate",
    "ServiceTemplate",
    "WebSiteSpec",
    "WebSiteStatus",
    "WebSite",
    "parse_website",
    "split_key",
    "OperationResult",
    "Result",
]
