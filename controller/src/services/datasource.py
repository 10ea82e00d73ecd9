"""
Resolve DataSource values into their text content.
"""

import logging
from typing import Optional

from controller.src.models.site import DataSource

logger = logging.getLogger(__name__)

class DataSourceError(Exception):
    """Raised when a DataSource cannot be resolved."""
    pass

def resolve_data_source(
    kube,
    source: Optional[DataSource],
    default_namespace: str,
    field: str = "dataSource",
) -> str:
    """
    Return the text a DataSource points at.

    Exactly one of rawData and configMap must be set. A ConfigMap without a
    namespace is looked up in default_namespace (the operator's namespace).
    """
    if source is None:
        raise DataSourceError(f"{field} should not be empty")

    if source.raw_data is not None and source.config_map is not None:
        raise DataSourceError(f"{field} must set only one of rawData and configMap")

    if source.raw_data is not None:
        return source.raw_data

    if source.config_map is None:
        raise DataSourceError(f"{field} should not be empty")

    ref = source.config_map
    namespace = ref.namespace or default_namespace
    config_map = kube.get("v1", "ConfigMap", namespace, ref.name)
    if config_map is None:
        raise DataSourceError(f"ConfigMap {namespace}/{ref.name} referenced by {field} not found")

    data = config_map.get("data") or {}
    if ref.key not in data:
        raise DataSourceError(f"ConfigMap {namespace}/{ref.name} does not have key {ref.key}")

    return data[ref.key]
