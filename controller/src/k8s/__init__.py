from controller.src.k8s.client import (
    init_k8s_client,
    get_dynamic_client,
    to_dict,
    KubeClient,
)
from controller.src.k8s.sync import (
    AlreadyOwnedError,
    create_or_update,
    is_derivative,
    object_skeleton,
    set_controller_reference,
)
from controller.src.k8s.informer import (
    ResourceWatch,
    SiteCache,
    owner_key,
    sites_referencing_config_map,
)

__all__ = [
    "init_k8s_client",
    "get_dynamic_client",
    "to_dict",
    "KubeClient",
    "AlreadyOwnedError",
    "create_or_update",
    "is_derivative",
    "object_skeleton",
    "set_controller_reference",
    "ResourceWatch",
    "SiteCache",
    "owner_key",
    "sites_referencing_config_map",
]
