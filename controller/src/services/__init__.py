from controller.src.services.datasource import resolve_data_source, DataSourceError
from controller.src.services.extra_resources import render_extra_resource, ExtraResourceError
from controller.src.services.revision import (
    RevisionClient,
    RevisionNotReady,
    RevisionCheckError,
)
from controller.src.services.revision_watcher import RevisionWatcher
from controller.src.services.reconciler import (
    WebSiteReconciler,
    PostBuildJobActive,
)

__all__ = [
    "resolve_data_source",
    "DataSourceError",
    "render_extra_resource",
    "ExtraResourceError",
    "RevisionClient",
    "RevisionNotReady",
    "RevisionCheckError",
    "RevisionWatcher",
    "WebSiteReconciler",
    "PostBuildJobActive",
]
