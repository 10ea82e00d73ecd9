"""
WebSite reconciler - converges child resources with the desired state.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from kubernetes.client.rest import ApiException

from controller.src.config import Settings, get_settings
from controller.src.k8s.builders import (
    APP_NAME_BUILD_SCRIPT,
    APP_NAME_NGINX,
    APP_NAME_NGINX_SERVICE,
    APP_NAME_REPO_CHECKER,
    APP_NAME_REPO_CHECKER_SERVICE,
    ANN_CHECKSUM_CONFIG,
    BUILD_SCRIPT_NAME,
    NGINX_PORT,
    POST_BUILD_SCRIPT_NAME,
    REPO_CHECKER_PORT,
    build_job,
    build_nginx_pod_template,
    build_post_build_pod_template,
    build_repo_checker_pod_template,
    build_service_ports,
    get_job_active,
    instance_labels,
    merge_overlay,
    repo_checker_name,
    script_checksum,
    script_config_map_name,
    standard_labels,
)
from controller.src.k8s.sync import (
    create_or_update,
    is_derivative,
    object_skeleton,
    set_controller_reference,
)
from controller.src.models.result import OperationResult, Result
from controller.src.models.site import (
    API_GROUP_VERSION,
    KIND,
    DataSource,
    ReadyStatus,
    WebSite,
    parse_website,
)
from controller.src.services.datasource import resolve_data_source
from controller.src.services.extra_resources import render_extra_resource
from controller.src.services.revision import RevisionNotReady

logger = logging.getLogger(__name__)

class PostBuildJobActive(Exception):
    """The post-build Job is still running and must not be touched."""
    pass

@dataclass
class ConvergeState:
    """Progress of one convergence pass, readable after a failure."""
    changed: bool = False
    revision: str = ""
    step: str = ""

def set_labels(obj: Dict[str, Any], labels: Dict[str, str]):
    if not labels:
        return
    metadata = obj.setdefault("metadata", {})
    current = metadata.get("labels") or {}
    current.update(labels)
    metadata["labels"] = current

def set_annotations(obj: Dict[str, Any], annotations: Dict[str, str]):
    if not annotations:
        return
    metadata = obj.setdefault("metadata", {})
    current = metadata.get("annotations") or {}
    current.update(annotations)
    metadata["annotations"] = current

def set_if_not_derivative(spec: Dict[str, Any], field: str, desired: Any):
    if not is_derivative(desired, spec.get(field)):
        spec[field] = copy.deepcopy(desired)

class WebSiteReconciler:
    """
    Drives one WebSite toward its desired state.

    Every step is idempotent, so a pass can be abandoned at any point and
    simply run again.
    """

    def __init__(self, kube, revision_client, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.kube = kube
        self.revision_client = revision_client
        self.operator_namespace = settings.operator_namespace
        self.nginx_image = settings.nginx_container_image
        self.repo_checker_image = settings.repo_checker_container_image
        self.post_build_requeue_delay = settings.post_build_requeue_delay
        self.revision_not_ready_delay = settings.revision_not_ready_delay
        self.job_backoff_limit = settings.job_backoff_limit

    def reconcile(self, namespace: str, name: str) -> Result:
        key = f"{namespace}/{name}"

        raw = self.kube.get(API_GROUP_VERSION, KIND, namespace, name)
        if raw is None:
            logger.debug(f"WebSite {key} not found, nothing to do")
            return Result()

        site = parse_website(raw)
        if site.metadata.deletion_timestamp:
            logger.debug(f"WebSite {key} is being deleted, nothing to do")
            return Result()

        state = ConvergeState()
        try:
            self.converge(site, state)
        except RevisionNotReady:
            logger.info(f"Revision of WebSite {key} not ready yet, retrying in {self.revision_not_ready_delay}s")
            return Result(requeue_after=self.revision_not_ready_delay)
        except PostBuildJobActive:
            logger.info(f"Post-build job of WebSite {key} is active, retrying in {self.post_build_requeue_delay}s")
            return Result(requeue_after=self.post_build_requeue_delay)
        except Exception as e:
            logger.error(f"Failed to reconcile WebSite {key} at step '{state.step}': {e}")
            try:
                self.update_status(site, ReadyStatus.FALSE, state.revision or site.status.revision)
            except ApiException as status_error:
                logger.error(f"Failed to update status of WebSite {key}: {status_error}")
            raise

        if state.changed or not site.is_ready:
            self.update_status(site, ReadyStatus.TRUE, state.revision)
            logger.info(f"WebSite {key} is ready at revision {state.revision}")

        return Result()

    def converge(self, site: WebSite, state: ConvergeState):
        """Run every convergence step in order; later steps use earlier results."""
        state.step = "build script"
        changed, build_hash = self.reconcile_script_config_map(
            site, site.spec.build_script, BUILD_SCRIPT_NAME, "buildScript",
        )
        state.changed |= changed

        state.step = "post-build script"
        changed, post_build_hash = self.reconcile_script_config_map(
            site, site.spec.post_build_script, POST_BUILD_SCRIPT_NAME, "postBuildScript",
        )
        state.changed |= changed

        state.step = "repo-checker deployment"
        state.changed |= self.reconcile_repo_checker_deployment(site)

        state.step = "repo-checker service"
        state.changed |= self.reconcile_repo_checker_service(site)

        state.step = "revision fetch"
        state.revision = self.revision_client.get_latest_revision(site)

        state.step = "nginx deployment"
        state.changed |= self.reconcile_nginx_deployment(site, state.revision, build_hash)

        state.step = "nginx service"
        state.changed |= self.reconcile_nginx_service(site)

        state.step = "extra resources"
        state.changed |= self.reconcile_extra_resources(site)

        state.step = "post-build job"
        state.changed |= self.reconcile_post_build_job(site, state.revision, post_build_hash)

    def update_status(self, site: WebSite, ready: ReadyStatus, revision: str):
        if site.status.ready == ready and site.status.revision == revision:
            return
        self.kube.patch_status(
            API_GROUP_VERSION,
            KIND,
            site.namespace,
            site.name,
            {"ready": ready.value, "revision": revision},
        )

    def _log_op(self, site: WebSite, what: str, op: OperationResult) -> bool:
        if op.changed:
            logger.info(f"Reconciled {what} for WebSite {site.key}: {op.value}")
        return op.changed

    def reconcile_script_config_map(
        self,
        site: WebSite,
        source: Optional[DataSource],
        script_name: str,
        field: str,
    ) -> Tuple[bool, str]:
        """Upsert the ConfigMap holding a script; returns (changed, checksum)."""
        if source is None:
            return False, ""

        script = resolve_data_source(self.kube, source, self.operator_namespace, field)
        checksum = script_checksum(script)

        def mutate(obj):
            set_labels(obj, standard_labels(APP_NAME_BUILD_SCRIPT))
            set_annotations(obj, {ANN_CHECKSUM_CONFIG: checksum})
            obj["data"] = {f"{script_name}.sh": script}

        op = create_or_update(
            self.kube,
            object_skeleton("v1", "ConfigMap", site.namespace, script_config_map_name(site, script_name)),
            mutate,
            site.owner_reference(),
        )
        return self._log_op(site, f"{script_name} script ConfigMap", op), checksum

    def reconcile_repo_checker_deployment(self, site: WebSite) -> bool:
        template = build_repo_checker_pod_template(site, self.repo_checker_image)
        selector = {"matchLabels": instance_labels(APP_NAME_REPO_CHECKER, repo_checker_name(site))}

        def mutate(obj):
            set_labels(obj, standard_labels(APP_NAME_REPO_CHECKER))
            spec = obj.setdefault("spec", {})
            spec["replicas"] = 1
            set_if_not_derivative(spec, "selector", selector)
            set_if_not_derivative(spec, "template", template)

        op = create_or_update(
            self.kube,
            object_skeleton("apps/v1", "Deployment", site.namespace, repo_checker_name(site)),
            mutate,
            site.owner_reference(),
        )
        return self._log_op(site, "repo-checker Deployment", op)

    def reconcile_repo_checker_service(self, site: WebSite) -> bool:
        ports = build_service_ports("repo-checker", 80, REPO_CHECKER_PORT)
        selector = instance_labels(APP_NAME_REPO_CHECKER, repo_checker_name(site))

        def mutate(obj):
            set_labels(obj, standard_labels(APP_NAME_REPO_CHECKER_SERVICE))
            spec = obj.setdefault("spec", {})
            set_if_not_derivative(spec, "ports", ports)
            if spec.get("selector") != selector:
                spec["selector"] = selector

        op = create_or_update(
            self.kube,
            object_skeleton("v1", "Service", site.namespace, repo_checker_name(site)),
            mutate,
            site.owner_reference(),
        )
        return self._log_op(site, "repo-checker Service", op)

    def reconcile_nginx_deployment(self, site: WebSite, revision: str, checksum: str) -> bool:
        template = build_nginx_pod_template(site, self.nginx_image, revision, checksum)
        selector = {"matchLabels": instance_labels(APP_NAME_NGINX, site.name)}

        def mutate(obj):
            set_labels(obj, standard_labels(APP_NAME_NGINX))
            spec = obj.setdefault("spec", {})
            spec["replicas"] = site.spec.replicas
            set_if_not_derivative(spec, "selector", selector)
            set_if_not_derivative(spec, "template", template)

        op = create_or_update(
            self.kube,
            object_skeleton("apps/v1", "Deployment", site.namespace, site.name),
            mutate,
            site.owner_reference(),
        )
        return self._log_op(site, "nginx Deployment", op)

    def reconcile_nginx_service(self, site: WebSite) -> bool:
        ports = build_service_ports("nginx", NGINX_PORT, NGINX_PORT)
        selector = instance_labels(APP_NAME_NGINX, site.name)
        overlay = site.spec.service_template.metadata if site.spec.service_template else None

        def mutate(obj):
            set_labels(obj, merge_overlay(standard_labels(APP_NAME_NGINX_SERVICE), overlay.labels if overlay else None))
            if overlay:
                set_annotations(obj, overlay.annotations)
            spec = obj.setdefault("spec", {})
            set_if_not_derivative(spec, "ports", ports)
            if spec.get("selector") != selector:
                spec["selector"] = selector

        op = create_or_update(
            self.kube,
            object_skeleton("v1", "Service", site.namespace, site.name),
            mutate,
            site.owner_reference(),
        )
        return self._log_op(site, "nginx Service", op)

    def reconcile_extra_resources(self, site: WebSite) -> bool:
        changed = False

        for index, source in enumerate(site.spec.extra_resources):
            field = f"extraResources[{index}]"
            text = resolve_data_source(self.kube, source, self.operator_namespace, field)
            desired = render_extra_resource(text, site)
            metadata = desired["metadata"]

            def mutate(obj, desired=desired, metadata=metadata):
                set_labels(obj, metadata.get("labels") or {})
                set_annotations(obj, metadata.get("annotations") or {})
                for key, value in desired.items():
                    if key in ("apiVersion", "kind", "metadata"):
                        continue
                    set_if_not_derivative(obj, key, value)

            op = create_or_update(
                self.kube,
                object_skeleton(desired["apiVersion"], desired["kind"], site.namespace, metadata["name"]),
                mutate,
                site.owner_reference(),
            )
            changed |= self._log_op(site, f"{desired['kind']} {metadata['name']} ({field})", op)

        return changed

    def reconcile_post_build_job(self, site: WebSite, revision: str, checksum: str) -> bool:
        """
        Replace the post-build Job when its pod template is out of date.

        A running Job is never modified or deleted; PostBuildJobActive is
        raised instead so the caller retries later.
        """
        if site.spec.post_build_script is None:
            return False

        template = build_post_build_pod_template(site, revision, checksum)

        live = self.kube.get("batch/v1", "Job", site.namespace, site.name)
        if live is not None:
            active = get_job_active(live)
            if active != 0:
                raise PostBuildJobActive(f"Job {site.key} has {active} active pods")
            if is_derivative(template, (live.get("spec") or {}).get("template")):
                return False
            logger.info(f"Post-build Job of WebSite {site.key} is outdated, replacing it")
            self.kube.delete("batch/v1", "Job", site.namespace, site.name, propagation_policy="Background")

        job = build_job(site, template, self.job_backoff_limit)
        set_controller_reference(job, site.owner_reference())
        self.kube.create(job)
        logger.info(f"Created post-build Job for WebSite {site.key} at revision {revision}")
        return True
