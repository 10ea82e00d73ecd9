"""
Kubernetes object builders for WebSite child resources.
"""

from kubernetes import client
from typing import List, Dict, Any, Optional
import hashlib

from controller.src.k8s.client import to_dict
from controller.src.models.site import WebSite

OPERATOR_NAME = "sitex-operator"

MANAGED_BY_KEY = "app.kubernetes.io/managed-by"
APP_NAME_KEY = "app.kubernetes.io/name"
INSTANCE_KEY = "app.kubernetes.io/instance"
ANN_CHECKSUM_CONFIG = "checksum/config"

APP_NAME_BUILD_SCRIPT = "build-script"
APP_NAME_REPO_CHECKER = "repo-checker"
APP_NAME_REPO_CHECKER_SERVICE = "repo-checker-service"
APP_NAME_NGINX = "nginx"
APP_NAME_NGINX_SERVICE = "nginx-service"
APP_NAME_POST_BUILD = "post-build"

BUILD_SCRIPT_NAME = "build"
POST_BUILD_SCRIPT_NAME = "post-build"
REPO_CHECKER_SUFFIX = "-repo-checker"
REPO_CHECKER_PORT = 9090
NGINX_PORT = 8080

BUILDER_HOME = "/home/ubuntu"
BUILDER_UID = 10000
WWW_DATA_UID = 33

def script_checksum(script: str) -> str:
    """Content hash stamped on pod templates so script edits roll the pods."""
    return hashlib.md5(script.encode()).hexdigest()

def script_config_map_name(site: WebSite, script_name: str) -> str:
    return f"{site.name}-{script_name}-script"

def repo_checker_name(site: WebSite) -> str:
    return f"{site.name}{REPO_CHECKER_SUFFIX}"

def standard_labels(app: str) -> Dict[str, str]:
    return {
        MANAGED_BY_KEY: OPERATOR_NAME,
        APP_NAME_KEY: app,
    }

def instance_labels(app: str, instance: str) -> Dict[str, str]:
    labels = standard_labels(app)
    labels[INSTANCE_KEY] = instance
    return labels

def merge_overlay(base: Dict[str, str], overlay: Optional[Dict[str, str]]) -> Dict[str, str]:
    """User overlay first, managed keys last so they win on collision."""
    merged = dict(overlay or {})
    merged.update(base)
    return merged

def build_common_env(site: WebSite) -> List[client.V1EnvVar]:
    return [
        client.V1EnvVar(name="RESOURCE_NAMESPACE", value=site.namespace),
        client.V1EnvVar(name="RESOURCE_NAME", value=site.name),
        client.V1EnvVar(name="REPO_URL", value=site.spec.repo_url),
        client.V1EnvVar(name="REPO_NAME", value=site.repo_name),
        client.V1EnvVar(name="REPO_BRANCH", value=site.spec.branch),
    ]

def build_secret_env(site: WebSite) -> List[client.V1EnvVar]:
    return [
        client.V1EnvVar(
            name=secret.key,
            value_from=client.V1EnvVarSource(
                secret_key_ref=client.V1SecretKeySelector(name=secret.name, key=secret.key),
            ),
        )
        for secret in site.spec.build_secrets
    ]

def build_image_pull_secrets(site: WebSite) -> Optional[List[client.V1LocalObjectReference]]:
    if not site.spec.image_pull_secrets:
        return None
    return [client.V1LocalObjectReference(name=s.name) for s in site.spec.image_pull_secrets]

def volume_or_empty_dir(site: WebSite, name: str) -> Any:
    """Return the user's volume override for name, or an emptyDir."""
    for volume in site.spec.volume_templates:
        if volume.get("name") == name:
            return volume
    return client.V1Volume(name=name, empty_dir=client.V1EmptyDirVolumeSource())

def deploy_key_volume(site: WebSite) -> client.V1Volume:
    return client.V1Volume(
        name="deploy-key",
        secret=client.V1SecretVolumeSource(
            secret_name=site.spec.deploy_key_secret_name,
            default_mode=0o600,
        ),
    )

def deploy_key_mount() -> client.V1VolumeMount:
    return client.V1VolumeMount(name="deploy-key", mount_path=f"{BUILDER_HOME}/.ssh")

def script_volume(site: WebSite, script_name: str) -> client.V1Volume:
    return client.V1Volume(
        name=f"{script_name}-script",
        config_map=client.V1ConfigMapVolumeSource(
            name=script_config_map_name(site, script_name),
            default_mode=0o755,
        ),
    )

def build_pod_metadata(site: WebSite, labels: Dict[str, str], annotations: Dict[str, str]) -> client.V1ObjectMeta:
    overlay = site.spec.pod_template.metadata if site.spec.pod_template else None
    return client.V1ObjectMeta(
        labels=merge_overlay(labels, overlay.labels if overlay else None),
        annotations=merge_overlay(annotations, overlay.annotations if overlay else None) or None,
    )

def build_repo_checker_pod_template(site: WebSite, image: str) -> Dict[str, Any]:
    """Pod template for the per-site RevisionProbe."""
    container = client.V1Container(
        name="repo-checker",
        image=image,
        command=[
            "repo-checker",
            f"--repo-url={site.spec.repo_url}",
            f"--repo-branch={site.spec.branch}",
            f"--listen-addr=:{REPO_CHECKER_PORT}",
        ],
        env=build_common_env(site) + [client.V1EnvVar(name="HOME", value=BUILDER_HOME)],
        ports=[client.V1ContainerPort(name="http", container_port=REPO_CHECKER_PORT, protocol="TCP")],
    )

    volumes = []
    if site.spec.deploy_key_secret_name:
        volumes.append(deploy_key_volume(site))
        container.volume_mounts = [deploy_key_mount()]

    template = client.V1PodTemplateSpec(
        metadata=build_pod_metadata(site, instance_labels(APP_NAME_REPO_CHECKER, repo_checker_name(site)), {}),
        spec=client.V1PodSpec(
            containers=[container],
            volumes=volumes or None,
            image_pull_secrets=build_image_pull_secrets(site),
            security_context=client.V1PodSecurityContext(run_as_user=BUILDER_UID, fs_group=BUILDER_UID),
        ),
    )
    return to_dict(template)

def build_nginx_pod_template(site: WebSite, image: str, revision: str, checksum: str) -> Dict[str, Any]:
    """
    Pod template for the serving workload.

    The build init container clones the repository at revision and writes
    the site into the shared data volume that nginx serves.
    """
    volumes = [
        volume_or_empty_dir(site, "data"),
        volume_or_empty_dir(site, "log"),
        volume_or_empty_dir(site, "cache"),
        volume_or_empty_dir(site, "tmp"),
        volume_or_empty_dir(site, "home"),
        script_volume(site, BUILD_SCRIPT_NAME),
    ]
    if site.spec.deploy_key_secret_name:
        volumes.append(deploy_key_volume(site))

    nginx = client.V1Container(
        name="nginx",
        image=image,
        ports=[client.V1ContainerPort(name="http", container_port=NGINX_PORT, protocol="TCP")],
        volume_mounts=[
            client.V1VolumeMount(name="data", mount_path="/data"),
            client.V1VolumeMount(name="log", mount_path="/var/log/nginx"),
            client.V1VolumeMount(name="cache", mount_path="/var/cache/nginx"),
            client.V1VolumeMount(name="tmp", mount_path="/tmp"),
        ],
        security_context=client.V1SecurityContext(run_as_user=WWW_DATA_UID),
        readiness_probe=client.V1Probe(
            http_get=client.V1HTTPGetAction(path="/", port=NGINX_PORT),
            timeout_seconds=1,
            period_seconds=10,
            success_threshold=1,
            failure_threshold=3,
        ),
    )

    build_mounts = [
        client.V1VolumeMount(name="home", mount_path=BUILDER_HOME),
        client.V1VolumeMount(name=f"{BUILD_SCRIPT_NAME}-script", mount_path="/build"),
        client.V1VolumeMount(name="data", mount_path="/data"),
        client.V1VolumeMount(name="tmp", mount_path="/tmp"),
    ]
    if site.spec.deploy_key_secret_name:
        build_mounts.append(deploy_key_mount())

    build = client.V1Container(
        name="build",
        image=site.spec.build_image,
        command=["/bin/bash", "-c", f"/build/{BUILD_SCRIPT_NAME}.sh"],
        security_context=client.V1SecurityContext(run_as_user=BUILDER_UID),
        volume_mounts=build_mounts,
        env=build_common_env(site) + [
            client.V1EnvVar(name="HOME", value=BUILDER_HOME),
            client.V1EnvVar(name="REVISION", value=revision),
            client.V1EnvVar(name="OUTPUT", value="/data"),
        ] + build_secret_env(site),
    )

    template = client.V1PodTemplateSpec(
        metadata=build_pod_metadata(
            site,
            instance_labels(APP_NAME_NGINX, site.name),
            {ANN_CHECKSUM_CONFIG: checksum},
        ),
        spec=client.V1PodSpec(
            init_containers=[build],
            containers=[nginx],
            volumes=volumes,
            image_pull_secrets=build_image_pull_secrets(site),
            security_context=client.V1PodSecurityContext(fs_group=BUILDER_UID),
        ),
    )
    return to_dict(template)

def build_post_build_pod_template(site: WebSite, revision: str, checksum: str) -> Dict[str, Any]:
    """Pod template for the one-shot post-build Job."""
    volumes = [
        volume_or_empty_dir(site, "log"),
        volume_or_empty_dir(site, "cache"),
        volume_or_empty_dir(site, "tmp"),
        script_volume(site, POST_BUILD_SCRIPT_NAME),
    ]
    mounts = [
        client.V1VolumeMount(name=f"{POST_BUILD_SCRIPT_NAME}-script", mount_path=f"/{POST_BUILD_SCRIPT_NAME}"),
        client.V1VolumeMount(name="tmp", mount_path="/tmp"),
    ]
    if site.spec.deploy_key_secret_name:
        volumes.append(deploy_key_volume(site))
        mounts.append(deploy_key_mount())

    container = client.V1Container(
        name="job",
        image=site.spec.build_image,
        command=["/bin/bash", "-c", f"/{POST_BUILD_SCRIPT_NAME}/{POST_BUILD_SCRIPT_NAME}.sh"],
        security_context=client.V1SecurityContext(run_as_user=BUILDER_UID),
        volume_mounts=mounts,
        env=build_common_env(site) + [
            client.V1EnvVar(name="HOME", value=BUILDER_HOME),
            client.V1EnvVar(name="REVISION", value=revision),
        ] + build_secret_env(site),
    )

    template = client.V1PodTemplateSpec(
        metadata=client.V1ObjectMeta(
            labels=instance_labels(APP_NAME_POST_BUILD, site.name),
            annotations={ANN_CHECKSUM_CONFIG: checksum},
        ),
        spec=client.V1PodSpec(
            containers=[container],
            volumes=volumes,
            restart_policy="Never",
            image_pull_secrets=build_image_pull_secrets(site),
            security_context=client.V1PodSecurityContext(fs_group=BUILDER_UID),
        ),
    )
    return to_dict(template)

def build_job(site: WebSite, template: Dict[str, Any], backoff_limit: int) -> Dict[str, Any]:
    """Fresh post-build Job; ownership is stamped by the caller."""
    job = client.V1Job(
        api_version="batch/v1",
        kind="Job",
        metadata=client.V1ObjectMeta(
            name=site.name,
            namespace=site.namespace,
            labels=instance_labels(APP_NAME_POST_BUILD, site.name),
        ),
        spec=client.V1JobSpec(
            template=template,
            backoff_limit=backoff_limit,
        ),
    )
    return to_dict(job)

def build_service_ports(name: str, port: int, target_port: int) -> List[Dict[str, Any]]:
    return to_dict([
        client.V1ServicePort(name=name, protocol="TCP", port=port, target_port=target_port),
    ])

def get_job_active(job: Dict[str, Any]) -> int:
    """Number of running pods of a live Job."""
    status = job.get("status") or {}
    return status.get("active") or 0
