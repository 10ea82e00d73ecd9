"""
SiteX Operator - Main entry point.
"""

import logging
import sys

from controller.src.config import get_settings
from controller.src.k8s.client import KubeClient, init_k8s_client
from controller.src.services.reconciler import WebSiteReconciler
from controller.src.services.revision import RevisionClient
from controller.src.worker import Manager, run_worker

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)

logger = logging.getLogger(__name__)

def main():
    """Main entry point."""
    logger.info("Starting SiteX Operator")
    logger.info(f"Operator namespace: {settings.operator_namespace}")
    logger.info(f"nginx image: {settings.nginx_container_image}")
    logger.info(f"repo-checker image: {settings.repo_checker_container_image}")

    # Initialize Kubernetes client
    if not init_k8s_client():
        logger.error("Failed to initialize Kubernetes client")
        sys.exit(1)

    kube = KubeClient()
    revision_client = RevisionClient()
    reconciler = WebSiteReconciler(kube, revision_client, settings)

    logger.info("Starting manager...")
    try:
        run_worker(Manager(kube, reconciler, revision_client, settings))
    finally:
        revision_client.close()

if __name__ == "__main__":
    main()
