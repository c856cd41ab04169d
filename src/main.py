"""
Main entry point for the operator framework.

Discovers resource sets through entry points, wires them to the Kubernetes
watch and runs the framework until it is stopped or fails fatally.
"""

import asyncio
import logging
import os
import signal
import sys
from importlib.metadata import entry_points
from typing import List, Optional

from kubernetes_asyncio import config as kube_config
from kubernetes_asyncio.client import ApiClient, ApiextensionsV1Api, CustomObjectsApi
from kubernetes_asyncio.config import ConfigException

from config import Config, get_config
from crd import CustomResourceDefinition, KubernetesCRDClient
from errors import FatalError, InvalidConfigError
from framework import Framework
from health import HealthServer
from informer import KubernetesInformer
from resources import wrap
from router import ResourceRouter, ResourceSet

logger = logging.getLogger(__name__)

# Entry points in this group are zero-argument factories returning a ResourceSet.
RESOURCE_SET_GROUP = "reconkit.resource_sets"


def discover_resource_sets() -> List[ResourceSet]:
    """Load every resource set registered under the entry point group."""
    resource_sets: List[ResourceSet] = []
    for ep in entry_points(group=RESOURCE_SET_GROUP):
        try:
            factory = ep.load()
            resource_set = factory()
        except Exception as e:
            logger.warning(f"Could not load resource set {ep.name}: {e}")
            continue

        if not resource_set.name:
            resource_set.name = ep.name
        resource_sets.append(resource_set)
        logger.info(f"Registered resource set: {resource_set.name}")
    return resource_sets


class Application:
    """Main application that wires the framework to its collaborators."""

    def __init__(
        self,
        config: Optional[Config] = None,
        resource_sets: Optional[List[ResourceSet]] = None,
    ):
        self.config = config or get_config()
        self._resource_sets = resource_sets
        self.api_client: Optional[ApiClient] = None
        self.framework: Optional[Framework] = None
        self.health_server: Optional[HealthServer] = None

    def _build_router(self) -> ResourceRouter:
        resource_sets = self._resource_sets
        if resource_sets is None:
            resource_sets = discover_resource_sets()
        if not resource_sets:
            raise InvalidConfigError(
                f"no resource sets found in entry point group '{RESOURCE_SET_GROUP}'"
            )

        res_config = self.config.resources
        for resource_set in resource_sets:
            resource_set.resources = wrap(
                resource_set.resources,
                logger,
                backoff_factory=self.config.backoff.to_policy,
                retry=res_config.retry,
                metrics=res_config.metrics,
            )
        return ResourceRouter(resource_sets)

    async def _load_kube_config(self) -> None:
        try:
            kube_config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes configuration")
        except ConfigException:
            await kube_config.load_kube_config()
            logger.info("Loaded Kubernetes configuration from kubeconfig")

    async def initialize(self) -> None:
        """Initialize all components."""
        logger.info("Initializing operator framework")

        router = self._build_router()

        await self._load_kube_config()
        self.api_client = ApiClient()

        watch_config = self.config.watch
        informer = KubernetesInformer(
            CustomObjectsApi(self.api_client),
            group=watch_config.group,
            version=watch_config.version,
            plural=watch_config.plural,
            namespace=watch_config.namespace,
            resync_period=watch_config.resync_period,
        )

        crd = None
        crd_client = None
        if watch_config.ensure_crd:
            crd = CustomResourceDefinition(
                group=watch_config.group,
                version=watch_config.version,
                kind=watch_config.kind,
                plural=watch_config.plural,
                scope=watch_config.scope,
            )
            crd_client = KubernetesCRDClient(ApiextensionsV1Api(self.api_client))

        self.framework = Framework(
            informer=informer,
            resource_router=router,
            logger=logger,
            crd=crd,
            crd_client=crd_client,
            backoff_factory=self.config.backoff.to_policy,
        )

        health_config = self.config.health
        if health_config.enabled:
            self.health_server = HealthServer(
                self.framework,
                host=health_config.host,
                port=health_config.port,
                log_level=health_config.log_level.lower(),
            )

        logger.info("All components initialized")

    async def start(self) -> None:
        """Boot the framework. Returns once it stopped."""
        if not self.framework:
            await self.initialize()

        tasks = []
        if self.health_server:
            tasks.append(asyncio.create_task(self.health_server.start()))

        try:
            await self.framework.boot()
        finally:
            if self.health_server:
                await self.health_server.stop()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def stop(self) -> None:
        """Stop the application gracefully."""
        if self.framework:
            await self.framework.stop()
        if self.health_server:
            await self.health_server.stop()
        if self.api_client:
            await self.api_client.close()
            self.api_client = None


async def main() -> int:
    """Run the application and return the process exit status."""
    app = Application()

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(app.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
    except FatalError as e:
        logger.error(f"Operator framework failed: {e}")
        return 1
    finally:
        await app.stop()
    return 0


def run() -> None:
    """Console script entry point."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
