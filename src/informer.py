"""
Informer - Watch sources feeding the framework's event loop.

An informer turns changes of custom objects into events on three queues:
deletions, additions/modifications, and watch errors. The framework only
reads from the queues.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from kubernetes_asyncio import watch
from kubernetes_asyncio.client import CustomObjectsApi

logger = logging.getLogger(__name__)

WatchQueues = Tuple[asyncio.Queue, asyncio.Queue, asyncio.Queue]


class EventType(Enum):
    """Types of watch events."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass
class WatchEvent:
    """Event emitted when a watched object changes."""

    type: EventType
    object: Any


class WatchError(Exception):
    """The watch stream reported an error."""


class Informer(ABC):
    """Abstract base class for watch sources."""

    @abstractmethod
    async def watch(self, stop_event: asyncio.Event) -> WatchQueues:
        """
        Start watching.

        Args:
            stop_event: Set when the framework stops. Informers should stop
                producing events once it is set.

        Returns:
            A tuple of ``(delete_queue, update_queue, error_queue)``.
        """
        pass


class QueueInformer(Informer):
    """
    In-memory informer fed by :meth:`publish` and :meth:`fail`.

    Useful for embedding the framework behind another event source and for
    tests. Every call to :meth:`watch` returns the same queues.
    """

    def __init__(self, queue_size: int = 0):
        self.delete_queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.update_queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.error_queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)

    async def watch(self, stop_event: asyncio.Event) -> WatchQueues:
        return self.delete_queue, self.update_queue, self.error_queue

    async def publish(self, event: WatchEvent) -> None:
        """Route an event to the delete or update queue."""
        if event.type is EventType.DELETED:
            await self.delete_queue.put(event)
        else:
            await self.update_queue.put(event)

    async def fail(self, error: BaseException) -> None:
        """Report a watch error."""
        await self.error_queue.put(error)


class KubernetesInformer(Informer):
    """
    Informer watching custom objects through the Kubernetes API.

    Each round lists all objects and emits them as updates, then watches from
    the list's resource version until the server closes the stream after
    ``resync_period`` seconds. Repeating the list is the periodic resync.
    """

    def __init__(
        self,
        api: CustomObjectsApi,
        group: str,
        version: str,
        plural: str,
        namespace: Optional[str] = None,
        resync_period: int = 300,
    ):
        self.api = api
        self.group = group
        self.version = version
        self.plural = plural
        self.namespace = namespace
        self.resync_period = resync_period
        self._task: Optional[asyncio.Task] = None

    async def watch(self, stop_event: asyncio.Event) -> WatchQueues:
        if self._task is not None and not self._task.done():
            self._task.cancel()

        queues: WatchQueues = (asyncio.Queue(), asyncio.Queue(), asyncio.Queue())
        self._task = asyncio.create_task(self._run(stop_event, *queues))
        return queues

    def _list_call(self) -> Tuple[Any, Dict[str, Any]]:
        kwargs: Dict[str, Any] = {
            "group": self.group,
            "version": self.version,
            "plural": self.plural,
        }
        if self.namespace:
            kwargs["namespace"] = self.namespace
            return self.api.list_namespaced_custom_object, kwargs
        return self.api.list_cluster_custom_object, kwargs

    async def _run(
        self,
        stop_event: asyncio.Event,
        delete_queue: asyncio.Queue,
        update_queue: asyncio.Queue,
        error_queue: asyncio.Queue,
    ) -> None:
        list_fn, kwargs = self._list_call()

        try:
            while not stop_event.is_set():
                listing = await list_fn(**kwargs)
                for item in listing.get("items", []):
                    await update_queue.put(WatchEvent(EventType.MODIFIED, item))

                resource_version = listing.get("metadata", {}).get("resourceVersion")
                logger.debug(
                    f"Watching {self.plural}.{self.group} from resource version "
                    f"{resource_version}"
                )

                w = watch.Watch()
                async with w.stream(
                    list_fn,
                    resource_version=resource_version,
                    timeout_seconds=self.resync_period,
                    **kwargs,
                ) as stream:
                    async for event in stream:
                        if stop_event.is_set():
                            return

                        event_type = event["type"]
                        obj = event["object"]
                        if event_type == "ERROR":
                            await error_queue.put(WatchError(f"watch error: {obj}"))
                            return
                        if event_type == EventType.DELETED.value:
                            await delete_queue.put(WatchEvent(EventType.DELETED, obj))
                        elif event_type in (
                            EventType.ADDED.value,
                            EventType.MODIFIED.value,
                        ):
                            await update_queue.put(
                                WatchEvent(EventType(event_type), obj)
                            )
        except Exception as e:
            logger.error(f"Watch on {self.plural}.{self.group} failed: {e}")
            await error_queue.put(e)
