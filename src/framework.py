"""
Operator Framework - Reconciliation engine and event dispatch.

Drives every watched object from its current state toward its desired state
by running the object's resource chain. The framework boots once, watches
for delete and update events and dispatches them one at a time, since the
reconciled system itself is the source of truth and concurrent passes over
it would race.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from tenacity import retry_if_exception_type, retry_if_not_exception_type

from backoff_policy import BackOffPolicy, retry_notify
from context import CancellationState, ReconcileContext
from crd import CRDClient, CustomResourceDefinition
from errors import (
    BootFailedError,
    EventProcessingFailedError,
    ExecutionFailedError,
    FatalError,
    InvalidConfigError,
)
from informer import Informer, WatchError
from metrics import event_duration
from resources.base import ChangeKind, Resource
from router import ResourceRouter

logger = logging.getLogger(__name__)

COMPONENT = "framework"

_APPLY_FUNCTIONS = {
    ChangeKind.CREATE: "apply_create_change",
    ChangeKind.DELETE: "apply_delete_change",
    ChangeKind.UPDATE: "apply_update_change",
}


async def process_update(
    ctx: ReconcileContext, obj: Any, resources: List[Resource]
) -> None:
    """
    Reconcile an added or modified object.

    Runs every resource of the chain in order: read current state, read
    desired state, compute the update patch, then apply its create, delete
    and update changes, in this order. Cancellation is checked before every
    step and is not an error.

    Args:
        ctx: The pass context.
        obj: The object being reconciled.
        resources: The ordered resource chain.

    Raises:
        ExecutionFailedError: If the chain is empty.
        Exception: Any error raised by a resource, unchanged. It aborts the
            whole pass.
    """
    await _process(ctx, obj, resources, "new_update_patch")


async def process_delete(
    ctx: ReconcileContext, obj: Any, resources: List[Resource]
) -> None:
    """
    Reconcile a deleted object.

    Same pipeline as :func:`process_update`, computing the delete patch
    instead of the update patch.
    """
    await _process(ctx, obj, resources, "new_delete_patch")


async def _process(
    ctx: ReconcileContext, obj: Any, resources: List[Resource], patch_function: str
) -> None:
    if not resources:
        raise ExecutionFailedError("resources must not be empty")

    for resource in resources:
        await _process_resource(ctx, obj, resource, patch_function)

        if ctx.is_reconciliation_canceled:
            logger.debug("Reconciliation canceled, stopping pass")
            return
        if ctx.is_resource_canceled:
            logger.debug(f"Resource '{resource.underlying().name}' canceled")
            ctx.reset_resource_cancellation()


def _interrupted(ctx: ReconcileContext) -> bool:
    return ctx.cancellation is not CancellationState.RUNNING


async def _process_resource(
    ctx: ReconcileContext, obj: Any, resource: Resource, patch_function: str
) -> None:
    """Run the pipeline of one resource, returning early on cancellation."""
    if _interrupted(ctx):
        return
    with ctx.function("get_current_state"):
        current_state = await resource.get_current_state(ctx, obj)

    if _interrupted(ctx):
        return
    with ctx.function("get_desired_state"):
        desired_state = await resource.get_desired_state(ctx, obj)

    if _interrupted(ctx):
        return
    with ctx.function(patch_function):
        new_patch = getattr(resource, patch_function)
        patch = await new_patch(ctx, obj, current_state, desired_state)

    for kind in ChangeKind:
        if _interrupted(ctx):
            return
        if patch is None:
            continue

        change, ok = patch.get(kind)
        if not ok:
            continue

        function = _APPLY_FUNCTIONS[kind]
        with ctx.function(function):
            await getattr(resource, function)(ctx, obj, change)


def _object_key(obj: Any) -> Optional[str]:
    """Return ``namespace/name`` for Kubernetes-style objects."""
    if not isinstance(obj, dict):
        return None
    metadata = obj.get("metadata") or {}
    name = metadata.get("name")
    if not name:
        return None
    namespace = metadata.get("namespace")
    return f"{namespace}/{name}" if namespace else name


class FrameworkState(Enum):
    """Lifecycle of a framework instance."""

    NOT_BOOTED = "not_booted"
    BOOTING = "booting"
    RUNNING = "running"
    STOPPED = "stopped"


class Framework:
    """
    Operator framework owning boot, the event loop and event dispatch.

    Fatal conditions (boot or event loop retries exhausted) are raised as
    :class:`FatalError` from :meth:`boot`; the hosting process decides how to
    shut down.
    """

    def __init__(
        self,
        informer: Informer,
        resource_router: ResourceRouter,
        logger: logging.Logger,
        crd: Optional[CustomResourceDefinition] = None,
        crd_client: Optional[CRDClient] = None,
        backoff_factory: Optional[Callable[[], BackOffPolicy]] = None,
    ):
        if (crd is None) != (crd_client is None):
            raise InvalidConfigError(
                "crd and crd_client must not be empty when either given"
            )
        if informer is None:
            raise InvalidConfigError("informer must not be empty")
        if resource_router is None:
            raise InvalidConfigError("resource_router must not be empty")
        if logger is None:
            raise InvalidConfigError("logger must not be empty")

        self.crd = crd
        self.crd_client = crd_client
        self.informer = informer
        self.resource_router = resource_router
        self.logger = logger
        self.backoff_factory = backoff_factory or BackOffPolicy

        self.state = FrameworkState.NOT_BOOTED
        self._boot_task: Optional[asyncio.Task] = None
        # DeleteFunc/UpdateFunc are not safe to run concurrently.
        self._dispatch_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        # Getter tasks outlive a failed event loop attempt, see _current_getters.
        self._getters: Dict[str, Tuple[asyncio.Queue, asyncio.Task]] = {}

    async def boot(self) -> None:
        """
        Boot the framework and run the event loop until stopped.

        Concurrent and repeated calls share a single boot sequence.

        Raises:
            BootFailedError: If boot retries were exhausted.
            EventProcessingFailedError: If event loop retries were exhausted.
        """
        if self._boot_task is None:
            self._boot_task = asyncio.create_task(self._boot())
        await asyncio.shield(self._boot_task)

    async def stop(self) -> None:
        """Stop the event loop. The framework cannot be booted again."""
        self.logger.info("Stopping operator framework")
        self._stop_event.set()
        self.state = FrameworkState.STOPPED

    async def _boot(self) -> None:
        self.state = FrameworkState.BOOTING

        def notify(err: BaseException, delay: float) -> None:
            self.logger.warning(f"retrying operator boot due to error: {err!r}")

        try:
            await retry_notify(
                self._boot_with_error,
                self.backoff_factory(),
                notify,
                retry=(
                    retry_if_exception_type(Exception)
                    & retry_if_not_exception_type(FatalError)
                ),
            )
        except FatalError:
            self.state = FrameworkState.STOPPED
            raise
        except Exception as e:
            self.logger.error(
                f"stop operator boot retries due to too many errors: {e!r}"
            )
            self.state = FrameworkState.STOPPED
            raise BootFailedError(f"operator boot failed: {e}") from e

        self.state = FrameworkState.STOPPED

    async def _boot_with_error(self) -> None:
        if self.crd is not None:
            self.logger.debug("ensuring custom resource definition exists")
            await self.crd_client.ensure_created(self.crd, self.backoff_factory())
            self.logger.debug("ensured custom resource definition")

        self.logger.debug("starting list/watch")
        delete_queue, update_queue, error_queue = await self.informer.watch(
            self._stop_event
        )
        self.state = FrameworkState.RUNNING
        await self.process_events(delete_queue, update_queue, error_queue)

    async def process_events(
        self,
        delete_queue: asyncio.Queue,
        update_queue: asyncio.Queue,
        error_queue: asyncio.Queue,
    ) -> None:
        """
        Dispatch watch events until the framework is stopped.

        A watch error fails the current attempt and the whole loop is retried
        under its own backoff policy. Every retry restarts the watch through
        the informer, so a watch source that ended with the error is
        reconnected. Events already taken off a queue when an attempt fails
        are dispatched first by the next attempt.

        The policy's ``max_elapsed_time`` counts from the first attempt of
        this call, not from the start of the current failure streak. Once the
        loop has been running for longer than that, the next watch error is
        fatal without being retried.

        Raises:
            EventProcessingFailedError: If the loop retries were exhausted.
        """
        queues = (delete_queue, update_queue, error_queue)
        attempts = 0

        async def attempt() -> None:
            nonlocal queues, attempts
            attempts += 1
            if attempts > 1:
                self.logger.debug("restarting list/watch")
                queues = await self.informer.watch(self._stop_event)
            await self._event_loop(*queues)

        def notify(err: BaseException, delay: float) -> None:
            self.logger.warning(
                f"retrying operator event processing due to error: {err!r}"
            )

        try:
            await retry_notify(attempt, self.backoff_factory(), notify)
        except Exception as e:
            self.logger.error(
                "stop operator event processing retries due to too many errors: "
                f"{e!r}"
            )
            raise EventProcessingFailedError(
                f"operator event processing failed: {e}"
            ) from e
        finally:
            for _, task in self._getters.values():
                task.cancel()
            self._getters.clear()

    def _current_getters(
        self, queues: Dict[str, asyncio.Queue]
    ) -> Dict[str, asyncio.Task]:
        """
        Return one getter task per queue, reusing those of earlier attempts.

        A getter that already took an event keeps it, so the event is
        dispatched before anything queued after it. Unfinished getters on a
        queue replaced by a new watch are cancelled.
        """
        for kind, queue in queues.items():
            pending = self._getters.get(kind)
            if pending is not None:
                source, task = pending
                if source is queue or task.done():
                    continue
                task.cancel()
            self._getters[kind] = (queue, asyncio.create_task(queue.get()))
        return {kind: task for kind, (_, task) in self._getters.items()}

    async def _event_loop(
        self,
        delete_queue: asyncio.Queue,
        update_queue: asyncio.Queue,
        error_queue: asyncio.Queue,
    ) -> None:
        queues: Dict[str, asyncio.Queue] = {
            "delete": delete_queue,
            "update": update_queue,
            "error": error_queue,
        }
        stop_waiter = asyncio.create_task(self._stop_event.wait())

        try:
            while not self._stop_event.is_set():
                getters = self._current_getters(queues)
                done, _ = await asyncio.wait(
                    [*getters.values(), stop_waiter],
                    return_when=asyncio.FIRST_COMPLETED,
                )

                for kind in ("delete", "update"):
                    task = getters[kind]
                    if task not in done:
                        continue
                    del self._getters[kind]
                    event = task.result()
                    with event_duration.labels(kind).time():
                        if kind == "delete":
                            await self.delete_func(event.object)
                        else:
                            await self.update_func(None, event.object)

                task = getters["error"]
                if task in done:
                    del self._getters["error"]
                    err = task.result()
                    if not isinstance(err, BaseException):
                        err = WatchError(str(err))
                    raise err
        finally:
            stop_waiter.cancel()

    async def delete_func(self, obj: Any) -> None:
        """Run the delete pipeline for an object. Errors are logged."""
        async with self._dispatch_lock:
            await self._dispatch("delete", "process_delete", process_delete, obj)

    async def update_func(self, old_obj: Any, new_obj: Any) -> None:
        """Run the update pipeline for the new version of an object."""
        async with self._dispatch_lock:
            await self._dispatch("update", "process_update", process_update, new_obj)

    async def _dispatch(
        self,
        event: str,
        function: str,
        process: Callable,
        obj: Any,
    ) -> None:
        log_meta: Dict[str, Any] = {"component": COMPONENT, "event": event}
        object_key = _object_key(obj)
        if object_key:
            log_meta["object"] = object_key

        try:
            resource_set = self.resource_router.resource_set(obj)
            ctx = await resource_set.init_context(
                ReconcileContext(log_meta=log_meta), obj
            )
        except Exception as e:
            ReconcileContext(log_meta=log_meta).logger(self.logger).error(f"{e!r}")
            return

        log = ctx.logger(self.logger)
        log.info(f"{function} started", keyvals={"action": "start"})

        try:
            await process(ctx, obj, resource_set.resources)
        except Exception as e:
            log.error(f"{function} failed: {e!r}", exc_info=True)
            return

        log.info(f"{function} completed", keyvals={"action": "end"})
