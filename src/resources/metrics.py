"""
Metrics Resource - Decorator recording Prometheus metrics per operation.
"""

import time
from typing import Any, Awaitable, Callable, Optional

from context import ReconcileContext
from errors import InvalidConfigError
from metrics import resource_operation_duration, resource_operation_errors
from resources.base import Patch, Resource

NAME = "metrics"


class MetricsResource(Resource):
    """
    Resource decorator timing every operation of the wrapped resource.

    Metrics are labelled with the name of the underlying resource, so
    stacking further decorators underneath does not change the series.
    """

    def __init__(self, resource: Resource):
        if resource is None:
            raise InvalidConfigError("resource must not be empty")

        self.resource = resource

    @property
    def name(self) -> str:
        return NAME

    def underlying(self) -> Resource:
        return self.resource.underlying()

    async def _observe(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Any:
        labels = (self.underlying().name, operation)
        start_time = time.monotonic()
        try:
            return await call()
        except Exception:
            resource_operation_errors.labels(*labels).inc()
            raise
        finally:
            resource_operation_duration.labels(*labels).observe(
                time.monotonic() - start_time
            )

    async def get_current_state(self, ctx: ReconcileContext, obj: Any) -> Any:
        return await self._observe(
            "get_current_state", lambda: self.resource.get_current_state(ctx, obj)
        )

    async def get_desired_state(self, ctx: ReconcileContext, obj: Any) -> Any:
        return await self._observe(
            "get_desired_state", lambda: self.resource.get_desired_state(ctx, obj)
        )

    async def new_update_patch(
        self, ctx: ReconcileContext, obj: Any, current_state: Any, desired_state: Any
    ) -> Optional[Patch]:
        return await self._observe(
            "new_update_patch",
            lambda: self.resource.new_update_patch(
                ctx, obj, current_state, desired_state
            ),
        )

    async def new_delete_patch(
        self, ctx: ReconcileContext, obj: Any, current_state: Any, desired_state: Any
    ) -> Optional[Patch]:
        return await self._observe(
            "new_delete_patch",
            lambda: self.resource.new_delete_patch(
                ctx, obj, current_state, desired_state
            ),
        )

    async def apply_create_change(
        self, ctx: ReconcileContext, obj: Any, create_change: Any
    ) -> None:
        await self._observe(
            "apply_create_change",
            lambda: self.resource.apply_create_change(ctx, obj, create_change),
        )

    async def apply_delete_change(
        self, ctx: ReconcileContext, obj: Any, delete_change: Any
    ) -> None:
        await self._observe(
            "apply_delete_change",
            lambda: self.resource.apply_delete_change(ctx, obj, delete_change),
        )

    async def apply_update_change(
        self, ctx: ReconcileContext, obj: Any, update_change: Any
    ) -> None:
        await self._observe(
            "apply_update_change",
            lambda: self.resource.apply_update_change(ctx, obj, update_change),
        )
