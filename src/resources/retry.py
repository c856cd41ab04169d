"""
Retry Resource - Decorator retrying every operation of a wrapped resource.

Failures are retried under an exponential backoff policy and a warning is
logged for every retry. Once the policy gives up, the last error is raised
unchanged, so the decorator does not alter the contract of the resource it
wraps.
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from backoff_policy import BackOffPolicy, Notify, retry_notify
from context import ReconcileContext
from errors import InvalidConfigError
from resources.base import Patch, Resource

# Name is the identifier of the decorator itself, not of the wrapped resource.
NAME = "retry"


class RetryResource(Resource):
    """Resource decorator applying a backoff policy to every operation."""

    def __init__(
        self,
        resource: Resource,
        logger: logging.Logger,
        backoff: Optional[BackOffPolicy] = None,
    ):
        if resource is None:
            raise InvalidConfigError("resource must not be empty")
        if logger is None:
            raise InvalidConfigError("logger must not be empty")

        self.resource = resource
        self.logger = logger
        self.backoff = backoff or BackOffPolicy()

    @property
    def name(self) -> str:
        return NAME

    def underlying(self) -> Resource:
        return self.resource.underlying()

    def _notifier(self, ctx: ReconcileContext, operation: str) -> Notify:
        log = ctx.logger(self.logger)
        underlying_name = self.underlying().name

        def notify(err: BaseException, delay: float) -> None:
            log.warning(
                f"retrying '{operation}' due to error ({err})",
                keyvals={"underlying_resource": underlying_name},
            )

        return notify

    async def _retry(
        self,
        ctx: ReconcileContext,
        operation: str,
        call: Callable[[], Awaitable[Any]],
    ) -> Any:
        return await retry_notify(call, self.backoff, self._notifier(ctx, operation))

    async def get_current_state(self, ctx: ReconcileContext, obj: Any) -> Any:
        return await self._retry(
            ctx,
            "get_current_state",
            lambda: self.resource.get_current_state(ctx, obj),
        )

    async def get_desired_state(self, ctx: ReconcileContext, obj: Any) -> Any:
        return await self._retry(
            ctx,
            "get_desired_state",
            lambda: self.resource.get_desired_state(ctx, obj),
        )

    async def new_update_patch(
        self, ctx: ReconcileContext, obj: Any, current_state: Any, desired_state: Any
    ) -> Optional[Patch]:
        return await self._retry(
            ctx,
            "new_update_patch",
            lambda: self.resource.new_update_patch(
                ctx, obj, current_state, desired_state
            ),
        )

    async def new_delete_patch(
        self, ctx: ReconcileContext, obj: Any, current_state: Any, desired_state: Any
    ) -> Optional[Patch]:
        return await self._retry(
            ctx,
            "new_delete_patch",
            lambda: self.resource.new_delete_patch(
                ctx, obj, current_state, desired_state
            ),
        )

    async def apply_create_change(
        self, ctx: ReconcileContext, obj: Any, create_change: Any
    ) -> None:
        await self._retry(
            ctx,
            "apply_create_change",
            lambda: self.resource.apply_create_change(ctx, obj, create_change),
        )

    async def apply_delete_change(
        self, ctx: ReconcileContext, obj: Any, delete_change: Any
    ) -> None:
        await self._retry(
            ctx,
            "apply_delete_change",
            lambda: self.resource.apply_delete_change(ctx, obj, delete_change),
        )

    async def apply_update_change(
        self, ctx: ReconcileContext, obj: Any, update_change: Any
    ) -> None:
        await self._retry(
            ctx,
            "apply_update_change",
            lambda: self.resource.apply_update_change(ctx, obj, update_change),
        )
