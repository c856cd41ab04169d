"""
Resource Router - Selects the resource set reconciling an object.

Objects of one kind may differ in version or structure. A resource set
decides whether it handles an object, prepares the pass context and provides
the resource chain to run, so each object is reconciled against exactly the
chain meant for it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from context import ReconcileContext
from errors import InvalidConfigError, NoResourceSetError, TooManyResourceSetsError
from resources.base import Resource

logger = logging.getLogger(__name__)

# (ctx, obj) -> ctx, may return None to keep the given context
InitCtx = Callable[[ReconcileContext, Any], Awaitable[Optional[ReconcileContext]]]


@dataclass
class ResourceSet:
    """A resource chain together with the objects it handles."""

    handles: Callable[[Any], bool]
    resources: List[Resource]
    init_ctx: Optional[InitCtx] = None
    name: str = ""

    def __post_init__(self):
        if self.handles is None:
            raise InvalidConfigError("handles must not be empty")
        if not self.resources:
            raise InvalidConfigError("resources must not be empty")

    async def init_context(self, ctx: ReconcileContext, obj: Any) -> ReconcileContext:
        """
        Prepare the pass context for an object.

        Args:
            ctx: The base context created by the framework.
            obj: The object being reconciled.

        Returns:
            The context to run the pass with.
        """
        if self.init_ctx is None:
            return ctx
        initialized = await self.init_ctx(ctx, obj)
        return initialized if initialized is not None else ctx


@dataclass
class ResourceRouter:
    """Routes objects to the single resource set that handles them."""

    resource_sets: List[ResourceSet] = field(default_factory=list)

    def __post_init__(self):
        if not self.resource_sets:
            raise InvalidConfigError("resource_sets must not be empty")

    def resource_set(self, obj: Any) -> ResourceSet:
        """
        Find the resource set handling an object.

        Raises:
            NoResourceSetError: If no resource set handles the object.
            TooManyResourceSetsError: If more than one does.
        """
        matching = [rs for rs in self.resource_sets if rs.handles(obj)]

        if not matching:
            raise NoResourceSetError(f"no resource set handles object {obj!r}")
        if len(matching) > 1:
            names = ", ".join(rs.name or "<unnamed>" for rs in matching)
            raise TooManyResourceSetsError(
                f"multiple resource sets handle object {obj!r}: {names}"
            )

        logger.debug(f"Routed object to resource set '{matching[0].name}'")
        return matching[0]
