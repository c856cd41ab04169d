"""
Resource Base - The handler contract and the Patch it produces.

A resource handles one facet of a managed object: it reads the current and
desired state, diffs them into a Patch, and applies the changes the Patch
carries. Resources are composed into ordered chains and may be wrapped by
decorators that implement the same contract.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

from context import ReconcileContext

StateT = TypeVar("StateT")


class ChangeKind(Enum):
    """Kinds of change a Patch can carry, in the order they are applied."""

    CREATE = "create"
    DELETE = "delete"
    UPDATE = "update"


class Patch:
    """
    Container of at most one change payload per ChangeKind.

    Presence of a kind is the only thing that decides whether its apply step
    runs, so a payload of ``None`` that was explicitly set still counts.
    """

    def __init__(self):
        self._changes: Dict[ChangeKind, Any] = {}

    def set_create_change(self, change: Any) -> None:
        self._changes[ChangeKind.CREATE] = change

    def set_delete_change(self, change: Any) -> None:
        self._changes[ChangeKind.DELETE] = change

    def set_update_change(self, change: Any) -> None:
        self._changes[ChangeKind.UPDATE] = change

    def get_create_change(self) -> Tuple[Any, bool]:
        return self.get(ChangeKind.CREATE)

    def get_delete_change(self) -> Tuple[Any, bool]:
        return self.get(ChangeKind.DELETE)

    def get_update_change(self) -> Tuple[Any, bool]:
        return self.get(ChangeKind.UPDATE)

    def get(self, kind: ChangeKind) -> Tuple[Any, bool]:
        """Return ``(payload, present)`` for the given kind."""
        if kind in self._changes:
            return self._changes[kind], True
        return None, False

    def has(self, kind: ChangeKind) -> bool:
        return kind in self._changes

    def kinds(self) -> List[ChangeKind]:
        """Present kinds in apply order: create, delete, update."""
        return [kind for kind in ChangeKind if kind in self._changes]

    def __len__(self) -> int:
        return len(self._changes)

    def __bool__(self) -> bool:
        return bool(self._changes)

    def __repr__(self) -> str:
        changes = ", ".join(f"{k.value}={self._changes[k]!r}" for k in self.kinds())
        return f"Patch({changes})"


class Resource(ABC, Generic[StateT]):
    """
    Abstract base class for resource handlers.

    Every operation must be safe to re-invoke, since a RetryResource may run
    it again after a failure. Patch computation must be deterministic for
    identical inputs.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable identifier used in logs and metrics."""
        pass

    @abstractmethod
    async def get_current_state(self, ctx: ReconcileContext, obj: Any) -> StateT:
        """
        Read the actual state of the managed system relevant to this resource.

        Args:
            ctx: The pass context.
            obj: The object being reconciled.

        Returns:
            The current state.
        """
        pass

    @abstractmethod
    async def get_desired_state(self, ctx: ReconcileContext, obj: Any) -> StateT:
        """
        Derive the desired state from the object being reconciled.

        Args:
            ctx: The pass context.
            obj: The object being reconciled.

        Returns:
            The desired state.
        """
        pass

    @abstractmethod
    async def new_update_patch(
        self,
        ctx: ReconcileContext,
        obj: Any,
        current_state: StateT,
        desired_state: StateT,
    ) -> Optional[Patch]:
        """Compute the changes moving the current state toward the desired one."""
        pass

    @abstractmethod
    async def new_delete_patch(
        self,
        ctx: ReconcileContext,
        obj: Any,
        current_state: StateT,
        desired_state: StateT,
    ) -> Optional[Patch]:
        """Compute the cleanup changes for an object being deleted."""
        pass

    @abstractmethod
    async def apply_create_change(
        self, ctx: ReconcileContext, obj: Any, create_change: Any
    ) -> None:
        pass

    @abstractmethod
    async def apply_delete_change(
        self, ctx: ReconcileContext, obj: Any, delete_change: Any
    ) -> None:
        pass

    @abstractmethod
    async def apply_update_change(
        self, ctx: ReconcileContext, obj: Any, update_change: Any
    ) -> None:
        pass

    def underlying(self) -> "Resource":
        """
        Return the innermost non-decorating resource.

        Concrete resources return themselves. Decorators must delegate to
        the resource they wrap.
        """
        return self
