"""Pytest configuration and fixtures."""

import logging
from typing import Any, Callable, Dict, List, Optional

import pytest

from backoff_policy import BackOffPolicy
from context import ReconcileContext
from resources.base import Patch, Resource


class RecordingResource(Resource):
    """
    Resource recording every call into a shared list.

    ``hooks`` maps an operation name to a callable receiving the context,
    run before the operation returns. ``errors`` maps an operation name to an
    exception raised by that operation.
    """

    def __init__(
        self,
        name: str,
        calls: List[tuple],
        patch: Optional[Patch] = None,
        hooks: Optional[Dict[str, Callable[[ReconcileContext], None]]] = None,
        errors: Optional[Dict[str, Exception]] = None,
    ):
        self._name = name
        self.calls = calls
        self.patch = patch
        self.hooks = hooks or {}
        self.errors = errors or {}

    @property
    def name(self) -> str:
        return self._name

    def _record(self, ctx: ReconcileContext, operation: str, *args: Any) -> None:
        self.calls.append((self._name, operation) + args)
        if operation in self.hooks:
            self.hooks[operation](ctx)
        if operation in self.errors:
            raise self.errors[operation]

    async def get_current_state(self, ctx, obj):
        self._record(ctx, "get_current_state")
        return {"current": self._name}

    async def get_desired_state(self, ctx, obj):
        self._record(ctx, "get_desired_state")
        return {"desired": self._name}

    async def new_update_patch(self, ctx, obj, current_state, desired_state):
        self._record(ctx, "new_update_patch")
        return self.patch

    async def new_delete_patch(self, ctx, obj, current_state, desired_state):
        self._record(ctx, "new_delete_patch")
        return self.patch

    async def apply_create_change(self, ctx, obj, create_change):
        self._record(ctx, "apply_create_change", create_change)

    async def apply_delete_change(self, ctx, obj, delete_change):
        self._record(ctx, "apply_delete_change", delete_change)

    async def apply_update_change(self, ctx, obj, update_change):
        self._record(ctx, "apply_update_change", update_change)


@pytest.fixture
def calls():
    """Shared call log for recording resources."""
    return []


@pytest.fixture
def make_resource(calls):
    """Factory for recording resources sharing the ``calls`` log."""

    def factory(name: str, **kwargs) -> RecordingResource:
        return RecordingResource(name, calls, **kwargs)

    return factory


@pytest.fixture
def full_patch():
    """Patch carrying all three change kinds."""
    patch = Patch()
    patch.set_create_change("to-create")
    patch.set_delete_change("to-delete")
    patch.set_update_change("to-update")
    return patch


@pytest.fixture
def ctx():
    """Fresh pass context."""
    return ReconcileContext(log_meta={"component": "test"})


@pytest.fixture
def fast_backoff():
    """Factory for policies that never sleep and give up after N attempts."""

    def factory(max_attempts: int = 3) -> BackOffPolicy:
        return BackOffPolicy(
            initial_interval=0,
            max_interval=0,
            jitter=0,
            max_elapsed_time=None,
            max_attempts=max_attempts,
        )

    return factory


@pytest.fixture
def test_logger():
    """Logger for components under test."""
    return logging.getLogger("reconkit.test")


@pytest.fixture
def sample_object():
    """Sample custom object."""
    return {
        "apiVersion": "example.com/v1",
        "kind": "Database",
        "metadata": {"name": "production-pg", "namespace": "default"},
        "spec": {"engine": "postgres", "replicas": 3},
    }
