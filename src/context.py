"""
Reconcile Context - Pass-scoped request object.

One ReconcileContext is created per reconciliation pass and threaded through
every handler call. It carries the cancellation state of the pass, the
logging metadata attached to every record emitted during the pass, and any
values the resource set seeds when initializing the pass.
"""

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterator, MutableMapping, Optional, Tuple


class CancellationState(Enum):
    """Cancellation state of a reconciliation pass."""

    RUNNING = "running"
    # Skip the remaining steps of the current resource only.
    RESOURCE_CANCELED = "resource_canceled"
    # Stop the whole pass. Terminal.
    RECONCILIATION_CANCELED = "reconciliation_canceled"


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that appends pass metadata to every message.

    The metadata mapping is held by reference, so keys set on the context
    after the adapter was created still show up. Per-call metadata can be
    passed with the ``keyvals`` keyword argument.
    """

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        keyvals = dict(self.extra)
        keyvals.update(kwargs.pop("keyvals", None) or {})

        extra = dict(kwargs.get("extra") or {})
        extra["keyvals"] = keyvals
        kwargs["extra"] = extra

        if keyvals:
            pairs = " ".join(f"{k}={v}" for k, v in keyvals.items())
            msg = f"{msg} ({pairs})"
        return msg, kwargs


class ReconcileContext:
    """
    Scoped request object for one reconciliation pass.

    Handlers signal cooperative cancellation through
    :meth:`cancel_resource` and :meth:`cancel_reconciliation`. Reconciliation
    cancellation always takes precedence and is never cleared.
    """

    def __init__(
        self,
        log_meta: Optional[Dict[str, Any]] = None,
        values: Optional[Dict[str, Any]] = None,
    ):
        self._cancellation = CancellationState.RUNNING
        self.log_meta: Dict[str, Any] = dict(log_meta or {})
        self.values: Dict[str, Any] = dict(values or {})

    @property
    def cancellation(self) -> CancellationState:
        return self._cancellation

    @property
    def is_reconciliation_canceled(self) -> bool:
        return self._cancellation is CancellationState.RECONCILIATION_CANCELED

    @property
    def is_resource_canceled(self) -> bool:
        return self._cancellation is CancellationState.RESOURCE_CANCELED

    def cancel_reconciliation(self) -> None:
        """Stop the whole pass before its next step."""
        self._cancellation = CancellationState.RECONCILIATION_CANCELED

    def cancel_resource(self) -> None:
        """Skip the remaining steps of the resource currently executing."""
        if self._cancellation is CancellationState.RUNNING:
            self._cancellation = CancellationState.RESOURCE_CANCELED

    def reset_resource_cancellation(self) -> None:
        if self._cancellation is CancellationState.RESOURCE_CANCELED:
            self._cancellation = CancellationState.RUNNING

    @contextmanager
    def function(self, name: str) -> Iterator[None]:
        """Set the ``function`` logging key while one pipeline step runs."""
        previous = self.log_meta.get("function")
        self.log_meta["function"] = name
        try:
            yield
        finally:
            if previous is None:
                self.log_meta.pop("function", None)
            else:
                self.log_meta["function"] = previous

    def logger(self, base: logging.Logger) -> ContextLogger:
        """Return ``base`` bound to this pass's logging metadata."""
        return ContextLogger(base, self.log_meta)

    def __repr__(self) -> str:
        return (
            f"ReconcileContext(cancellation={self._cancellation.value}, "
            f"log_meta={self.log_meta!r})"
        )
