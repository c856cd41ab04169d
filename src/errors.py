"""
Errors - Exception taxonomy for the operator framework.

Configuration errors fail fast at construction time. Execution and handler
errors are fatal to a single reconciliation pass. Fatal errors are raised to
the hosting entry point, which decides how to shut down.
"""

from typing import Optional


class OperatorError(Exception):
    """Base class for all framework errors."""


class InvalidConfigError(OperatorError, ValueError):
    """A required dependency or setting is missing or inconsistent."""


class ExecutionFailedError(OperatorError):
    """A reconciliation pass could not be executed at all."""


class NoResourceSetError(OperatorError):
    """No resource set handles the observed object."""


class TooManyResourceSetsError(OperatorError):
    """More than one resource set claims the observed object."""


class CRDNotEstablishedError(OperatorError):
    """The custom resource definition was not accepted by the API server."""


class FatalError(OperatorError):
    """
    The framework cannot make progress and must be shut down.

    Raised instead of terminating the process so that the embedding
    application can run its own shutdown sequence.
    """


class BootFailedError(FatalError):
    """Boot retries were exhausted."""


class EventProcessingFailedError(FatalError):
    """Event loop retries were exhausted."""


def cause(err: BaseException) -> BaseException:
    """Return the root of an exception's ``__cause__`` chain."""
    current: Optional[BaseException] = err
    while current.__cause__ is not None:
        current = current.__cause__
    return current
