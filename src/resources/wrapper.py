"""
Resource Wrapper - Wraps a resource chain in the default decorators.
"""

import logging
from typing import Callable, List, Optional

from backoff_policy import BackOffPolicy
from errors import InvalidConfigError
from resources.base import Resource
from resources.metrics import MetricsResource
from resources.retry import RetryResource


def wrap(
    resources: List[Resource],
    logger: logging.Logger,
    backoff_factory: Optional[Callable[[], BackOffPolicy]] = None,
    retry: bool = True,
    metrics: bool = True,
) -> List[Resource]:
    """
    Wrap every resource of a chain, preserving order.

    Retry is the inner layer so that metrics observe the outcome after all
    retries. Every retry layer gets its own policy from ``backoff_factory``.

    Args:
        resources: The ordered resource chain.
        logger: Logger used by the retry layer.
        backoff_factory: Produces a policy per retry layer.
        retry: Whether to add the retry layer.
        metrics: Whether to add the metrics layer.

    Returns:
        A new list of wrapped resources.

    Raises:
        InvalidConfigError: If the chain is empty.
    """
    if not resources:
        raise InvalidConfigError("resources must not be empty")

    backoff_factory = backoff_factory or BackOffPolicy

    wrapped: List[Resource] = []
    for resource in resources:
        if retry:
            resource = RetryResource(resource, logger, backoff=backoff_factory())
        if metrics:
            resource = MetricsResource(resource)
        wrapped.append(resource)
    return wrapped
