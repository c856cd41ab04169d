"""
Resource handlers for the reconciliation engine.

This package provides the resource contract and the decorators that can be
stacked on top of any resource.
"""

from resources.base import ChangeKind, Patch, Resource
from resources.metrics import MetricsResource
from resources.retry import RetryResource
from resources.wrapper import wrap

__all__ = [
    "ChangeKind",
    "Patch",
    "Resource",
    "MetricsResource",
    "RetryResource",
    "wrap",
]
