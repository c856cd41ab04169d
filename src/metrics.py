"""
Metrics - Prometheus instruments exported by the framework.
"""

from prometheus_client import Counter, Histogram

NAMESPACE = "reconkit"

event_duration = Histogram(
    "event_duration_seconds",
    "Time taken to dispatch a watch event to the reconciliation engine.",
    ["event"],
    namespace=NAMESPACE,
    subsystem="framework",
)

resource_operation_duration = Histogram(
    "operation_duration_seconds",
    "Time taken by a resource operation.",
    ["resource", "operation"],
    namespace=NAMESPACE,
    subsystem="resource",
)

resource_operation_errors = Counter(
    "operation_errors",
    "Number of failed resource operations.",
    ["resource", "operation"],
    namespace=NAMESPACE,
    subsystem="resource",
)
