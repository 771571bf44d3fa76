"""
Prometheus metrics for the flow engine.

Exposed by the API at /metrics.
"""

from prometheus_client import Counter, Histogram

DISPATCHES_TOTAL = Counter(
    "maintflow_dispatches_total",
    "Trigger events dispatched to the rule engine",
    ["trigger"],
)

EXECUTIONS_TOTAL = Counter(
    "maintflow_executions_total",
    "Rule executions recorded, by aggregate outcome",
    ["success"],
)

ACTION_ATTEMPTS_TOTAL = Counter(
    "maintflow_action_attempts_total",
    "Action handler invocations, including retries",
    ["action_type", "outcome"],
)

ACTION_DURATION_SECONDS = Histogram(
    "maintflow_action_duration_seconds",
    "Wall time of a single action handler attempt",
    ["action_type"],
)
