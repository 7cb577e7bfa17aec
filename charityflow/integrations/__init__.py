"""Integrations package - Delivery transport, sinks and webhooks.

Modules:
    - base: Collaborator interfaces, IntegrationBase, RetryPolicy
    - local: In-process transport and sinks (dry run and tests)
    - n8n: External automation webhook hook
"""

from charityflow.integrations.base import (
    AnalyticsSink,
    DeliveryTransport,
    ExternalAutomationHook,
    IntegrationBase,
    RetryPolicy,
    ScheduledTaskSink,
    StaffTaskSink,
)

__all__ = [
    "AnalyticsSink",
    "DeliveryTransport",
    "ExternalAutomationHook",
    "IntegrationBase",
    "RetryPolicy",
    "ScheduledTaskSink",
    "StaffTaskSink",
]
