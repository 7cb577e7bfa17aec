"""Core package - Configuration, logging, exceptions.

This package provides foundational infrastructure used by all other layers.

Modules:
    - config: Environment and configuration management
    - logging: Structured JSON logging
    - exceptions: Custom exception hierarchy
"""

from charityflow.core.exceptions import (
    CharityFlowError,
    ConfigurationError,
    DeliveryError,
    IntegrationError,
    StoreError,
    TemplateNotFoundError,
    UnknownCampaignError,
    ValidationError,
    WebhookError,
    WorkflowError,
)

__all__ = [
    "CharityFlowError",
    "ConfigurationError",
    "ValidationError",
    "StoreError",
    "IntegrationError",
    "DeliveryError",
    "WebhookError",
    "WorkflowError",
    "TemplateNotFoundError",
    "UnknownCampaignError",
]
