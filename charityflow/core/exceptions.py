"""CharityFlow Exception Hierarchy.

All custom exceptions inherit from CharityFlowError.
WorkflowError subclasses are hard lookup failures: an orchestrator converts
them into a failed WorkflowResult at its boundary, they never escape it.

Exception Hierarchy:
    CharityFlowError (base)
    ├── ConfigurationError
    ├── ValidationError
    ├── StoreError
    ├── IntegrationError
    │   ├── DeliveryError
    │   └── WebhookError
    └── WorkflowError
        ├── TemplateNotFoundError
        └── UnknownCampaignError
"""


class CharityFlowError(Exception):
    """Base exception for all CharityFlow errors.

    All custom exceptions in CharityFlow inherit from this class,
    allowing for broad exception handling when needed.
    """

    pass


class ConfigurationError(CharityFlowError):
    """Configuration is invalid or missing.

    Raised when:
        - A numeric environment variable cannot be parsed
        - Webhook credentials are only partially present
    """

    pass


class ValidationError(CharityFlowError):
    """Data validation failed.

    Raised when:
        - A template is registered twice under the same id
        - A sequence step has a negative delay
        - A trigger defines a negative delay or cooldown
    """

    pass


class StoreError(CharityFlowError):
    """Member store or execution log operation failed.

    Raised when:
        - A member id is not present in the store
        - A write to the store is rejected
    """

    pass


class IntegrationError(CharityFlowError):
    """External integration failed.

    Base class for integration-specific errors.
    """

    pass


class DeliveryError(IntegrationError):
    """Message delivery transport failed.

    Raised when:
        - The transport rejects a message
        - The channel is not supported by the transport
    """

    pass


class WebhookError(IntegrationError):
    """External automation webhook failed.

    Raised when:
        - The webhook URL is unreachable or times out
        - The webhook answers with a non-2xx status
    """

    pass


class WorkflowError(CharityFlowError):
    """A workflow could not run because a required definition is missing."""

    pass


class TemplateNotFoundError(WorkflowError):
    """Requested template id is not registered in the template store."""

    def __init__(self, template_id: str):
        super().__init__(f"Template '{template_id}' not found")
        self.template_id = template_id


class UnknownCampaignError(WorkflowError):
    """Requested drip campaign type has no definition."""

    def __init__(self, campaign_type: str):
        super().__init__(f"Campaign type '{campaign_type}' not found")
        self.campaign_type = campaign_type
