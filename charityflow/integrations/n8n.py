"""n8n webhook integration.

Posts workflow data to ``{N8N_WEBHOOK_URL}/webhook/{workflow}`` so an
external automation system can run its own follow-up flows (tier upgrade
celebrations, CRM updates, ...). Calls are best-effort: the dispatcher
records a failure and carries on.

Usage:
    from charityflow.integrations.n8n import N8nWebhookHook

    hook = N8nWebhookHook(get_config())
    hook.notify("tier-upgrade", {"member_id": "m-1", "new_tier": "gold"})
"""

import json
from typing import Any, Optional

import requests  # type: ignore[import-untyped]

from charityflow.core.config import Config, get_config
from charityflow.core.exceptions import IntegrationError, WebhookError
from charityflow.core.logging import get_logger
from charityflow.integrations.base import (
    ExternalAutomationHook,
    IntegrationBase,
    RateLimiter,
    RetryPolicy,
)

logger = get_logger(__name__)


class N8nWebhookHook(IntegrationBase, ExternalAutomationHook):
    """ExternalAutomationHook backed by n8n webhooks."""

    def __init__(
        self,
        config: Optional[Config] = None,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
    ):
        self._config = config or get_config()
        super().__init__(
            retry_policy
            or RetryPolicy(
                max_retries=self._config.retry_attempts,
                base_delay=self._config.retry_base_delay,
            )
        )
        self._session = session or requests.Session()
        self._rate_limiter = RateLimiter(calls_per_minute=60)

    @property
    def _base_url(self) -> Optional[str]:
        url = self._config.n8n_webhook_url
        if url and url.endswith("/"):
            url = url[:-1]
        return url

    def is_configured(self) -> bool:
        return bool(self._base_url)

    def health_check(self) -> bool:
        """Check the n8n instance answers at all."""
        if not self.is_configured():
            return False
        try:
            response = self._session.get(
                f"{self._base_url}/healthz", timeout=self._config.call_timeout
            )
            return bool(response.status_code == 200)
        except requests.RequestException:
            return False

    def notify(self, workflow: str, data: dict[str, Any]) -> None:
        """Trigger an n8n workflow.

        Args:
            workflow: Webhook path name, e.g. "tier-upgrade"
            data: JSON payload (datetimes, decimals and enums are stringified)

        Raises:
            WebhookError: If n8n is unreachable or answers with non-2xx
        """
        if not self.is_configured():
            logger.warning(
                "n8n webhook URL not configured - skipping workflow execution",
                extra={"context": {"workflow": workflow}},
            )
            return

        url = f"{self._base_url}/webhook/{workflow}"
        headers = {"Content-Type": "application/json"}
        if self._config.n8n_api_key:
            headers["Authorization"] = f"Bearer {self._config.n8n_api_key}"
        body = json.dumps(data, default=str)

        def _post() -> requests.Response:
            self._rate_limiter.wait_if_needed()
            return self._session.post(
                url, data=body, headers=headers, timeout=self._config.call_timeout
            )

        try:
            response = self.with_retry(
                _post, exceptions=(requests.ConnectionError, requests.Timeout)
            )
        except IntegrationError as e:
            raise WebhookError(f"n8n workflow {workflow} unreachable: {e}") from e
        except requests.RequestException as e:
            raise WebhookError(f"n8n workflow {workflow} request failed: {e}") from e

        if not response.ok:
            raise WebhookError(
                f"n8n workflow failed: {response.status_code} {response.reason}"
            )

        logger.info(
            f"n8n workflow executed successfully: {workflow}",
            extra={"context": {"workflow": workflow, "status": response.status_code}},
        )
