"""
Onramper API client.

Only the checkout intent call is used: it is the one outbound flow that
writes to the ledger, with the caller's identity known up front. Intent
creation is not idempotent upstream, so failed calls are never retried here.
"""
import time
from typing import Optional

import httpx
import pydantic
import structlog

from fiat_ramp.core.exceptions import UpstreamError
from fiat_ramp.monitoring.metrics import metrics

from .schemas import CheckoutIntent, CheckoutIntentResponse, InitiateTransactionRequest

logger = structlog.get_logger(__name__)


class OnramperClient:
    """Async HTTP client for the Onramper API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Onramper client.

        Args:
            base_url: Onramper API base URL
            api_key: Onramper API key, sent as the Authorization header
            timeout: Request timeout in seconds
            http_client: Optional preconfigured HTTP client (tests, pooling)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the underlying HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def initiate_transaction(self, payload: InitiateTransactionRequest) -> CheckoutIntent:
        """
        Create a checkout intent.

        Args:
            payload: Checkout intent request

        Returns:
            CheckoutIntent: Parsed ``message`` of the Onramper response

        Raises:
            UpstreamError: On transport errors, non-200 responses, undecodable
                bodies or a response without a transaction id
        """
        url = f"{self.base_url}/checkout/intent"
        start_time = time.time()
        logger.info("onramper_initiate_transaction", url=url, onramp=payload.onramp)

        try:
            response = await self._get_client().post(
                url,
                json=payload.model_dump(mode="json", by_alias=True, exclude_none=True),
                headers={
                    "Authorization": self.api_key,
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            metrics.record_upstream_call(
                "checkout_intent", "transport_error", time.time() - start_time
            )
            logger.error("onramper_request_failed", error=str(e))
            raise UpstreamError(f"Failed to initiate transaction: {e}", original_error=e) from e

        duration = time.time() - start_time
        metrics.record_upstream_call("checkout_intent", str(response.status_code), duration)

        if response.status_code != httpx.codes.OK:
            logger.error(
                "onramper_unexpected_status",
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise UpstreamError(
                f"Unable to initiate transaction: status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            intent = CheckoutIntentResponse.model_validate_json(response.content).message
        except pydantic.ValidationError as e:
            logger.error("onramper_response_invalid", error=str(e))
            raise UpstreamError(f"Failed to decode response: {e}", original_error=e) from e

        if not intent.transaction_information.transaction_id:
            logger.error("onramper_response_missing_transaction_id")
            raise UpstreamError("Onramper returned no transaction id")

        logger.info(
            "onramper_transaction_initiated",
            transaction_id=intent.transaction_information.transaction_id,
            status=intent.status,
            duration_seconds=duration,
        )
        return intent

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
