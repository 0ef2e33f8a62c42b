"""Currency conversion API client with exponential backoff retry logic"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from budget_engine.config import settings
from budget_engine.domain.exceptions import ConversionServiceError
from budget_engine.domain.models import ConversionItem
from budget_engine.infrastructure.observability.metrics import conversion_latency_histogram, record_conversion

logger = logging.getLogger(__name__)

BULK_ENDPOINT = "/rpc/convert_amount_bulk"


class ConversionClient:
    """Client for the external bulk currency conversion service"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.conversion_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.conversion_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.conversion_backoff_base
        self.transport = transport

    async def convert_bulk(
        self,
        items: Sequence[ConversionItem],
        target_currency: str,
    ) -> Optional[List[Dict[str, Any]]]:
        """
        Convert many amounts into one target currency in a single call.

        The response list is index-aligned with `items`: element i is the
        conversion of item i. Callers must zip by position, not by id.

        Returns:
            Raw response entries, or None when the service is unreachable,
            keeps failing, or answers with something that is not a list of
            the same length. Never raises.
        """
        if not items or not target_currency:
            return None

        payload = {
            "p_items": [{"amount": item.amount, "currency": item.currency} for item in items],
            "p_to_currency": target_currency,
        }

        try:
            data = await self._post_with_retry(payload)
        except ConversionServiceError as e:
            record_conversion("failed", len(items))
            logger.error(f"Conversion service error: {e}", extra={"target_currency": target_currency})
            return None

        if not isinstance(data, list) or len(data) != len(items):
            record_conversion("malformed", len(items))
            logger.warning(
                "Conversion response is not aligned with the request",
                extra={
                    "target_currency": target_currency,
                    "expected": len(items),
                    "received": len(data) if isinstance(data, list) else None,
                },
            )
            return None

        record_conversion("ok", len(items))
        return data

    async def _post_with_retry(self, payload: Dict[str, Any]) -> Any:
        """
        POST the bulk request, retrying transport errors and 5xx responses.

        Retry strategy:
        - Exponential backoff: base, 2×base, 4×base, ...
        - 4xx and undecodable bodies fail immediately

        Raises:
            ConversionServiceError: When every attempt failed
        """
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                try:
                    with conversion_latency_histogram.time():
                        response = await client.post(f"{self.base_url}{BULK_ENDPOINT}", json=payload)
                    response.raise_for_status()
                    return response.json()

                except httpx.HTTPStatusError as e:
                    if e.response.status_code < 500:
                        raise ConversionServiceError(f"Conversion API error: {e.response.status_code}") from e
                    error: Exception = e

                except httpx.RequestError as e:
                    error = e

                except ValueError as e:
                    raise ConversionServiceError(f"Invalid conversion response: {e}") from e

                attempt += 1
                if attempt >= self.max_retries:
                    raise ConversionServiceError(
                        f"Conversion API unavailable after {attempt} attempts"
                    ) from error

                backoff = self.backoff_base * (2 ** (attempt - 1))
                await asyncio.sleep(backoff)
