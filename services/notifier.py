"""Outbound webhook delivery for alert events."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from models.records import AlertEvent
from services.errors import DeliveryError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
DEFAULT_MAX_REDIRECTS = 2


class WebhookNotifier:
    """POSTs alert events as JSON to a single configured endpoint.

    One attempt per event: no retries, at most ``max_redirects`` redirects.
    """

    def __init__(
        self,
        url: Optional[str],
        timeout: float = DEFAULT_TIMEOUT,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.max_redirects = max_redirects
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @property
    def host(self) -> str:
        if not self.url:
            return "<unset>"
        try:
            return httpx.URL(self.url).host or "<unknown>"
        except httpx.InvalidURL:
            return "<invalid>"

    def open(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.Client(
            timeout=self.timeout,
            follow_redirects=True,
            max_redirects=self.max_redirects,
            headers={"Content-Type": "application/json"},
            transport=self._transport,
        )

    def close(self) -> None:
        if self._client is None:
            return
        self._client.close()
        self._client = None

    def send(self, event: AlertEvent) -> int:
        """Deliver ``event`` and return the response status code.

        Raises ``DeliveryError`` on timeout, transport failure, a non-2xx status, or
        when the notifier has not been opened or was closed.
        """
        if not self.url:
            raise DeliveryError("Alert webhook URL is not configured.")
        client = self._client
        if client is None:
            raise DeliveryError("Alert notifier is closed.")

        try:
            response = client.post(self.url, json=event.to_payload())
        except httpx.TimeoutException as exc:
            raise DeliveryError(
                f"Webhook at {self.host} timed out after {self.timeout}s ({type(exc).__name__})."
            ) from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(
                f"Webhook at {self.host} unreachable ({type(exc).__name__})."
            ) from exc
        except httpx.InvalidURL as exc:
            raise DeliveryError(f"Webhook URL is invalid ({type(exc).__name__}).") from exc
        except RuntimeError as exc:
            # httpx raises RuntimeError when the client was closed mid-request.
            raise DeliveryError("Alert notifier is closed.") from exc

        if not response.is_success:
            raise DeliveryError(
                f"Webhook at {self.host} responded {response.status_code} {response.reason_phrase}.",
                status_code=response.status_code,
            )
        return response.status_code
