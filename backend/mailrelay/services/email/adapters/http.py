"""Base for providers reached over a JSON REST API (SendGrid, Brevo)"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Union

import httpx

from mailrelay.core.errors import ProviderRequestError
from mailrelay.services.email.adapters.base import BaseEmailAdapter, EmailMessage, SendResult

logger = logging.getLogger(__name__)

TimeValue = Union[datetime, int, None]


def contacts(addresses: List[str]) -> List[Dict[str, str]]:
    return [{"email": address} for address in addresses]


def to_unix_timestamp(value: TimeValue) -> Optional[int]:
    """Seconds since the epoch; naive datetimes are taken as UTC"""
    if value is None or isinstance(value, int):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def to_date_string(value: Union[date, str, None]) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def drop_unset(params: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None}


class HttpEmailAdapter(BaseEmailAdapter):
    """Shared request plumbing for REST providers.

    ``send_email`` keeps the adapter contract (rejections come back as failed
    SendResults). The management calls built on ``request`` raise
    ProviderRequestError instead, since they have no log entry to record a
    failure on.
    """

    label = "Provider"

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        super().__init__()
        if not api_key:
            raise ValueError(f"{self.label} API key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def auth_headers(self) -> Dict[str, str]:
        raise NotImplementedError

    def message_id(self, response: httpx.Response) -> Optional[str]:
        """Provider message id from a successful send response"""
        raise NotImplementedError

    def error_message(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("message"):
            return body["message"]
        return response.text or f"{self.label} request failed with status {response.status_code}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"accept": "application/json", **self.auth_headers()}
        )

    async def submit(self, path: str, payload: Dict[str, Any], message: EmailMessage) -> SendResult:
        """POST one send request. 2xx means accepted, with or without an id"""
        async with self._client() as client:
            response = await client.post(path, json=payload)

        if response.is_success:
            provider_id = self.message_id(response)
            if not provider_id:
                # Webhooks for this email will not match a log entry
                logger.warning(f"{self.label} accepted email to {message.to} but returned no message id")
            return SendResult.ok(provider_id)

        error = self.error_message(response)
        logger.warning(f"{self.label} rejected email to {message.to}: {error}")
        return SendResult.failure(error)

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Management call; returns the decoded body (None when empty)

        Raises:
            ProviderRequestError: transport failure or non-2xx response
        """
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=json, params=drop_unset(params or {}))
        except httpx.HTTPError as e:
            logger.error(f"{self.label} {method} {path} failed: {e}")
            raise ProviderRequestError(f"{self.label} request failed: {e}") from e

        if not response.is_success:
            error = self.error_message(response)
            logger.warning(f"{self.label} {method} {path} returned {response.status_code}: {error}")
            raise ProviderRequestError(error, provider_status=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text
