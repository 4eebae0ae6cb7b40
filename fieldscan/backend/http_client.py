"""HTTP client for the remote fulfillment service."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..config import OperatorConfig, Settings
from ..errors import GENERIC_FAILURE_MESSAGE, MalformedResponse, ServiceRejected, TransportFailure

logger = logging.getLogger(__name__)

_MAX_MESSAGE_CHARS = 200


@dataclass
class ServiceReply:
    """Successful response from the service."""

    data: Dict[str, Any] = field(default_factory=dict)
    message: Optional[str] = None


class FulfillmentHttpClient:
    """Thin wrapper around the fulfillment REST API. Every call is a JSON POST."""

    def __init__(self, settings: Settings, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self._client = httpx.AsyncClient(timeout=self.settings.http_timeout_seconds, transport=transport)

    async def lookup(self, config: OperatorConfig, code: str) -> List[Any]:
        """Return the order records the service holds for a participant code, as sent."""
        reply = await self._post(config, self.settings.endpoints.lookup_path, {"code": code}, op="lookup")
        orders = reply.data.get("orders")
        if not isinstance(orders, list):
            raise MalformedResponse(f"lookup: response has no order list {reply.data!r}")
        return orders

    async def deliver(self, config: OperatorConfig, order_id: str) -> ServiceReply:
        payload = {"orderId": order_id, "volunteerCode": config.volunteer_code}
        return await self._post(config, self.settings.endpoints.deliver_path, payload, op="deliver")

    async def submit(self, config: OperatorConfig, code: str) -> ServiceReply:
        payload = {
            self.settings.endpoints.submit_code_field: code,
            "volunteerCode": config.volunteer_code,
            "category": config.category,
        }
        return await self._post(config, self.settings.endpoints.submit_path, payload, op="submit")

    async def aclose(self) -> None:
        try:
            await self._client.aclose()
        except Exception as e:
            logger.warning("Error closing HTTP client: %s", e)

    async def _post(self, config: OperatorConfig, path: str, payload: Dict[str, Any], *, op: str) -> ServiceReply:
        url = self._build_url(config.endpoint_url, path)
        headers = {"X-API-Key": config.credential} if config.credential else None
        try:
            logger.info("fulfillment.%s: POST %s", op, url)
            response = await self._client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logger.error("fulfillment.%s: request timeout", op)
            raise TransportFailure(f"{op}: timeout") from e
        except httpx.HTTPError as e:
            logger.error("fulfillment.%s: transport error - %s", op, e)
            raise TransportFailure(f"{op}: {e}") from e

        if not response.is_success:
            message = self._error_message(response)
            logger.error("fulfillment.%s: HTTP %d - %s", op, response.status_code, message)
            raise ServiceRejected(message, status_code=response.status_code)

        data = self._parse_body(response, op)
        message = data.get("message") if isinstance(data.get("message"), str) else None
        return ServiceReply(data=data, message=message)

    @staticmethod
    def _parse_body(response: httpx.Response, op: str) -> Dict[str, Any]:
        if not response.content.strip():
            return {}
        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error("fulfillment.%s: unparseable body - %s", op, e)
            raise MalformedResponse(f"{op}: unparseable body") from e
        if isinstance(body, list):
            # Some deployments answer a lookup with a bare list of orders
            return {"orders": body}
        if not isinstance(body, dict):
            logger.error("fulfillment.%s: unexpected body type %s", op, type(body).__name__)
            raise MalformedResponse(f"{op}: unexpected body {body!r}")
        return body

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            for key in ("message", "error", "detail"):
                value = body.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
        text = response.text.strip()
        if text and not isinstance(body, dict):
            # Plain-text or bare JSON string bodies are shown as sent
            if isinstance(body, str):
                text = body.strip() or text
            return text[:_MAX_MESSAGE_CHARS]
        return GENERIC_FAILURE_MESSAGE

    @staticmethod
    def _build_url(base: str, path: str) -> str:
        base = base.rstrip("/")
        path = path.strip("/")
        return f"{base}/{path}" if path else base


__all__ = ["FulfillmentHttpClient", "ServiceReply"]
