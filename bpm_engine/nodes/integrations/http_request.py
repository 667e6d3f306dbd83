"""API and Webhook nodes - make HTTP requests to external services."""

from __future__ import annotations

import json
import logging
from typing import Any, TYPE_CHECKING

import httpx

from ...core.exceptions import ExternalCallError
from ..base import BaseNode, NodeTypeDescription
from ..configs import ApiConfig, WebhookConfig

if TYPE_CHECKING:
    from ...engine.types import ExecutionOutcome, InstanceContext, Node

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class ApiNode(BaseNode):
    """
    API node - call an HTTP endpoint and store the response.

    The response is stored as ``{"status_code", "headers", "body"}`` under
    ``result_variable`` (or the node id). Transport errors and, unless
    ``fail_on_status`` is off, 4xx/5xx responses raise ExternalCallError.
    """

    node_description = NodeTypeDescription(
        name="api",
        display_name="API Call",
        description="Makes HTTP requests to external APIs",
        icon="fa:globe",
        group=["integrations"],
    )
    config_model = ApiConfig

    @property
    def type(self) -> str:
        return "api"

    @property
    def description(self) -> str:
        return "Makes HTTP requests to external APIs"

    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        config: ApiConfig = node.config  # type: ignore[assignment]

        url = str(self.resolve(ctx, config.url))
        headers = {"Content-Type": "application/json"}
        for name, value in config.headers.items():
            resolved = self.resolve(ctx, value)
            headers[name] = str(resolved) if resolved is not None else ""
        params = {k: v for k, v in self.resolve(ctx, config.query).items() if v is not None}

        body = None
        if config.method in ("POST", "PUT", "PATCH") and config.body is not None:
            body = self.resolve(ctx, config.body)
            if isinstance(body, str) and body:
                try:
                    body = json.loads(body)
                except json.JSONDecodeError:
                    pass  # Keep as string

        client = ctx.services.http_client
        if client is not None:
            response = await self._send(client, node, config, url, headers, params, body)
        else:
            async with httpx.AsyncClient(timeout=config.timeout or DEFAULT_TIMEOUT) as owned:
                response = await self._send(owned, node, config, url, headers, params, body)

        if config.fail_on_status and response.status_code >= 400:
            raise ExternalCallError(
                f"{config.method} {url} returned HTTP {response.status_code}",
                node_id=node.id,
                status_code=response.status_code,
            )

        ctx.data[config.result_variable or node.id] = {
            "status_code": response.status_code,
            "headers": dict(response.headers),
            "body": self._parse_body(response, config.response_type),
        }
        return self.advance()

    async def _send(
        self,
        client: httpx.AsyncClient,
        node: Node,
        config: ApiConfig,
        url: str,
        headers: dict[str, str],
        params: dict[str, Any],
        body: Any,
    ) -> httpx.Response:
        request_kwargs: dict[str, Any] = {"headers": headers, "params": params}
        if body is not None:
            if isinstance(body, (dict, list)):
                request_kwargs["json"] = body
            else:
                request_kwargs["content"] = str(body)
        if config.timeout:
            request_kwargs["timeout"] = config.timeout

        try:
            return await client.request(config.method, url, **request_kwargs)
        except httpx.HTTPError as e:
            raise ExternalCallError(f"{config.method} {url} failed: {e}", node_id=node.id) from e

    def _parse_body(self, response: httpx.Response, response_type: str) -> Any:
        if response_type == "text":
            return response.text
        try:
            return response.json()
        except ValueError:
            return response.text


class WebhookNode(ApiNode):
    """Webhook node - POST instance data to an external endpoint."""

    node_description = NodeTypeDescription(
        name="webhook",
        display_name="Webhook",
        description="Send data to an external webhook",
        icon="fa:bolt",
        group=["integrations"],
    )
    config_model = WebhookConfig

    @property
    def type(self) -> str:
        return "webhook"

    @property
    def description(self) -> str:
        return "Send data to an external webhook"
