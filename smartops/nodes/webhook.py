from __future__ import annotations

import base64
import json
import logging
import time
from typing import Any
from urllib.parse import urljoin

import httpx

from ..errors import NotConfigured, RemoteRejected, RemoteUnavailable
from ..models import AutomationStatus, StepOutcome
from .base import NodeBlueprint

logger = logging.getLogger(__name__)


class WebhookInvoker:
    """Triggers an n8n workflow webhook for a node."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str | None,
        *,
        basic_auth_active: bool = False,
        basic_auth_user: str = "",
        basic_auth_password: str = "",
    ) -> None:
        self._http = http
        self._base_url = (base_url or "").strip()
        self._basic_auth_active = basic_auth_active
        self._basic_auth_user = basic_auth_user
        self._basic_auth_password = basic_auth_password

    def resolve_url(self, template: str | None) -> str | None:
        if not template or not self._base_url:
            return None
        base = self._base_url if self._base_url.endswith("/") else f"{self._base_url}/"
        return urljoin(base, template.lstrip("/"))

    def authorization_header(self) -> str | None:
        if not self._basic_auth_active:
            return None
        if not self._basic_auth_user or not self._basic_auth_password:
            logger.warning("n8n basic auth marked active but credentials are missing")
            return None
        token = base64.b64encode(f"{self._basic_auth_user}:{self._basic_auth_password}".encode()).decode()
        return f"Basic {token}"

    async def __call__(self, blueprint: NodeBlueprint, payload: Any = None) -> StepOutcome:
        url = self.resolve_url(blueprint.endpoint_template)
        if url is None:
            raise NotConfigured(
                "n8n base URL is not configured. Monitoring until the endpoint becomes available."
            )

        headers = {"Content-Type": "application/json"}
        auth = self.authorization_header()
        if auth:
            headers["Authorization"] = auth

        body = json.dumps(payload) if payload is not None else None
        started = time.perf_counter()
        try:
            response = await self._http.post(url, headers=headers, content=body)
        except httpx.HTTPError as exc:
            raise RemoteUnavailable(
                "Unable to contact n8n webhook. Monitoring connectivity before retrying.",
                severity=AutomationStatus.MONITORING,
                details={"cause": str(exc) or type(exc).__name__},
            ) from exc
        duration_ms = round((time.perf_counter() - started) * 1000)

        response_body = self._read_body(response)
        logs = "\n".join(
            [f"Webhook: {url}", f"Status: {response.status_code}", f"Duration: {duration_ms}ms"]
        )

        if not response.is_success:
            raise RemoteRejected.from_response(response.status_code, response_body)

        return StepOutcome(
            summary=f"Webhook executed in {duration_ms}ms",
            result={"responseBody": response_body, "status": response.status_code},
            logs=logs,
        )

    @staticmethod
    def _read_body(response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                return response.json()
            except ValueError:
                return None
        text = response.text
        return text if text else None
