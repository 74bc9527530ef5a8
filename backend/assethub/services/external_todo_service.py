# Overview: HTTP client for the external task tracker (approval and stock-alert todos).

"""
External task tracker integration.

Only the outbox calls into this module, after the business transaction has
committed. Every failure surfaces as ExternalTodoError so the outbox can
record it and schedule a retry.

With no EXTERNAL_TODO_BASE_URL configured every call is a successful no-op.
"""

from __future__ import annotations

from typing import Any

import requests
from flask import current_app


class ExternalTodoError(Exception):
    """Delivery to the task tracker failed (network, HTTP status, bad body)."""


class ExternalTodoClient:
    def __init__(self, base_url: str, token: str = "", timeout: float = 10, link_base: str = ""):
        self.base_url = (base_url or "").rstrip("/")
        self.token = token or ""
        self.timeout = timeout
        self.link_base = (link_base or "").rstrip("/")

    @classmethod
    def from_app(cls) -> "ExternalTodoClient":
        config = current_app.config
        return cls(
            base_url=config.get("EXTERNAL_TODO_BASE_URL", ""),
            token=config.get("EXTERNAL_TODO_TOKEN", ""),
            timeout=config.get("EXTERNAL_TODO_TIMEOUT", 10),
            link_base=config.get("EXTERNAL_TODO_LINK_BASE", ""),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def _send(self, method: str, path: str, body: dict[str, Any]) -> dict | None:
        if not self.enabled:
            return None

        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = requests.request(
                method,
                f"{self.base_url}{path}",
                json=body,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ExternalTodoError(f"{method} {path} failed: {exc}") from exc

        if not response.content:
            return None
        try:
            payload = response.json()
        except ValueError as exc:
            raise ExternalTodoError(f"{method} {path} returned a non-JSON body") from exc
        return payload if isinstance(payload, dict) else None

    def create_approval_todo(self, payload: dict[str, Any]) -> str | None:
        result = self._send("POST", "/todos", payload)
        todo_id = (result or {}).get("id")
        return str(todo_id) if todo_id else None

    def update_approval_todo(self, todo_id: str, *, status: str, result: str | None) -> None:
        self._send("PATCH", f"/todos/{todo_id}", {"status": status, "result": result})

    def reassign_approval_todo(self, todo_id: str, *, approver_id: str | None, approver_name: str | None) -> None:
        self._send("PATCH", f"/todos/{todo_id}", {"approverId": approver_id, "approverName": approver_name})

    def create_alert_todo(self, payload: dict[str, Any]) -> str | None:
        body = dict(payload)
        if self.link_base and body.get("consumableId"):
            body["link"] = f"{self.link_base}/consumables/{body['consumableId']}"
        result = self._send("POST", "/todos", body)
        todo_id = (result or {}).get("id")
        return str(todo_id) if todo_id else None

    def resolve_alert_todo(self, todo_id: str, *, message: str | None) -> None:
        self._send("PATCH", f"/todos/{todo_id}", {"status": "resolved", "result": message})


def update_external_approval_todo(approval, external_todo_id: str | None, *, client: ExternalTodoClient | None = None) -> None:
    """Tell the task tracker an approval reached its terminal status."""
    if not external_todo_id:
        return
    (client or ExternalTodoClient.from_app()).update_approval_todo(
        external_todo_id,
        status=approval.status,
        result=approval.result,
    )
