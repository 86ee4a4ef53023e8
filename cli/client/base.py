"""HTTP transport for the job management API"""

from typing import Any

import httpx
from rich.console import Console
from rich.panel import Panel

console = Console()


class HelpdeskError(Exception):
    """Raised when a job API call fails"""


class APIClient:
    """Sends requests under ``/v1`` and unwraps the response envelope"""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: int = 30,
        headers: dict[str, str] | None = None,
    ):
        self.client = httpx.Client(
            base_url=base_url.rstrip("/"), timeout=timeout, headers=headers or {}
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.client.close()

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self._request("GET", path, params=params)

    def post(self, path: str, json: dict[str, Any] | None = None) -> Any:
        return self._request("POST", path, json=json)

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self.client.request(method, f"/v1{path}", **kwargs)
        except httpx.RequestError as e:
            console.print(f"[red]Connection error: {e}[/red]")
            raise HelpdeskError(f"Connection failed: {e}") from None
        return self._unwrap(response)

    def _unwrap(self, response: httpx.Response) -> Any:
        try:
            body = response.json()
        except ValueError:
            console.print(f"[red]Failed to parse response: {response.text}[/red]")
            raise HelpdeskError(
                f"Invalid JSON response: {response.status_code}"
            ) from None

        if response.is_error or body.get("ok") is False:
            # Validation errors from FastAPI carry "detail" instead of an envelope
            error = body.get("error") or {}
            message = error.get("message") or body.get("detail") or "Unknown error"
            console.print(Panel(f"[red]{message}[/red]", title="API Error"))
            raise HelpdeskError(f"API Error {response.status_code}: {message}")

        return body.get("data", body)
