from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, NoReturn

import httpx
import typer

from cli.config import CLIConfig

_API_PREFIX = "/api/v1"


class ApiClient:
    """Minimal HTTP client for the telemetry service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        headers = {"Authorization": f"Bearer {config.token}"} if config.token else {}
        self._client = httpx.Client(
            base_url=config.base_url, timeout=config.timeout, headers=headers
        )

    def close(self) -> None:
        self._client.close()

    def ingest_file(self, path: Path) -> Dict[str, Any]:
        if not path.is_file():
            raise typer.BadParameter(f"Path {path} is not a file.")
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"File {path} is not valid JSON: {exc}") from exc
        return self._request("POST", f"{_API_PREFIX}/telemetry", json=payload)

    def get_latest(self, device_id: str) -> Dict[str, Any]:
        return self._request("GET", f"{_API_PREFIX}/devices/{device_id}/latest")

    def get_summary(self, site_id: str, start: str, end: str) -> Dict[str, Any]:
        return self._request(
            "GET",
            f"{_API_PREFIX}/sites/{site_id}/summary",
            params={"from": start, "to": end},
        )

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.RequestError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> NoReturn:
        detail: Any = None
        try:
            detail = exc.response.json().get("detail")
        except ValueError:
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
