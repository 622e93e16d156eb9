from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_ingest(payload: Dict[str, Any]) -> None:
    typer.secho(payload.get("message", "Telemetry accepted."), fg=typer.colors.GREEN)
    echo_key_values([("count", payload.get("count"))])


def render_latest(payload: Dict[str, Any]) -> None:
    echo_heading("Latest Reading")
    echo_key_values(
        [
            ("deviceId", payload.get("deviceId")),
            ("siteId", payload.get("siteId")),
            ("ts", payload.get("ts")),
        ]
    )
    metrics = payload.get("metrics") or {}
    typer.echo()
    echo_heading("Metrics")
    echo_key_values(
        [
            ("temperature", metrics.get("temperature")),
            ("humidity", metrics.get("humidity")),
        ]
    )


def render_summary(site_id: str, payload: Dict[str, Any]) -> None:
    echo_heading(f"Site Summary: {site_id}")
    if not payload.get("count"):
        typer.echo("No readings in range.")
        return
    echo_key_values(
        (key, payload.get(key))
        for key in (
            "count",
            "avgTemperature",
            "maxTemperature",
            "avgHumidity",
            "maxHumidity",
            "uniqueDevices",
        )
    )
