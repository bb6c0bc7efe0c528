"""
CLI utility helpers: output formatting and session management.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Coroutine
from dataclasses import asdict
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from dvspine.core.errors import DvSpineError
from dvspine.core.logging import configure_logging
from dvspine.core.settings import StoreSettings, get_settings
from dvspine.store.provisioning import ProvisioningLog
from dvspine.store.session import StoreSession

console = Console()
err_console = Console(stderr=True)

T = TypeVar("T")


# ── Session helper ───────────────────────────────────────────────────────


def load_settings(store_url: str | None = None) -> StoreSettings:
    """Settings from the environment, with an optional ``--store-url`` override."""
    settings = get_settings()
    if store_url:
        settings = settings.model_copy(update={"store_url": store_url.rstrip("/")})
    configure_logging(level=settings.log_level)
    return settings


def open_session(settings: StoreSettings) -> StoreSession:
    """Open a ``StoreSession`` for one CLI command."""
    return StoreSession(settings)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_log(log: ProvisioningLog, *, as_json: bool = False, title: str = "") -> None:
    """Render a provisioning log; exit 1 when any step failed."""
    if as_json:
        console.print_json(json.dumps(log.to_list(), default=str))
    elif not len(log):
        console.print("[dim]No steps.[/dim]")
    else:
        table = Table(title=title or None, show_lines=False, pad_edge=False)
        table.add_column("step", overflow="fold")
        table.add_column("ok")
        table.add_column("detail", overflow="fold")
        for step in log:
            mark = "[green]✓[/green]" if step.ok else "[red]✗[/red]"
            table.add_row(step.step, mark, step.detail or "")
        console.print(table)

    if not log.ok:
        err_console.print(f"[bold red]Error[/bold red]: {len(log.failed)} step(s) failed")
        raise typer.Exit(code=1)


def output_data(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a dict (or dataclass) as JSON or key-value pairs."""
    payload = _to_dict(data)
    if as_json:
        console.print_json(json.dumps(payload, default=str))
        return
    _print_dict(payload, title=title)


def output_error(error: Exception) -> None:
    """Print an error and exit 1."""
    code = getattr(getattr(error, "category", None), "value", "ERROR")
    message = getattr(error, "message", str(error))
    err_console.print(f"[bold red]Error[/bold red] ({code}): {message}")
    raise typer.Exit(code=1)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a command coroutine; engine errors become exit code 1."""
    try:
        return asyncio.run(coro)
    except DvSpineError as e:
        output_error(e)
        raise
