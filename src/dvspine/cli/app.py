"""
Root Typer application for the dvspine CLI.

Every command opens one StoreSession, runs one engine entry point and
renders the result. Commands that produce a provisioning log exit 1 when any
step failed.
"""

from __future__ import annotations

import json

import typer

from dvspine import __version__
from dvspine.cli.utils import (
    console,
    load_settings,
    open_session,
    output_data,
    output_log,
    run_async,
)
from dvspine.store.catalog import DEFAULT_CATALOG
from dvspine.store.provisioning import (
    ProvisioningLog,
    provision,
    seed_businesses,
    seed_sample_data,
    who_am_i,
    write_test,
)

app = typer.Typer(
    name="dvspine",
    help="dvspine: schema reconciliation and adaptive writes for Dataverse-style stores.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"dvspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """dvspine CLI: provision, discover and smoke-test the store."""


# ── Commands ─────────────────────────────────────────────────────────────

StoreUrlOption = typer.Option(None, "--store-url", help="Overrides DVSPINE_STORE_URL.")
JsonOption = typer.Option(False, "--json")


@app.command("provision")
def provision_cmd(
    store_url: str | None = StoreUrlOption,
    seed: bool = typer.Option(False, "--seed", help="Insert sample businesses when none exist."),
    json_out: bool = JsonOption,
) -> None:
    """Ensure every entity and attribute of the default catalog exists."""
    settings = load_settings(store_url)

    async def _run() -> ProvisioningLog:
        async with open_session(settings) as session:
            log = await provision(session, DEFAULT_CATALOG)
            if seed and settings.store_url:
                log.extend(await seed_businesses(session))
            return log

    output_log(run_async(_run()), as_json=json_out, title="Provisioning")


@app.command("resolve-sets")
def resolve_sets_cmd(
    store_url: str | None = StoreUrlOption,
    json_out: bool = JsonOption,
) -> None:
    """Show the collection id each role resolves to in this deployment."""
    settings = load_settings(store_url)

    async def _run() -> dict[str, str]:
        async with open_session(settings) as session:
            return await session.entity_sets.resolve_all()

    sets = run_async(_run())
    output_data(sets, as_json=json_out, title="Entity sets")


@app.command("whoami")
def whoami_cmd(
    store_url: str | None = StoreUrlOption,
    json_out: bool = JsonOption,
) -> None:
    """Verify the token and store URL with WhoAmI."""
    settings = load_settings(store_url)

    async def _run() -> dict:
        async with open_session(settings) as session:
            return await who_am_i(session)

    identity = run_async(_run())
    output_data(identity, as_json=json_out, title="WhoAmI")


@app.command("seed")
def seed_cmd(
    store_url: str | None = StoreUrlOption,
    json_out: bool = JsonOption,
) -> None:
    """Write one linked sample record per core collection."""
    settings = load_settings(store_url)

    async def _run() -> ProvisioningLog:
        async with open_session(settings) as session:
            return await seed_sample_data(session)

    output_log(run_async(_run()), as_json=json_out, title="Sample data")


@app.command("write-test")
def write_test_cmd(
    store_url: str | None = StoreUrlOption,
    json_out: bool = JsonOption,
) -> None:
    """Create, fetch and delete a test batch record."""
    settings = load_settings(store_url)

    async def _run() -> ProvisioningLog:
        async with open_session(settings) as session:
            return await write_test(session)

    output_log(run_async(_run()), as_json=json_out, title="Write test")


@app.command("catalog")
def catalog_cmd(json_out: bool = JsonOption) -> None:
    """Print the default entity catalog."""
    rows = [
        {
            "entity": entity.logical_name,
            "attribute": attribute.logical_name,
            "schema_name": attribute.resolved_schema_name(),
            "kind": type(attribute.kind).__name__,
        }
        for entity in DEFAULT_CATALOG
        for attribute in entity.attributes
    ]
    if json_out:
        console.print_json(json.dumps(rows))
        return
    for row in rows:
        console.print(f"  [cyan]{row['entity']}[/cyan].{row['attribute']}  {row['kind']}")
