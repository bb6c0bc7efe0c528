"""Tests for the dvspine CLI — commands wired to a fake store via CliRunner."""

from __future__ import annotations

import json
from contextlib import contextmanager
from unittest.mock import patch

import httpx
from typer.testing import CliRunner

from dvspine import __version__
from dvspine.cli.app import app
from dvspine.store.catalog import DEFAULT_CATALOG

runner = CliRunner()


# ── Helpers ──────────────────────────────────────────────────────────────


@contextmanager
def _wired(fake_store, settings):
    """Point the CLI at ``fake_store`` with ``settings``."""
    with (
        patch("dvspine.cli.app.load_settings", return_value=settings),
        patch("dvspine.cli.app.open_session", side_effect=lambda s: fake_store.session(s)),
    ):
        yield


# ── Tests ────────────────────────────────────────────────────────────────


class TestVersion:
    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"dvspine {__version__}" in result.stdout

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "provision" in result.output


class TestCatalogCommand:
    def test_json(self):
        result = runner.invoke(app, ["catalog", "--json"])
        assert result.exit_code == 0
        rows = json.loads(result.stdout)
        assert len(rows) == sum(len(e.attributes) for e in DEFAULT_CATALOG)
        assert rows[0] == {
            "entity": "toba_batch",
            "attribute": "toba_description",
            "schema_name": "toba_Description",
            "kind": "String",
        }

    def test_plain(self):
        result = runner.invoke(app, ["catalog"])
        assert result.exit_code == 0
        assert "toba_batchrecipient" in result.stdout


class TestProvisionCommand:
    def test_json_log(self, fake_store, settings):
        with _wired(fake_store, settings):
            result = runner.invoke(app, ["provision", "--json"])
        assert result.exit_code == 0, result.output
        log = json.loads(result.stdout)
        assert log[0] == {"step": "Entity toba_batch", "ok": True, "detail": "toba_batchs"}
        assert all(entry["ok"] for entry in log)

    def test_seed_flag_appends_business_step(self, fake_store, settings):
        with _wired(fake_store, settings):
            result = runner.invoke(app, ["provision", "--seed", "--json"])
        assert result.exit_code == 0, result.output
        log = json.loads(result.stdout)
        assert log[-1] == {"step": "Seed businesses", "ok": True, "detail": "Inserted 3 sample rows"}

    def test_failed_step_exits_1(self, fake_store, settings):
        fake_store.script("POST", "CreateEntity", httpx.Response(403, text="denied"))
        with _wired(fake_store, settings):
            result = runner.invoke(app, ["provision"])
        assert result.exit_code == 1
        assert "failed" in result.output

    def test_missing_store_url(self, fake_store, settings):
        with _wired(fake_store, settings.model_copy(update={"store_url": ""})):
            result = runner.invoke(app, ["provision", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.stdout) == [
            {"step": "Store URL", "ok": False, "detail": "DVSPINE_STORE_URL not set"}
        ]


class TestOtherCommands:
    def test_resolve_sets(self, fake_store, settings):
        fake_store.add_entity("cr9_batch", entity_set="cr9_batches")
        with _wired(fake_store, settings):
            result = runner.invoke(app, ["resolve-sets", "--json"])
        assert result.exit_code == 0, result.output
        sets = json.loads(result.stdout)
        assert sets["batches"] == "cr9_batches"
        assert sets["documents"] == "toba_documents"

    def test_whoami(self, fake_store, settings):
        with _wired(fake_store, settings):
            result = runner.invoke(app, ["whoami", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["UserId"] == "u-1"

    def test_whoami_error_exits_1(self, fake_store, settings):
        fake_store.script("GET", "/WhoAmI", httpx.Response(403, text="forbidden"))
        with _wired(fake_store, settings):
            result = runner.invoke(app, ["whoami"])
        assert result.exit_code == 1
        assert "AUTH" in result.output

    def test_write_test(self, fake_store, settings):
        fake_store.add_entity("toba_batch", entity_set="toba_batches")
        with _wired(fake_store, settings):
            result = runner.invoke(app, ["write-test", "--json"])
        assert result.exit_code == 0, result.output
        steps = [entry["step"] for entry in json.loads(result.stdout)]
        assert steps == ["Detect entity sets", "Create test batch", "Fetch test batch", "Delete test batch"]

    def test_seed_without_schema_exits_1(self, fake_store, settings):
        with _wired(fake_store, settings):
            result = runner.invoke(app, ["seed"])
        assert result.exit_code == 1
