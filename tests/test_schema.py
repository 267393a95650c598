"""Tests for the declarative schema and offline DDL rendering."""

import re
import runpy
from pathlib import Path
from unittest.mock import patch

import pytest

from edge_auth.auth import schema_auth
from edge_auth.db import get_db
from edge_auth.schema import GEO_COLUMNS, SCHEMA_OPTIONS, SchemaOptions, build_tables, render_ddl


def test_schema_auth_needs_no_database():
    with patch("edge_auth.db.create_async_engine", side_effect=AssertionError("no engine")):
        result = schema_auth()
    assert result.options == SCHEMA_OPTIONS
    assert {t.name for t in result.tables} == {"user", "session", "verification"}


def test_schema_auth_ignores_missing_bindings(monkeypatch):
    monkeypatch.delenv("HYPERDRIVE", raising=False)
    assert schema_auth().tables.session is not None


def test_session_table_has_geo_columns_when_tracking():
    tables = build_tables(SchemaOptions(geolocation_tracking=True))
    for name in GEO_COLUMNS:
        assert name in tables.session.c
        assert tables.session.c[name].nullable


def test_session_table_without_geo_tracking():
    tables = build_tables(SchemaOptions(geolocation_tracking=False))
    assert not any(name in tables.session.c for name in GEO_COLUMNS)


def test_plural_table_names():
    tables = build_tables(SchemaOptions(use_plural=True))
    assert [t.name for t in tables] == ["users", "sessions", "verifications"]
    fk = next(iter(tables.session.c.user_id.foreign_keys))
    assert fk.column.table is tables.user


def test_live_and_offline_schemas_agree(tmp_path):
    live = get_db({"HYPERDRIVE": f"sqlite+aiosqlite:///{tmp_path / 'a.db'}"}).tables
    offline = schema_auth().tables
    for live_table, offline_table in zip(live, offline):
        assert live_table.name == offline_table.name
        assert list(live_table.c.keys()) == list(offline_table.c.keys())


def test_render_postgres_ddl():
    ddl = render_ddl(build_tables(SCHEMA_OPTIONS), "postgresql")
    assert 'CREATE TABLE "user"' in ddl
    assert re.search(r"CREATE TABLE \"?session\"? ", ddl)
    assert "CREATE TABLE verification" in ddl
    assert "ON DELETE CASCADE" in ddl
    assert "region_code TEXT" in ddl
    assert "CREATE INDEX" in ddl


def test_render_sqlite_ddl():
    ddl = render_ddl(build_tables(SCHEMA_OPTIONS), "sqlite")
    assert "CREATE TABLE" in ddl


def test_render_rejects_unknown_dialect():
    with pytest.raises(ValueError, match="Unsupported dialect"):
        render_ddl(build_tables(), "oracle")


# ── scripts/generate_schema.py ────────────────────────────────────────────


def _generate_schema_main():
    path = Path(__file__).parent.parent / "scripts" / "generate_schema.py"
    return runpy.run_path(str(path))["main"]


def test_generate_schema_script_writes_file(tmp_path, monkeypatch):
    monkeypatch.delenv("HYPERDRIVE", raising=False)
    out = tmp_path / "schema.sql"
    assert _generate_schema_main()(["--out", str(out)]) == 0
    assert 'CREATE TABLE "user"' in out.read_text()


def test_generate_schema_script_plural_sqlite(capsys):
    assert _generate_schema_main()(["--dialect", "sqlite", "--plural"]) == 0
    assert "CREATE TABLE users" in capsys.readouterr().out
