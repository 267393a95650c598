"""Declarative auth schema.

Schema-affecting options live in one plain value, ``SCHEMA_OPTIONS``. The
live database connector and the offline schema generator both derive their
tables from it, so the two can never disagree about columns.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    MetaData,
    String,
    Table,
    Text,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.schema import CreateIndex, CreateTable

# Session columns added when geolocation tracking is part of the schema
GEO_COLUMNS = (
    "timezone",
    "city",
    "country",
    "region",
    "region_code",
    "colo",
    "latitude",
    "longitude",
)


@dataclass(frozen=True)
class SchemaOptions:
    geolocation_tracking: bool = True
    use_plural: bool = False


SCHEMA_OPTIONS = SchemaOptions(geolocation_tracking=True, use_plural=False)


@dataclass(frozen=True)
class AuthTables:
    metadata: MetaData
    user: Table
    session: Table
    verification: Table

    def __iter__(self):
        return iter((self.user, self.session, self.verification))


def _name(base: str, options: SchemaOptions) -> str:
    return f"{base}s" if options.use_plural else base


def _timestamps() -> list[Column]:
    return [
        Column("created_at", DateTime(timezone=True), nullable=False),
        Column("updated_at", DateTime(timezone=True), nullable=False),
    ]


def build_tables(options: SchemaOptions = SCHEMA_OPTIONS) -> AuthTables:
    """Derive the auth tables for the given schema options."""
    metadata = MetaData()
    user_name = _name("user", options)

    user = Table(
        user_name,
        metadata,
        Column("id", String(64), primary_key=True),
        Column("name", Text, nullable=False, default=""),
        Column("email", String(320), nullable=False, unique=True),
        Column("email_verified", Boolean, nullable=False, default=False),
        Column("image", Text),
        *_timestamps(),
    )

    geo = [Column(name, Text) for name in GEO_COLUMNS] if options.geolocation_tracking else []
    session = Table(
        _name("session", options),
        metadata,
        Column("id", String(64), primary_key=True),
        Column("token", String(128), nullable=False, unique=True),
        Column(
            "user_id",
            String(64),
            ForeignKey(f"{user_name}.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        Column("expires_at", DateTime(timezone=True), nullable=False),
        Column("ip_address", Text),
        Column("user_agent", Text),
        *geo,
        *_timestamps(),
    )

    verification = Table(
        _name("verification", options),
        metadata,
        Column("id", String(64), primary_key=True),
        Column("identifier", Text, nullable=False, index=True),
        Column("value", Text, nullable=False),
        Column("expires_at", DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )

    return AuthTables(metadata=metadata, user=user, session=session, verification=verification)


_DIALECTS = {
    "postgresql": postgresql.dialect,
    "sqlite": sqlite.dialect,
}


def render_ddl(tables: AuthTables, dialect: str = "postgresql") -> str:
    """Render CREATE TABLE / CREATE INDEX statements for the given tables."""
    try:
        d = _DIALECTS[dialect]()
    except KeyError:
        raise ValueError(f"Unsupported dialect: {dialect}") from None

    statements = []
    for table in tables.metadata.sorted_tables:
        statements.append(str(CreateTable(table).compile(dialect=d)).strip() + ";")
        for index in sorted(table.indexes, key=lambda i: i.name or ""):
            statements.append(str(CreateIndex(index).compile(dialect=d)).strip() + ";")
    return "\n\n".join(statements) + "\n"
