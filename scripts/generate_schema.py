#!/usr/bin/env python3
"""Generate the auth tables' DDL without a database or edge context.

Usage:
    python scripts/generate_schema.py                      # Postgres DDL to stdout
    python scripts/generate_schema.py --out schema.sql
    python scripts/generate_schema.py --dialect sqlite --plural
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path

from edge_auth.auth import schema_auth
from edge_auth.schema import SCHEMA_OPTIONS, render_ddl


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Generate auth schema DDL")
    parser.add_argument("--dialect", default="postgresql", choices=["postgresql", "sqlite"])
    parser.add_argument("--plural", action="store_true", help="Pluralise table names")
    parser.add_argument("--out", type=Path, help="Write to this file instead of stdout")
    args = parser.parse_args(argv)

    options = replace(SCHEMA_OPTIONS, use_plural=True) if args.plural else SCHEMA_OPTIONS
    schema = schema_auth(options)
    ddl = render_ddl(schema.tables, dialect=args.dialect)

    if args.out:
        args.out.write_text(ddl)
        print(f"Wrote {len(list(schema.tables))} tables to {args.out}", file=sys.stderr)
    else:
        sys.stdout.write(ddl)
    return 0


if __name__ == "__main__":
    sys.exit(main())
