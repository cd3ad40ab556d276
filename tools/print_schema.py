from __future__ import annotations

from sqlalchemy import inspect

from shared.db import get_engine

TABLES = ("posts", "users", "audit_log")


def main() -> int:
    inspector = inspect(get_engine())
    existing = set(inspector.get_table_names())
    for table_name in TABLES:
        if table_name not in existing:
            print(f"{table_name} (missing)")
            continue
        for position, column in enumerate(inspector.get_columns(table_name), start=1):
            nullable = "NULL" if column.get("nullable", True) else "NOT NULL"
            print(f"{table_name} {column['name']} {column['type']} {nullable} {position}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
