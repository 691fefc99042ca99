# scripts/verify_schema.py
from __future__ import annotations

import sys

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings

REQUIRED_TABLES = {
    "projects",
    "profiles",
    "elements",
    "element_events",
    "production_batches",
    "deliveries",
    "delivery_items",
    "notifications",
}

# constraints the lifecycle services rely on
REQUIRED_UNIQUE = {
    ("delivery_items", "uq_delivery_items_delivery_element"),
    ("production_batches", "uq_production_batches_batch_number"),
}


def die(msg: str) -> None:
    print(f"[verify-schema] ERROR: {msg}", file=sys.stderr)
    sys.exit(1)


def main() -> None:
    engine = create_engine(settings.database_url, future=True)

    with engine.connect() as conn:
        # 1) alembic version must exist
        try:
            version = conn.execute(text("select version_num from alembic_version")).scalar_one()
        except SQLAlchemyError as e:
            die(f"alembic_version table missing: {e}")

        print(f"[ok] alembic_version = {version}")

        insp = inspect(conn)

        # 2) required tables
        missing = REQUIRED_TABLES - set(insp.get_table_names())
        if missing:
            die(f"missing tables: {sorted(missing)}")

        print("[ok] required tables present")

        # 3) unique constraints
        for table, name in sorted(REQUIRED_UNIQUE):
            names = {uc["name"] for uc in insp.get_unique_constraints(table)}
            if name not in names:
                die(f"missing unique constraint {name} on {table}")
            print(f"[ok] {name} present")

        # 4) milestone columns on elements
        cols = {c["name"] for c in insp.get_columns("elements")}
        expected_cols = {"rebar_at", "cast_at", "curing_at", "ready_at", "loaded_at", "delivered_at", "row_version"}
        missing_cols = expected_cols - cols
        if missing_cols:
            die(f"elements missing columns: {sorted(missing_cols)}")

        print("[ok] elements columns sane")

    engine.dispose()
    print("[verify-schema] ALL CHECKS PASSED")


if __name__ == "__main__":
    main()
