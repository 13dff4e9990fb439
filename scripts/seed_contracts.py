"""Load a contracts fixture into the lead tables for smoke tests."""

from __future__ import annotations

import argparse
import json
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from sqlalchemy import delete, func
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import ArgumentError
from sqlmodel import Session, SQLModel, select

from crm_contracts.config import Settings
from crm_contracts.core.database import build_engine
from crm_contracts.models.tables import (
    EmployeeRecord,
    LeadStageRecord,
    LegacyLeadRecord,
    NewLeadRecord,
    StageRecord,
)

logger = logging.getLogger("scripts.seed_contracts")

# Fixture key -> table model, in insert order.
FIXTURE_TABLES: dict[str, type[SQLModel]] = {
    "tenants_employee": EmployeeRecord,
    "lead_stages": StageRecord,
    "leads": NewLeadRecord,
    "leads_lead": LegacyLeadRecord,
    "leads_leadstage": LeadStageRecord,
}


def _render_database_url(url: str) -> str:
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<invalid DATABASE_URL>"


def load_fixture(fixture_path: Path) -> dict[str, list[dict[str, Any]]]:
    payload = json.loads(fixture_path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"{fixture_path} must contain a JSON object keyed by table name.")
    unknown = sorted(set(payload) - set(FIXTURE_TABLES))
    if unknown:
        raise ValueError(f"Unknown tables in {fixture_path}: {', '.join(unknown)}")
    return {key: list(payload.get(key) or []) for key in FIXTURE_TABLES}


def build_records(payload: Mapping[str, Sequence[Mapping[str, Any]]]) -> list[SQLModel]:
    """Validate fixture rows into table models (parses ISO date strings)."""
    records: list[SQLModel] = []
    for key, model in FIXTURE_TABLES.items():
        records.extend(model.model_validate(dict(row)) for row in payload.get(key, []))
    return records


def seed(
    database_url: str,
    payload: Mapping[str, Sequence[Mapping[str, Any]]],
    *,
    create_schema: bool = False,
    force: bool = False,
) -> dict[str, int]:
    """Insert fixture rows; returns the number of rows written per table."""
    engine = build_engine(database_url)
    try:
        if create_schema:
            SQLModel.metadata.create_all(engine)
        with Session(engine) as session:
            if force:
                for model in reversed(FIXTURE_TABLES.values()):
                    session.execute(delete(model))
                session.flush()
            else:
                for key, model in FIXTURE_TABLES.items():
                    existing = session.exec(select(func.count()).select_from(model)).one()
                    if existing:
                        raise RuntimeError(
                            f"Table {key} already holds {existing} rows; rerun with --force."
                        )
            session.add_all(build_records(payload))
            session.commit()
    finally:
        engine.dispose()
    return {key: len(payload.get(key, [])) for key in FIXTURE_TABLES}


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed lead, stage-history and lookup rows.")
    parser.add_argument(
        "--fixture",
        type=Path,
        required=True,
        help="Path to a JSON document with one list per table.",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Override DATABASE_URL (falls back to .env).",
    )
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create missing tables before inserting.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Delete existing rows in the seeded tables first.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    database_url = args.database_url or Settings().database_url
    if not database_url:
        logger.error("DATABASE_URL is required to seed contracts.")
        return 1
    logger.info("Using DATABASE_URL=%s", _render_database_url(database_url))
    try:
        payload = load_fixture(args.fixture)
        counts = seed(
            database_url, payload, create_schema=args.create_schema, force=args.force
        )
    except (OSError, ValueError, RuntimeError) as exc:
        logger.error("seed_contracts.failed: %s", exc)
        return 1
    logger.info("seed_contracts.complete", extra={"counts": counts, "fixture": str(args.fixture)})
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    raise SystemExit(main())
