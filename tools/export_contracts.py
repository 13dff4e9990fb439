"""Export the signed-contracts report as JSON or a Markdown table."""

from __future__ import annotations

import argparse
import json
import logging
from collections.abc import Sequence
from pathlib import Path

from crm_contracts.services.contracts.errors import ContractsError
from crm_contracts.services.contracts.filters import DateRange
from crm_contracts.services.contracts.repositories import (
    InMemoryLeadRepository,
    LeadRepository,
    build_lead_repository,
)
from crm_contracts.services.contracts.report import ContractReport, ContractsReportService

logger = logging.getLogger("tools.export_contracts")

MARKDOWN_COLUMNS = (
    ("Lead", "lead_number"),
    ("Name", "name"),
    ("Topic", "topic"),
    ("Stage", "stage_name"),
    ("Signed", "signed_date"),
    ("Employee", "employee_name"),
    ("Source", "kind"),
)


class ExportError(RuntimeError):
    """Raised when the export cannot be produced."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export signed contracts for a date window.")
    parser.add_argument("--query", default="", help="Name, e-mail, phone or lead number.")
    parser.add_argument("--date-from", default=None, help="Inclusive lower bound (YYYY-MM-DD).")
    parser.add_argument("--date-to", default=None, help="Inclusive upper bound (YYYY-MM-DD).")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--fixture", type=Path, default=None, help="Read leads from a JSON fixture.")
    source.add_argument("--database-url", default=None, help="Override DATABASE_URL.")
    parser.add_argument("--format", choices=("json", "markdown"), default="json")
    parser.add_argument("--output", type=Path, default=None, help="Write to a file instead of stdout.")
    return parser.parse_args(argv)


def load_repository(args: argparse.Namespace) -> LeadRepository:
    if args.fixture is not None:
        try:
            payload = json.loads(args.fixture.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ExportError("E_FIXTURE_MISSING", f"Fixture not found: {args.fixture}") from exc
        except json.JSONDecodeError as exc:
            raise ExportError("E_FIXTURE_INVALID", f"Fixture is not valid JSON: {exc}") from exc
        return InMemoryLeadRepository.from_payload(payload)
    return build_lead_repository(args.database_url)


def render_json(report: ContractReport) -> str:
    return json.dumps(report.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"


def _cell(value: object) -> str:
    if value is None:
        return ""
    if hasattr(value, "date") and callable(value.date):
        return value.date().isoformat()
    if hasattr(value, "value"):
        value = value.value
    return str(value).replace("|", "\\|").replace("\n", " ")


def render_markdown(report: ContractReport) -> str:
    window = f"{report.date_from or 'any'} to {report.date_to or 'any'}"
    lines = [
        f"# Signed contracts ({window})",
        "",
        f"{len(report.rows)} rows; {report.excluded_unsigned} without a signed date, "
        f"{report.excluded_by_date} outside the window.",
        "",
        "| " + " | ".join(title for title, _ in MARKDOWN_COLUMNS) + " |",
        "| " + " | ".join("---" for _ in MARKDOWN_COLUMNS) + " |",
    ]
    for row in report.rows:
        cells = [_cell(getattr(row, field)) for _, field in MARKDOWN_COLUMNS]
        lines.append("| " + " | ".join(cells) + " |")
    if report.failed_sources:
        failed = ", ".join(kind.value for kind in report.failed_sources)
        lines.extend(["", f"_Sources unavailable: {failed}_"])
    return "\n".join(lines) + "\n"


def run(args: argparse.Namespace) -> str:
    try:
        date_range = DateRange.parse(args.date_from, args.date_to)
    except ValueError as exc:
        raise ExportError("E_DATE_INVALID", str(exc)) from exc
    service = ContractsReportService(load_repository(args))
    try:
        report = service.search(args.query, date_range)
    except ContractsError as exc:
        raise ExportError(exc.code, str(exc)) from exc
    rendered = render_markdown(report) if args.format == "markdown" else render_json(report)
    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(rendered, encoding="utf-8")
        logger.info(
            "export_contracts.written",
            extra={"path": str(args.output), "rows": len(report.rows), "format": args.format},
        )
    return rendered


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        rendered = run(args)
    except ExportError as exc:
        logger.error("%s: %s", exc.code, exc)
        return 1
    if args.output is None:
        print(rendered, end="")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    raise SystemExit(main())
