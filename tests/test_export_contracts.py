import json
from pathlib import Path

import pytest

from tools import export_contracts
from tools.export_contracts import ExportError

FIXTURE = Path(__file__).parent / "fixtures" / "contracts" / "sample_leads.json"


def test_json_export_to_file(tmp_path):
    output = tmp_path / "out" / "contracts.json"

    exit_code = export_contracts.main(
        [
            "--fixture",
            str(FIXTURE),
            "--date-from",
            "2024-01-01",
            "--date-to",
            "2024-01-31",
            "--output",
            str(output),
        ]
    )

    assert exit_code == 0
    payload = json.loads(output.read_text(encoding="utf-8"))
    assert payload["date_from"] == "2024-01-01"
    assert sorted(row["lead_number"] for row in payload["rows"]) == ["20", "C5", "L7/1", "L7/2"]
    assert payload["excluded_unsigned"] == 1


def test_markdown_export_to_stdout(capsys):
    exit_code = export_contracts.main(["--fixture", str(FIXTURE), "--query", "12", "--format", "markdown"])

    assert exit_code == 0
    rendered = capsys.readouterr().out
    assert rendered.startswith("# Signed contracts (any to any)")
    assert "| Lead | Name | Topic | Stage | Signed | Employee | Source |" in rendered
    assert "| 12/1 | Carmel Dahan | Pension | Success | 2024-02-01 | Dana Levi | legacy |" in rendered


def test_markdown_escapes_pipes():
    assert export_contracts._cell("a|b") == "a\\|b"


def test_missing_fixture_fails(tmp_path):
    args = export_contracts.parse_args(["--fixture", str(tmp_path / "missing.json")])

    with pytest.raises(ExportError) as exc_info:
        export_contracts.run(args)

    assert exc_info.value.code == "E_FIXTURE_MISSING"
    assert export_contracts.main(["--fixture", str(tmp_path / "missing.json")]) == 1


def test_invalid_date_fails():
    args = export_contracts.parse_args(["--fixture", str(FIXTURE), "--date-from", "01/02/2024"])

    with pytest.raises(ExportError) as exc_info:
        export_contracts.run(args)

    assert exc_info.value.code == "E_DATE_INVALID"


def test_fixture_and_database_url_are_exclusive():
    with pytest.raises(SystemExit):
        export_contracts.parse_args(["--fixture", str(FIXTURE), "--database-url", "sqlite://"])
