from __future__ import annotations

import json
from pathlib import Path

import pytest

from scanlog.cli.main import main


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    (tmp_path / "README.md").write_text("test marker", encoding="utf-8")
    monkeypatch.delenv("SCANLOG_DB_PATH", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_import_then_submit_uses_local_db(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    (project / "products.csv").write_text(
        "partNum,partDescription\n12-345,Hex bolt M8\n12-346,\n",
        encoding="utf-8",
    )

    assert main(["import-csv", "products.csv"]) == 0
    stats = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert stats == {"total": 1, "inserted": 1, "updated": 0, "skipped": 0, "partial": False}

    assert main(["submit", "12-345", "--timestamp", "2024-01-01T00:00:00Z"]) == 0
    out = capsys.readouterr().out
    assert "Saved: 12-345 – Hex bolt M8" in out
    record = json.loads(out.strip().splitlines()[-1])
    assert record["description"] == "Hex bolt M8"
    assert (project / "var" / "scanlog" / "scanlog.sqlite3").is_file()


def test_blank_submit_exits_with_usage_code(project: Path) -> None:
    assert main(["submit", "  "]) == 2


def test_missing_csv_is_reported(project: Path) -> None:
    assert main(["import-csv", "nope.csv"]) == 2


def test_history_lists_newest_first(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    main(["submit", "first"])
    main(["submit", "second"])
    capsys.readouterr()

    assert main(["history", "--limit", "5"]) == 0
    codes = [json.loads(line)["code"] for line in capsys.readouterr().out.strip().splitlines()]
    assert codes == ["second", "first"]
