from __future__ import annotations

from pathlib import Path

import pytest

from tools.validate_graphs import main, validate_file

ASSETS = Path(__file__).resolve().parents[2] / "assets" / "graphs"


def test_sample_graph_has_no_errors() -> None:
    problems = validate_file(ASSETS / "merchant.json")
    assert [problem for problem in problems if ": warning: " not in problem] == []


def test_broken_files_are_reported(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    assert validate_file(broken)[0].startswith("broken.json: cannot decode")

    dangling = tmp_path / "dangling.yarn"
    dangling.write_text("title: A\n---\nHi\n<<jump A>>\n===\n", encoding="utf-8")
    assert all("cannot decode" not in problem for problem in validate_file(dangling))


def test_main_exits_on_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "broken.json").write_text("[]", encoding="utf-8")
    monkeypatch.setattr("sys.argv", ["validate_graphs.py", str(tmp_path)])
    with pytest.raises(SystemExit) as exc:
        main()
    assert exc.value.code == 1
