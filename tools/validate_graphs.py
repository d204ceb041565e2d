"""Validate graph documents and dialogue scripts under assets/graphs."""

from __future__ import annotations

import json
import sys
from pathlib import Path

from dialogue_forge.engine.errors import ForgeError
from dialogue_forge.engine.graph import graph_from_dict, validate_graph
from dialogue_forge.engine.script import import_graph


def validate_file(path: Path) -> list[str]:
    """Return human-readable problems for one .json graph or .yarn script."""
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix == ".json":
            graph = graph_from_dict(json.loads(text))
        else:
            graph = import_graph(text, title=path.stem)
    except (ForgeError, json.JSONDecodeError) as exc:
        return [f"{path.name}: cannot decode ({exc})"]

    result = validate_graph(graph)
    problems = [f"{path.name}: {issue.message}" for issue in result.errors]
    problems.extend(f"{path.name}: warning: {issue.message}" for issue in result.warnings)
    return problems


def main() -> None:
    base = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("assets/graphs")
    if not base.exists():
        print("No graph assets found.")
        sys.exit(0)

    problems: list[str] = []
    paths = sorted([*base.rglob("*.json"), *base.rglob("*.yarn")])
    for path in paths:
        problems.extend(validate_file(path))

    errors = [problem for problem in problems if ": warning: " not in problem]
    for problem in problems:
        print(f" - {problem}")
    if errors:
        print("Graph validation failed.")
        sys.exit(1)

    print(f"All {len(paths)} graph file(s) look consistent.")


if __name__ == "__main__":
    main()
