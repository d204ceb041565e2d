"""Export a graph as dialogue script text.

Usage: ``python tools/export_script.py <graph.json | graph id> [out.yarn]``.
A numeric argument reads the graph from the configured SQLite store and
stores the compiled script back on the graph.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

from dialogue_forge.config import configure_logging
from dialogue_forge.engine.errors import ForgeError
from dialogue_forge.engine.graph import ForgeGraph, graph_from_dict
from dialogue_forge.engine.script import export_graph
from dialogue_forge.engine.storage import SQLiteGraphStore


def load_graph(source: str) -> tuple[ForgeGraph, SQLiteGraphStore | None]:
    if source.isdigit():
        store = SQLiteGraphStore()
        store.migrate()
        return store.get_graph(int(source)), store
    return graph_from_dict(json.loads(Path(source).read_text(encoding="utf-8"))), None


def main() -> None:
    if len(sys.argv) < 2:
        print(__doc__.strip())
        sys.exit(2)
    configure_logging()

    try:
        graph, store = load_graph(sys.argv[1])
    except ForgeError as exc:
        print(f"{exc.code}: {exc.message}")
        sys.exit(1)

    script = export_graph(graph)
    if store is not None:
        store.update_graph(graph.id, compiled_script=script)
        store.close()

    if len(sys.argv) > 2:
        Path(sys.argv[2]).write_text(script, encoding="utf-8")
        print(f"Wrote {sys.argv[2]}")
    else:
        print(script, end="")


if __name__ == "__main__":
    main()
