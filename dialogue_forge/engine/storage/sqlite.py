"""SQLite storage for Dialogue Forge graphs."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ...config.toggles import ensure_database_path, get_settings
from ..errors import GraphNotFoundError
from ..graph.codec import graph_from_dict, graph_to_dict
from ..graph.model import ForgeGraph, GraphKind

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"

UPDATABLE_FIELDS = frozenset(
    {"title", "kind", "start_node_id", "nodes", "edges", "end_node_ids", "compiled_script", "project_id"}
)

_SELECT_GRAPH = """
    SELECT id,
           project_id,
           kind,
           title,
           start_node_id,
           flow,
           end_node_ids,
           compiled_script,
           created_at,
           updated_at
    FROM graphs
"""


class SQLiteGraphStore:
    """Thread-safe graph persistence around sqlite3."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        settings = get_settings()
        if db_path is None:
            db_path = settings.db_path_obj
        self.path = ensure_database_path(db_path)
        self.default_project_id = settings.default_project_id
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def connect(self) -> sqlite3.Connection:
        """Return (and lazily initialize) the sqlite3 connection."""
        if self._connection is None:
            self._connection = sqlite3.connect(self.path, check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
        return self._connection

    def migrate(self) -> None:
        """Apply the bundled schema.sql."""
        sql = SCHEMA_PATH.read_text(encoding="utf-8")
        conn = self.connect()
        with self._lock:
            conn.executescript(sql)
            conn.commit()

    def close(self) -> None:
        """Close the connection if open."""
        if self._connection is not None:
            with self._lock:
                self._connection.close()
                self._connection = None

    def list_graphs(self, project_id: Optional[int] = None, kind: Optional[GraphKind] = None) -> list[ForgeGraph]:
        """Graphs of a project ordered by id, optionally filtered by kind."""
        query = _SELECT_GRAPH + " WHERE project_id = ?"
        params: list[Any] = [project_id if project_id is not None else self.default_project_id]
        if kind is not None:
            query += " AND kind = ?"
            params.append(GraphKind(kind).value)
        query += " ORDER BY id"
        conn = self.connect()
        with self._lock:
            rows = conn.execute(query, params).fetchall()
        return [_graph_from_row(row) for row in rows]

    def find_graph(self, graph_id: int) -> Optional[ForgeGraph]:
        conn = self.connect()
        with self._lock:
            row = conn.execute(_SELECT_GRAPH + " WHERE id = ?", (graph_id,)).fetchone()
        if not row:
            return None
        return _graph_from_row(row)

    def get_graph(self, graph_id: int) -> ForgeGraph:
        graph = self.find_graph(graph_id)
        if graph is None:
            raise GraphNotFoundError(graph_id)
        return graph

    async def resolve_graph(self, graph_id: int) -> Optional[ForgeGraph]:
        """Async lookup usable as a composition resolver."""
        return self.find_graph(graph_id)

    def create_graph(self, graph: ForgeGraph, *, project_id: Optional[int] = None) -> ForgeGraph:
        """Insert ``graph`` under a fresh id and return the stored record."""
        if project_id is None:
            project_id = graph.project_id if graph.project_id is not None else self.default_project_id
        now = datetime.now(timezone.utc).isoformat()
        doc = graph_to_dict(graph)
        conn = self.connect()
        with self._lock:
            cursor = conn.execute(
                """
                INSERT INTO graphs
                    (project_id, kind, title, start_node_id, flow, end_node_ids,
                     compiled_script, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    project_id,
                    doc["kind"],
                    doc["title"],
                    doc["startNodeId"],
                    json.dumps(doc["flow"], separators=(",", ":")),
                    json.dumps(doc["endNodeIds"], separators=(",", ":")),
                    doc["compiledYarn"],
                    now,
                    now,
                ),
            )
            conn.commit()
            new_id = cursor.lastrowid
        logger.info("Created graph %s in project %s", new_id, project_id)
        return self.get_graph(new_id)

    def update_graph(self, graph_id: int, **fields: Any) -> ForgeGraph:
        """Replace the given graph fields; unknown field names raise ValueError."""
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update graph fields: {', '.join(sorted(unknown))}")
        current = self.get_graph(graph_id)
        if "kind" in fields:
            fields["kind"] = GraphKind(fields["kind"])
        updated = replace(current, **fields)
        doc = graph_to_dict(updated)
        conn = self.connect()
        with self._lock:
            conn.execute(
                """
                UPDATE graphs
                SET project_id = ?,
                    kind = ?,
                    title = ?,
                    start_node_id = ?,
                    flow = ?,
                    end_node_ids = ?,
                    compiled_script = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    updated.project_id,
                    doc["kind"],
                    doc["title"],
                    doc["startNodeId"],
                    json.dumps(doc["flow"], separators=(",", ":")),
                    json.dumps(doc["endNodeIds"], separators=(",", ":")),
                    doc["compiledYarn"],
                    datetime.now(timezone.utc).isoformat(),
                    graph_id,
                ),
            )
            conn.commit()
        return self.get_graph(graph_id)

    def delete_graph(self, graph_id: int) -> bool:
        """Delete a graph; returns False when nothing was stored under the id."""
        conn = self.connect()
        with self._lock:
            cursor = conn.execute("DELETE FROM graphs WHERE id = ?", (graph_id,))
            conn.commit()
        return cursor.rowcount > 0


def _graph_from_row(row: sqlite3.Row) -> ForgeGraph:
    return graph_from_dict(
        {
            "id": row["id"],
            "project": row["project_id"],
            "kind": row["kind"],
            "title": row["title"],
            "startNodeId": row["start_node_id"],
            "flow": json.loads(row["flow"] or "{}"),
            "endNodeIds": json.loads(row["end_node_ids"] or "[]"),
            "compiledYarn": row["compiled_script"],
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }
    )


__all__ = ["SQLiteGraphStore", "SCHEMA_PATH", "UPDATABLE_FIELDS"]
