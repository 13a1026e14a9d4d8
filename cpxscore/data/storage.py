"""SQLite storage for checklists, scenario snapshots, sessions, and artifacts."""

from __future__ import annotations

import json
import sqlite3
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .models import ArtifactRegistration, EvidenceChecklist, StoredArtifact


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class SessionStore:
    """Persistent storage built on SQLite."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.path)

    def initialize(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS checklists (
                    id TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    case_name TEXT,
                    checklist_json TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    PRIMARY KEY (id, version)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS scenarios (
                    id TEXT PRIMARY KEY,
                    case_name TEXT,
                    snapshot_json TEXT NOT NULL,
                    included_map TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    origin TEXT NOT NULL,
                    case_name TEXT,
                    created_at REAL NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS artifacts (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    key TEXT NOT NULL,
                    source TEXT,
                    size_bytes INTEGER,
                    text_excerpt TEXT,
                    text_length INTEGER,
                    total INTEGER,
                    created_at REAL NOT NULL,
                    UNIQUE (type, key),
                    FOREIGN KEY(session_id) REFERENCES sessions(id)
                )
                """
            )
            conn.commit()

    # Checklists -----------------------------------------------------------

    def save_checklist(
        self,
        checklist_id: str,
        checklist: EvidenceChecklist,
        case_name: Optional[str] = None,
    ) -> int:
        """Store a new version of a checklist and return its version number."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT MAX(version) FROM checklists WHERE id = ?",
                (checklist_id,),
            ).fetchone()
            version = (row[0] or 0) + 1
            conn.execute(
                """
                INSERT INTO checklists (id, version, case_name, checklist_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    checklist_id,
                    version,
                    case_name,
                    checklist.model_dump_json(),
                    time.time(),
                ),
            )
            conn.commit()
        return version

    def fetch_checklist(self, checklist_id: str) -> Optional[EvidenceChecklist]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT checklist_json FROM checklists WHERE id = ? ORDER BY version DESC LIMIT 1",
                (checklist_id,),
            ).fetchone()
        if not row:
            return None
        return EvidenceChecklist.from_payload(json.loads(row[0]))

    # Scenarios ------------------------------------------------------------

    def save_scenario(
        self,
        scenario_id: str,
        snapshot: Mapping[str, Any],
        included_map: Optional[Mapping[str, bool]] = None,
        case_name: Optional[str] = None,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO scenarios (id, case_name, snapshot_json, included_map)
                VALUES (?, ?, ?, ?)
                """,
                (
                    scenario_id,
                    case_name,
                    json.dumps(dict(snapshot), ensure_ascii=False),
                    json.dumps(dict(included_map)) if included_map else None,
                ),
            )
            conn.commit()

    def fetch_scenario_snapshot(self, scenario_id: str) -> Optional[EvidenceChecklist]:
        """Return the scenario's checklist with excluded items already removed."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT snapshot_json, included_map FROM scenarios WHERE id = ?",
                (scenario_id,),
            ).fetchone()
        if not row:
            return None
        snapshot = EvidenceChecklist.from_payload(json.loads(row[0]))
        included: Dict[str, bool] = json.loads(row[1]) if row[1] else {}
        if not included:
            return snapshot
        return EvidenceChecklist(
            sections={
                section: [item for item in items if included.get(item.id) is not False]
                for section, items in snapshot.sections.items()
            }
        )

    # Sessions and artifacts ----------------------------------------------

    def create_session(self, origin: str, case_name: Optional[str] = None) -> str:
        session_id = _new_id("session")
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO sessions (id, origin, case_name, created_at) VALUES (?, ?, ?, ?)",
                (session_id, origin, case_name, time.time()),
            )
            conn.commit()
        return session_id

    def session_exists(self, session_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM sessions WHERE id = ?", (session_id,)).fetchone()
        return row is not None

    def register_artifact(
        self,
        session_id: Optional[str],
        artifact_type: str,
        key: str,
        *,
        origin: str = "SP",
        source: Optional[str] = None,
        size_bytes: Optional[int] = None,
        text_excerpt: Optional[str] = None,
        text_length: Optional[int] = None,
        total: Optional[int] = None,
    ) -> ArtifactRegistration:
        """Upsert an artifact record keyed by ``(type, key)``.

        A session is minted when ``session_id`` is missing or unknown, and the
        returned registration carries the id that callers should adopt.
        """

        if not session_id or not self.session_exists(session_id):
            session_id = self.create_session(origin)

        with self._connect() as conn:
            row = conn.execute(
                "SELECT id FROM artifacts WHERE type = ? AND key = ?",
                (artifact_type, key),
            ).fetchone()
            record_id = row[0] if row else _new_id(artifact_type)
            conn.execute(
                """
                INSERT OR REPLACE INTO artifacts (
                    id, session_id, type, key, source, size_bytes, text_excerpt,
                    text_length, total, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record_id,
                    session_id,
                    artifact_type,
                    key,
                    source,
                    size_bytes,
                    text_excerpt,
                    text_length,
                    total,
                    time.time(),
                ),
            )
            conn.commit()
        return ArtifactRegistration(session_id=session_id, record_id=record_id)

    def fetch_artifacts(self, session_id: str) -> List[StoredArtifact]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, session_id, type, key, source, size_bytes, text_excerpt, text_length, total
                FROM artifacts WHERE session_id = ? ORDER BY created_at
                """,
                (session_id,),
            ).fetchall()
        return [StoredArtifact(*row) for row in rows]


__all__ = ["SessionStore"]
