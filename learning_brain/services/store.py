"""Event store interface and a JSON-file implementation.

The engine only reads attempts, sessions and skills and only appends notes.
Anything that talks to a real backend implements LearningStore.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional, Protocol

from pydantic import BaseModel, ValidationError

from learning_brain.models import Correctness, Note, QuestionAttempt, Session, SkillRecord

log = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Raised when the store cannot be read or written."""


class LearningStore(Protocol):
    def get_skills(self, user_id: str) -> list[SkillRecord]: ...

    def get_skill(self, skill_id: str) -> Optional[SkillRecord]: ...

    def get_attempts(
        self, skill_id: str, limit: int, correctness: Optional[Correctness] = None
    ) -> list[QuestionAttempt]: ...

    def get_sessions(
        self, user_id: str, since_days: int, now: Optional[datetime] = None
    ) -> list[Session]: ...

    def insert_note(self, note: Note) -> bool: ...


class JsonStore:
    """Persists skills, attempts, sessions and notes as JSON files (one per owner)."""

    def __init__(self, data_dir: str | Path = "data"):
        self.data_dir = Path(data_dir)
        for kind in ("skills", "attempts", "sessions", "notes"):
            (self.data_dir / kind).mkdir(parents=True, exist_ok=True)
        self._health_check()

    def _health_check(self):
        """Verify the data directory is writable."""
        try:
            test_file = self.data_dir / ".health_check"
            test_file.write_text("ok")
            test_file.unlink()
        except OSError as e:
            raise StoreError(f"Store directory not writable: {e}") from e
        log.debug(f"Store OK: {self.data_dir}")

    def _path(self, kind: str, owner_id: str) -> Path:
        safe_id = owner_id.replace("/", "_").replace("\\", "_")
        return self.data_dir / kind / f"{safe_id}.json"

    def _load(self, path: Path) -> list[dict[str, Any]]:
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Unreadable store file {path}: {e}") from e
        return data if isinstance(data, list) else []

    def _save(self, path: Path, rows: list[dict[str, Any]]) -> None:
        try:
            path.write_text(json.dumps(rows, indent=2))
        except OSError as e:
            raise StoreError(f"Cannot write store file {path}: {e}") from e

    def _append(self, kind: str, owner_id: str, record: BaseModel) -> None:
        path = self._path(kind, owner_id)
        rows = self._load(path)
        rows.append(record.model_dump(mode="json"))
        self._save(path, rows)

    @staticmethod
    def _parse(model: type[BaseModel], rows: list[dict[str, Any]]) -> list[Any]:
        parsed = []
        for row in rows:
            try:
                parsed.append(model.model_validate(row))
            except ValidationError as e:
                log.warning(f"Skipping malformed {model.__name__} row: {e.error_count()} errors")
        return parsed

    # ========== READS ==========

    def get_skills(self, user_id: str) -> list[SkillRecord]:
        return self._parse(SkillRecord, self._load(self._path("skills", user_id)))

    def get_skill(self, skill_id: str) -> Optional[SkillRecord]:
        for path in sorted((self.data_dir / "skills").glob("*.json")):
            for skill in self._parse(SkillRecord, self._load(path)):
                if skill.id == skill_id:
                    return skill
        return None

    def get_attempts(
        self, skill_id: str, limit: int, correctness: Optional[Correctness] = None
    ) -> list[QuestionAttempt]:
        """Most recent attempts on a skill, newest first."""
        attempts: list[QuestionAttempt] = self._parse(
            QuestionAttempt, self._load(self._path("attempts", skill_id))
        )
        if correctness is not None:
            attempts = [a for a in attempts if a.correctness == correctness]
        attempts.sort(key=lambda a: a.timestamp, reverse=True)
        return attempts[:limit]

    def get_sessions(
        self, user_id: str, since_days: int, now: Optional[datetime] = None
    ) -> list[Session]:
        """Sessions started within the last since_days, newest first."""
        since = (now or datetime.now(timezone.utc)) - timedelta(days=since_days)
        sessions: list[Session] = self._parse(Session, self._load(self._path("sessions", user_id)))
        recent = [s for s in sessions if s.timestamp >= since]
        recent.sort(key=lambda s: s.timestamp, reverse=True)
        return recent

    def list_notes(self, user_id: str) -> list[Note]:
        return self._parse(Note, self._load(self._path("notes", user_id)))

    # ========== WRITES ==========

    def insert_note(self, note: Note) -> bool:
        """Append a note unless one with the same idempotency key exists."""
        path = self._path("notes", note.user_id)
        rows = self._load(path)
        if note.idempotency_key and any(
            row.get("idempotency_key") == note.idempotency_key for row in rows
        ):
            return False
        rows.append(note.model_dump(mode="json"))
        self._save(path, rows)
        return True

    def save_skill(self, skill: SkillRecord) -> None:
        """Insert or replace a skill for its user."""
        path = self._path("skills", skill.user_id)
        rows = [row for row in self._load(path) if row.get("id") != skill.id]
        rows.append(skill.model_dump(mode="json"))
        self._save(path, rows)

    def record_attempt(self, attempt: QuestionAttempt) -> None:
        self._append("attempts", attempt.skill_id, attempt)

    def record_session(self, user_id: str, session: Session) -> None:
        self._append("sessions", user_id, session)
