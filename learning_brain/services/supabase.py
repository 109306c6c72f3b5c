"""Supabase (PostgREST) store client."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from learning_brain.config import settings
from learning_brain.models import Correctness, Note, QuestionAttempt, Session, SkillRecord
from learning_brain.services.store import StoreError

log = logging.getLogger(__name__)


def skill_from_row(row: dict[str, Any]) -> SkillRecord:
    return SkillRecord(
        id=row["id"],
        user_id=row.get("user_id") or "",
        domain=row.get("domain") or "",
        category=row.get("category") or "",
        display_name=row.get("display_name") or "",
        mastery=row.get("mastery") or 0,
        total_attempts=row.get("total_attempts") or 0,
        last_seen=row.get("last_seen"),
    )


def attempt_from_row(row: dict[str, Any]) -> QuestionAttempt:
    return QuestionAttempt(
        id=row.get("id"),
        session_id=row.get("session_id"),
        skill_id=row["skill_id"],
        correctness=row["correctness"],
        confidence_level=row.get("confidence_level"),
        reasoning_quality=row.get("reasoning_quality"),
        time_to_answer_seconds=row.get("time_to_answer_seconds"),
        answer_style=row.get("answer_style") or "normal",
        misunderstanding_label=row.get("misunderstanding_label"),
        timestamp=row["created_at"],
    )


def session_from_row(row: dict[str, Any]) -> Session:
    return Session(
        id=row["id"],
        skill_id=row.get("target_skill_id"),
        mastery_delta=row.get("mastery_delta") or 0,
        questions_attempted=row.get("questions_attempted") or 0,
        questions_correct=row.get("questions_correct") or 0,
        average_reasoning_quality=row.get("reasoning_quality_avg"),
        attention_quality=row.get("attention_quality") or "unknown",
        timestamp=row["started_at"],
    )


def map_rows(mapper, rows: list[dict[str, Any]]) -> list:
    """Map rows to models, skipping rows that are missing required columns."""
    mapped = []
    for row in rows:
        try:
            mapped.append(mapper(row))
        except (KeyError, ValidationError) as e:
            log.warning(f"Skipping malformed row {row.get('id')}: {e}")
    return mapped


def note_to_row(note: Note) -> dict[str, Any]:
    return {
        "user_id": note.user_id,
        "sunny_comment": note.text,
        "related_skill_id": note.related_skill_id or None,
        "related_session_id": note.related_session_id or None,
        "note_type": note.note_type,
        "priority": note.priority,
        "actionable": note.actionable,
        "idempotency_key": note.idempotency_key,
    }


class SupabaseStore:
    def __init__(
        self,
        url: Optional[str] = None,
        service_key: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        url = url or settings.SUPABASE_URL
        key = service_key or settings.SUPABASE_SERVICE_KEY
        if not url or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
        self.base = f"{url.rstrip('/')}/rest/v1"
        self.headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "content-type": "application/json",
        }
        self.client = client or httpx.Client(timeout=15.0)

    def _get(self, table: str, params: dict[str, Any]) -> list[dict]:
        try:
            r = self.client.get(f"{self.base}/{table}", headers=self.headers, params=params)
            r.raise_for_status()
            return r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise StoreError(f"Reading {table} failed: {e}") from e

    def get_skills(self, user_id: str) -> list[SkillRecord]:
        rows = self._get("skills", {"select": "*", "user_id": f"eq.{user_id}"})
        return map_rows(skill_from_row, rows)

    def get_skill(self, skill_id: str) -> Optional[SkillRecord]:
        rows = self._get("skills", {"select": "*", "id": f"eq.{skill_id}", "limit": 1})
        skills = map_rows(skill_from_row, rows)
        return skills[0] if skills else None

    def get_attempts(
        self, skill_id: str, limit: int, correctness: Optional[Correctness] = None
    ) -> list[QuestionAttempt]:
        """Most recent attempts on a skill, newest first."""
        params = {
            "select": "*",
            "skill_id": f"eq.{skill_id}",
            "order": "created_at.desc",
            "limit": limit,
        }
        if correctness:
            params["correctness"] = f"eq.{correctness}"
        return map_rows(attempt_from_row, self._get("question_attempts", params))

    def get_sessions(
        self, user_id: str, since_days: int, now: Optional[datetime] = None
    ) -> list[Session]:
        """Sessions started within the last since_days, newest first."""
        since = (now or datetime.now(timezone.utc)) - timedelta(days=since_days)
        params = {
            "select": "*",
            "user_id": f"eq.{user_id}",
            "started_at": f"gte.{since.isoformat()}",
            "order": "started_at.desc",
        }
        return map_rows(session_from_row, self._get("sessions", params))

    def insert_note(self, note: Note) -> bool:
        """Insert a note; duplicates on idempotency_key are ignored by the server."""
        headers = {
            **self.headers,
            "Prefer": "resolution=ignore-duplicates,return=representation",
        }
        params = {"on_conflict": "idempotency_key"} if note.idempotency_key else None
        try:
            r = self.client.post(
                f"{self.base}/notes", headers=headers, params=params, json=note_to_row(note)
            )
            r.raise_for_status()
            inserted = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise StoreError(f"Inserting note failed: {e}") from e
        return bool(inserted)
