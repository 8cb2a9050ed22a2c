"""Campaign snapshots and milestone history.

Campaign = the campaign definition and its latest state (YAML/JSON file)
History = append-only log of check results and guidance (SQLite database)
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any

import aiosqlite
import yaml

from campaign.models import CampaignState, CheckResult, now_iso

from .guidance import GuidanceRecord

logger = logging.getLogger(__name__)


class CampaignLoadError(Exception):
    """Raised when a campaign file cannot be read or parsed."""


# ── Campaign snapshots (YAML / JSON) ────────────────────────────


class CampaignStore:
    """Load a campaign definition and save state snapshots as JSON."""

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> CampaignState:
        if not self._path.exists():
            raise CampaignLoadError(f"Campaign file not found: {self._path}")
        try:
            # YAML is a superset of JSON, so one parser covers both formats.
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise CampaignLoadError(f"Could not parse {self._path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise CampaignLoadError(f"{self._path} does not contain a campaign mapping")

        state = CampaignState.from_dict(raw.get("campaign", raw))
        logger.debug("Loaded campaign %r with %d milestones", state.title, len(state.milestones))
        return state

    def save(self, state: CampaignState, path: str | Path | None = None) -> Path:
        target = Path(path) if path is not None else self._path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(state.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        logger.debug("Saved campaign snapshot to %s", target)
        return target


# ── History Database (SQLite) ───────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS check_results (
    id TEXT PRIMARY KEY,
    day_number INTEGER,
    milestone_id TEXT,
    was_completed INTEGER,
    was_overdue INTEGER,
    should_game_over INTEGER,
    action_type TEXT,         -- "announce" | "gameover" | ""
    message TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS guidance_history (
    id TEXT PRIMARY KEY,
    day_number INTEGER,
    milestone_id TEXT,
    urgency TEXT,             -- "normal" | "urgent" | "critical" | "overdue"
    intensity TEXT,           -- "subtle" | "moderate" | "direct"
    message TEXT,
    fallback INTEGER,
    created_at TEXT
);
"""


class GuidanceHistoryDB:
    """Append-only history of milestone checks and narrative guidance."""

    def __init__(self, db_path: str | Path):
        self._path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def open(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._path))
        await self._db.executescript(_SCHEMA)
        await self._db.commit()
        logger.debug("History DB ready at %s", self._path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()

    async def __aenter__(self) -> GuidanceHistoryDB:
        await self.open()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ── Logging ─────────────────────────────────────────────────

    async def log_check_results(self, day: int, results: list[CheckResult]) -> int:
        rows = [
            (
                str(uuid.uuid4()),
                day,
                r.milestone_id,
                int(r.was_completed),
                int(r.was_overdue),
                int(r.should_game_over),
                r.gm_action.type if r.gm_action else "",
                r.gm_action.message if r.gm_action else "",
                now_iso(),
            )
            for r in results
        ]
        await self._db.executemany(
            "INSERT INTO check_results (id, day_number, milestone_id, was_completed, was_overdue, "
            "should_game_over, action_type, message, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            rows,
        )
        await self._db.commit()
        return len(rows)

    async def log_guidance(self, record: GuidanceRecord) -> str:
        row_id = str(uuid.uuid4())
        await self._db.execute(
            "INSERT INTO guidance_history (id, day_number, milestone_id, urgency, intensity, message, "
            "fallback, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                row_id,
                record.day,
                record.milestone_id,
                record.urgency,
                record.intensity,
                record.message,
                int(record.fallback),
                now_iso(),
            ),
        )
        await self._db.commit()
        return row_id

    # ── Queries ─────────────────────────────────────────────────

    async def get_check_results(self, milestone_id: str = "", limit: int = 50) -> list[dict]:
        query = "SELECT * FROM check_results"
        params: list[Any] = []
        if milestone_id:
            query += " WHERE milestone_id = ?"
            params.append(milestone_id)
        query += " ORDER BY day_number DESC, created_at DESC LIMIT ?"
        params.append(limit)
        cursor = await self._db.execute(query, tuple(params))
        cols = [d[0] for d in cursor.description]
        rows = await cursor.fetchall()
        return [dict(zip(cols, row)) for row in rows]

    async def get_recent_guidance(self, limit: int = 20) -> list[dict]:
        cursor = await self._db.execute(
            "SELECT * FROM guidance_history ORDER BY day_number DESC, created_at DESC LIMIT ?", (limit,)
        )
        cols = [d[0] for d in cursor.description]
        rows = await cursor.fetchall()
        return [dict(zip(cols, row)) for row in rows]

    async def get_last_guidance_day(self) -> int:
        """Latest day with delivered (non-fallback) guidance, 0 if none."""
        cursor = await self._db.execute(
            "SELECT MAX(day_number) FROM guidance_history WHERE fallback = 0"
        )
        row = await cursor.fetchone()
        return int(row[0]) if row and row[0] is not None else 0
