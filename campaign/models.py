"""Data models for campaign definitions and milestone evaluation results."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Mapping

PENDING = "pending"
ACTIVE = "active"
COMPLETED = "completed"
FAILED = "failed"
OVERDUE = "overdue"

STATUSES = (PENDING, ACTIVE, COMPLETED, FAILED, OVERDUE)
OPEN_STATUSES = frozenset({PENDING, ACTIVE})


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_bool(value: Any, default: bool = False) -> bool:
    """Exports write booleans as true/false, "true"/"false" or 1/0."""
    if value is None:
        return default
    if isinstance(value, str):
        text = value.strip().lower()
        if text in {"true", "yes", "on", "1"}:
            return True
        if text in {"false", "no", "off", "0", ""}:
            return False
        return default
    if isinstance(value, (bool, int, float)):
        return bool(value)
    return default


def _as_optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key; campaign files mix camelCase and snake_case."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _as_id_list(value: Any) -> tuple[str, ...] | None:
    if not isinstance(value, (list, tuple)):
        return None
    return tuple(_as_text(v) for v in value if v is not None)


def _as_text_list(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(_as_text(v) for v in value if v is not None)


def _as_count_map(value: Any) -> dict[str, int]:
    """Accept either {id: n} or [{itemId/enemyId/id, quantity/count}, ...]."""
    if isinstance(value, Mapping):
        return {_as_text(k): _as_int(v) for k, v in value.items()}
    result: dict[str, int] = {}
    if isinstance(value, (list, tuple)):
        for entry in value:
            if not isinstance(entry, Mapping):
                continue
            key = _as_text(_pick(entry, "itemId", "item_id", "enemyId", "enemy_id", "id", default=""))
            if not key:
                continue
            result[key] = result.get(key, 0) + _as_int(_pick(entry, "quantity", "count", default=0))
    return result


def _as_text_map(value: Any, value_keys: tuple[str, ...]) -> dict[str, str]:
    """Accept either {id: text} or [{id, <value_key>}, ...]."""
    if isinstance(value, Mapping):
        return {_as_text(k): _as_text(v) for k, v in value.items()}
    result: dict[str, str] = {}
    if isinstance(value, (list, tuple)):
        for entry in value:
            if not isinstance(entry, Mapping):
                continue
            key = _as_text(entry.get("id", ""))
            if key:
                result[key] = _as_text(_pick(entry, *value_keys, default=""))
    return result


@dataclass(frozen=True)
class ItemRequirement:
    item_id: str
    quantity: int = 1

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ItemRequirement:
        return cls(
            item_id=_as_text(_pick(data, "itemId", "item_id", default="")),
            quantity=_as_int(_pick(data, "quantity", default=1), default=1),
        )


@dataclass(frozen=True)
class EnemyRequirement:
    enemy_id: str
    count: int = 1

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EnemyRequirement:
        return cls(
            enemy_id=_as_text(_pick(data, "enemyId", "enemy_id", default="")),
            count=_as_int(_pick(data, "count", default=1), default=1),
        )


@dataclass(frozen=True)
class Requirement:
    """One typed completion condition of a milestone.

    Only the id list matching ``type`` is consulted. A missing list is kept
    as ``None`` so the progress calculator can tell "malformed" apart from
    "nothing matched".
    """

    type: str  # "events" | "quests" | "items" | "enemies"
    description: str = ""
    event_ids: tuple[str, ...] | None = None
    quest_ids: tuple[str, ...] | None = None
    item_requirements: tuple[ItemRequirement, ...] | None = None
    enemy_requirements: tuple[EnemyRequirement, ...] | None = None
    required_count: int | None = None  # only read in "partial" mode

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Requirement:
        items = _pick(data, "itemRequirements", "item_requirements")
        enemies = _pick(data, "enemyRequirements", "enemy_requirements")
        return cls(
            type=_as_text(data.get("type", "")),
            description=_as_text(data.get("description", "")),
            event_ids=_as_id_list(_pick(data, "eventIds", "event_ids")),
            quest_ids=_as_id_list(_pick(data, "questIds", "quest_ids")),
            item_requirements=(
                tuple(ItemRequirement.from_dict(i) for i in items if isinstance(i, Mapping))
                if isinstance(items, (list, tuple))
                else None
            ),
            enemy_requirements=(
                tuple(EnemyRequirement.from_dict(e) for e in enemies if isinstance(e, Mapping))
                if isinstance(enemies, (list, tuple))
                else None
            ),
            required_count=_as_optional_int(_pick(data, "requiredCount", "required_count")),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.event_ids is not None:
            data["event_ids"] = list(self.event_ids)
        if self.quest_ids is not None:
            data["quest_ids"] = list(self.quest_ids)
        if self.item_requirements is not None:
            data["item_requirements"] = [
                {"item_id": i.item_id, "quantity": i.quantity} for i in self.item_requirements
            ]
        if self.enemy_requirements is not None:
            data["enemy_requirements"] = [
                {"enemy_id": e.enemy_id, "count": e.count} for e in self.enemy_requirements
            ]
        if self.required_count is not None:
            data["required_count"] = self.required_count
        return data


@dataclass(frozen=True)
class GMGuidance:
    on_time_hints: tuple[str, ...] = ()
    delayed_hints: tuple[str, ...] = ()
    failure_message: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> GMGuidance:
        if not isinstance(data, Mapping):
            return cls()
        return cls(
            on_time_hints=_as_text_list(_pick(data, "onTimeHints", "on_time_hints", default=())),
            delayed_hints=_as_text_list(_pick(data, "delayedHints", "delayed_hints", default=())),
            failure_message=_as_text(_pick(data, "failureMessage", "failure_message", default="")),
        )


@dataclass(frozen=True)
class Milestone:
    id: str
    title: str
    description: str = ""
    status: str = PENDING  # one of STATUSES
    target_day: int = 1
    deadline: bool = False
    completion_mode: str = "all"  # "all" | "partial"
    requirements: tuple[Requirement, ...] = ()
    gm_guidance: GMGuidance = field(default_factory=GMGuidance)
    achieved_day: int | None = None
    priority: str = "important"
    updated_at: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Milestone:
        status = _as_text(data.get("status", PENDING)) or PENDING
        if status not in STATUSES:
            status = PENDING
        mode = _as_text(_pick(data, "completionMode", "completion_mode", default="all"))
        raw_reqs = data.get("requirements", [])
        return cls(
            id=_as_text(data.get("id", "")),
            title=_as_text(data.get("title", "")),
            description=_as_text(data.get("description", "")),
            status=status,
            target_day=_as_int(_pick(data, "targetDay", "target_day", default=1), default=1),
            deadline=_as_bool(data.get("deadline"), default=False),
            completion_mode="partial" if mode == "partial" else "all",
            requirements=tuple(
                Requirement.from_dict(r)
                for r in (raw_reqs if isinstance(raw_reqs, (list, tuple)) else [])
                if isinstance(r, Mapping)
            ),
            gm_guidance=GMGuidance.from_dict(_pick(data, "gmGuidance", "gm_guidance")),
            achieved_day=_as_optional_int(_pick(data, "achievedDay", "achieved_day")),
            priority=_as_text(data.get("priority", "important")) or "important",
            updated_at=_as_text(_pick(data, "updatedAt", "updated_at", default="")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "target_day": self.target_day,
            "deadline": self.deadline,
            "completion_mode": self.completion_mode,
            "requirements": [r.to_dict() for r in self.requirements],
            "gm_guidance": {
                "on_time_hints": list(self.gm_guidance.on_time_hints),
                "delayed_hints": list(self.gm_guidance.delayed_hints),
                "failure_message": self.gm_guidance.failure_message,
            },
            "achieved_day": self.achieved_day,
            "priority": self.priority,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class CampaignState:
    """Snapshot of everything the milestone engine reads.

    Updates go through ``dataclasses.replace``; a state is never mutated.
    """

    title: str = ""
    milestones: tuple[Milestone, ...] = ()
    quest_statuses: Mapping[str, str] = field(default_factory=dict)
    event_outcomes: Mapping[str, str] = field(default_factory=dict)
    party_inventory: Mapping[str, int] = field(default_factory=dict)
    defeated_enemies: Mapping[str, int] = field(default_factory=dict)
    item_names: Mapping[str, str] = field(default_factory=dict)
    enemy_names: Mapping[str, str] = field(default_factory=dict)
    characters: tuple[str, ...] = ()
    location: str = ""
    last_checked_day: int = 0
    updated_at: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CampaignState:
        flags = data.get("campaignFlags", {})
        defeated = _pick(data, "defeatedEnemies", "defeated_enemies")
        if defeated is None and isinstance(flags, Mapping):
            defeated = flags.get("defeatedEnemies")
        characters = data.get("characters", ())
        raw_milestones = data.get("milestones", ())
        return cls(
            title=_as_text(data.get("title", "")),
            milestones=tuple(
                Milestone.from_dict(m)
                for m in (raw_milestones if isinstance(raw_milestones, (list, tuple)) else ())
                if isinstance(m, Mapping)
            ),
            quest_statuses=_as_text_map(
                _pick(data, "questStatuses", "quest_statuses", "quests", default={}), ("status",)
            ),
            event_outcomes=_as_text_map(
                _pick(data, "eventOutcomes", "event_outcomes", "timeline", default={}), ("outcome",)
            ),
            party_inventory=_as_count_map(_pick(data, "partyInventory", "party_inventory", default={})),
            defeated_enemies=_as_count_map(defeated or {}),
            item_names=_as_text_map(_pick(data, "itemNames", "item_names", "items", default={}), ("name",)),
            enemy_names=_as_text_map(
                _pick(data, "enemyNames", "enemy_names", "enemies", default={}), ("name",)
            ),
            characters=tuple(
                _as_text(c.get("name", "")) if isinstance(c, Mapping) else _as_text(c)
                for c in (characters if isinstance(characters, (list, tuple)) else ())
            ),
            location=_as_text(data.get("location", "")),
            last_checked_day=_as_int(_pick(data, "lastCheckedDay", "last_checked_day", default=0)),
            updated_at=_as_text(_pick(data, "updatedAt", "updated_at", default="")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "milestones": [m.to_dict() for m in self.milestones],
            "quest_statuses": dict(self.quest_statuses),
            "event_outcomes": dict(self.event_outcomes),
            "party_inventory": dict(self.party_inventory),
            "defeated_enemies": dict(self.defeated_enemies),
            "item_names": dict(self.item_names),
            "enemy_names": dict(self.enemy_names),
            "characters": list(self.characters),
            "location": self.location,
            "last_checked_day": self.last_checked_day,
            "updated_at": self.updated_at,
        }

    def milestone(self, milestone_id: str) -> Milestone | None:
        for milestone in self.milestones:
            if milestone.id == milestone_id:
                return milestone
        return None

    def with_quest_status(self, quest_id: str, status: str) -> CampaignState:
        return replace(self, quest_statuses={**self.quest_statuses, quest_id: status})

    def with_event_outcome(self, event_id: str, outcome: str) -> CampaignState:
        return replace(self, event_outcomes={**self.event_outcomes, event_id: outcome})

    def with_inventory(self, item_id: str, quantity: int) -> CampaignState:
        return replace(self, party_inventory={**self.party_inventory, item_id: quantity})

    def with_defeats(self, enemy_id: str, count: int) -> CampaignState:
        return replace(self, defeated_enemies={**self.defeated_enemies, enemy_id: count})


# ── Evaluation results ──────────────────────────────────────────


@dataclass(frozen=True)
class RequirementProgress:
    type: str
    completed: bool
    progress: float  # 0..100
    details: str


@dataclass(frozen=True)
class MilestoneProgress:
    milestone_id: str
    requirements: Mapping[int, RequirementProgress]
    overall_progress: float  # 0..100
    estimated_completion_day: int

    @property
    def completed_count(self) -> int:
        return sum(1 for r in self.requirements.values() if r.completed)


@dataclass(frozen=True)
class GMAction:
    type: str  # "announce" | "gameover"
    message: str
    suggested_actions: tuple[str, ...] = ()


@dataclass(frozen=True)
class CheckResult:
    milestone_id: str
    was_completed: bool
    was_overdue: bool
    should_game_over: bool
    gm_action: GMAction | None = None


# ── Narrative requests ──────────────────────────────────────────


@dataclass(frozen=True)
class ConversationTurn:
    role: str  # "user" | "assistant"
    content: str


@dataclass(frozen=True)
class NaturalGuidanceRequest:
    milestone_context: str
    urgency: str
    intensity: str  # "subtle" | "moderate" | "direct"
    conversation_history: tuple[ConversationTurn, ...] = ()
    current_situation: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "milestoneContext": self.milestone_context,
            "urgencyLevel": self.urgency,
            "guidanceIntensity": self.intensity,
            "conversationHistory": [
                {"role": t.role, "content": t.content} for t in self.conversation_history
            ],
            "currentSituation": self.current_situation,
        }


@dataclass(frozen=True)
class WarningRequest:
    milestone: Milestone
    current_day: int
    progress: float
    remaining_requirements: tuple[str, ...] = ()
    campaign_title: str = ""
    location: str = ""
    characters: tuple[str, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return {
            "milestone": {
                "title": self.milestone.title,
                "description": self.milestone.description,
                "targetDay": self.milestone.target_day,
                "deadline": self.milestone.deadline,
            },
            "currentDay": self.current_day,
            "progress": self.progress,
            "remainingRequirements": list(self.remaining_requirements),
            "campaignContext": {
                "title": self.campaign_title,
                "location": self.location,
                "characters": list(self.characters),
            },
        }


@dataclass(frozen=True)
class AchievementRequest:
    milestone: Milestone
    current_day: int
    next_milestone: Milestone | None = None
    campaign_title: str = ""
    characters: tuple[str, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "achievedMilestone": {
                "title": self.milestone.title,
                "description": self.milestone.description,
                "completionDetails": f"Achieved on day {self.current_day}",
            },
            "campaignContext": {
                "title": self.campaign_title,
                "currentDay": self.current_day,
                "characters": list(self.characters),
            },
        }
        if self.next_milestone is not None:
            payload["nextMilestone"] = {
                "title": self.next_milestone.title,
                "description": self.next_milestone.description,
                "targetDay": self.next_milestone.target_day,
            }
        return payload
