"""Per-stage processing status for cards."""

import time
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Optional

from cardpipe.models.card_type import CardType


class StageKey(str, Enum):
    """A phase of card enrichment."""

    CLASSIFY = "classify"
    CATEGORIZE = "categorize"
    METADATA = "metadata"
    RENDERABLES = "renderables"


class StageState(str, Enum):
    """Status of a single stage."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


RENDERABLE_TYPES = frozenset({CardType.IMAGE, CardType.VIDEO, CardType.DOCUMENT})


def now_millis() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def clamp_confidence(value: float) -> float:
    """Clamp a confidence score into [0, 1]."""
    return max(0.0, min(float(value), 1.0))


@dataclass
class StageStatus:
    """Status entry for one stage."""

    status: StageState
    updated_at: Optional[int] = None  # epoch ms
    confidence: Optional[float] = None
    error: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate and convert fields after initialization."""
        if isinstance(self.status, str):
            self.status = StageState(self.status)
        if self.confidence is not None:
            self.confidence = clamp_confidence(self.confidence)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status.value}
        if self.updated_at is not None:
            data["updated_at"] = self.updated_at
        if self.confidence is not None:
            data["confidence"] = self.confidence
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StageStatus":
        return cls(
            status=data.get("status", StageState.PENDING),
            updated_at=data.get("updated_at"),
            confidence=data.get("confidence"),
            error=data.get("error"),
        )


@dataclass
class ProcessingStatus:
    """Stage statuses for a card, one field per known stage.

    Unknown stage entries found in storage are kept in ``extra`` and written
    back untouched.
    """

    classify: Optional[StageStatus] = None
    categorize: Optional[StageStatus] = None
    metadata: Optional[StageStatus] = None
    renderables: Optional[StageStatus] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def get(self, stage: StageKey) -> Optional[StageStatus]:
        """Get the status entry for a stage."""
        return getattr(self, StageKey(stage).value)

    def with_stages(self, updates: dict[StageKey, StageStatus]) -> "ProcessingStatus":
        """Return a copy with the given stages replaced and all others kept."""
        changes = {StageKey(stage).value: status for stage, status in updates.items()}
        return replace(self, extra=dict(self.extra), **changes)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        for stage in StageKey:
            status = self.get(stage)
            if status is not None:
                data[stage.value] = status.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "ProcessingStatus":
        if not data:
            return cls()
        known = {f.name for f in fields(cls)} - {"extra"}
        stages = {
            key: StageStatus.from_dict(value)
            for key, value in data.items()
            if key in known and isinstance(value, dict)
        }
        extra = {key: value for key, value in data.items() if key not in known}
        return cls(extra=extra, **stages)


def stage_pending(now: Optional[int] = None) -> StageStatus:
    return StageStatus(status=StageState.PENDING, updated_at=now if now is not None else now_millis())


def stage_in_progress(now: int, previous: Optional[StageStatus] = None) -> StageStatus:
    return StageStatus(
        status=StageState.IN_PROGRESS,
        updated_at=now,
        confidence=previous.confidence if previous else None,
    )


def stage_completed(now: int, confidence: Optional[float] = None) -> StageStatus:
    return StageStatus(status=StageState.COMPLETED, updated_at=now, confidence=confidence)


def stage_failed(now: int, error: str, previous: Optional[StageStatus] = None) -> StageStatus:
    return StageStatus(
        status=StageState.FAILED,
        updated_at=now,
        confidence=previous.confidence if previous else None,
        error=error,
    )


def should_run_categorize_stage(card_type: CardType) -> bool:
    return card_type == CardType.LINK


def should_run_renderables_stage(card_type: CardType) -> bool:
    return card_type in RENDERABLE_TYPES
