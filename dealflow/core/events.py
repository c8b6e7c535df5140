from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

EventType = Literal[
    "COMMAND_ACCEPTED",
    "COMMAND_DECLINED",
    "WEEK_PROCESSED",
    "GAME_OVER",
    "ADVISOR_REPLY",
]


@dataclass(frozen=True, slots=True)
class GameEvent:
    type: EventType
    cursor: int
    payload: dict[str, Any]
    ts: datetime

    @staticmethod
    def now(*, type: EventType, cursor: int, payload: dict[str, Any]) -> "GameEvent":
        return GameEvent(type=type, cursor=cursor, payload=payload, ts=datetime.now(timezone.utc))

    def as_fields(self) -> dict[str, str]:
        """Flat string fields for a Redis Stream entry; `None` values are dropped."""

        fields = {"type": self.type, "cursor": str(self.cursor), "ts": self.ts.isoformat()}
        fields.update({k: str(v) for k, v in self.payload.items() if v is not None})
        return fields
