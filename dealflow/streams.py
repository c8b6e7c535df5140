from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence, cast

import redis

FEED_MAXLEN = 500


@dataclass(frozen=True, slots=True)
class Feed:
    game_id: str

    @property
    def key(self) -> str:
        return f"feed:{self.game_id}"


def publish(*, r: redis.Redis, feed: Feed, fields: Mapping[str, object]) -> str:
    """Append one entry to a game's feed stream."""

    # Stream fields are flat strings; callers pass scalars only.
    stream_id = r.xadd(feed.key, {str(k): str(v) for k, v in fields.items()}, maxlen=FEED_MAXLEN, approximate=True)
    return cast(str, stream_id)


def publish_many(*, r: redis.Redis, feed: Feed, entries: Sequence[Mapping[str, object]]) -> list[str]:
    return [publish(r=r, feed=feed, fields=fields) for fields in entries]


def read_feed(*, r: redis.Redis, feed: Feed, count: int = 50) -> list[tuple[str, dict[str, str]]]:
    """Newest entries first."""

    rows = r.xrevrange(feed.key, count=count)
    return [(cast(str, entry_id), dict(fields)) for entry_id, fields in rows]
