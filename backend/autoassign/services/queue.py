"""Redis list-backed queue helpers for background event delivery."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, cast

import redis

from autoassign.core.config import settings
from autoassign.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class QueuedTask:
    """Envelope stored on the queue: a task type plus its JSON payload."""

    task_type: str
    payload: dict[str, Any]
    created_at: datetime
    attempts: int = 0

    def to_json(self) -> str:
        return json.dumps(
            {
                "task_type": self.task_type,
                "payload": self.payload,
                "created_at": self.created_at.isoformat(),
                "attempts": self.attempts,
            },
            sort_keys=True,
        )

    @classmethod
    def from_json(cls, raw: str) -> QueuedTask:
        data = json.loads(raw)
        if not isinstance(data, dict) or not isinstance(data.get("payload"), dict):
            msg = "envelope must be an object with a payload object"
            raise TypeError(msg)
        return cls(
            task_type=str(data["task_type"]),
            payload=data["payload"],
            created_at=datetime.fromisoformat(data["created_at"]),
            attempts=int(data.get("attempts", 0)),
        )


def _redis_client(redis_url: str | None = None) -> redis.Redis:
    return redis.Redis.from_url(redis_url or settings.rq_redis_url)


def ping_queue(*, redis_url: str | None = None) -> bool:
    """True when the queue's Redis answers PING."""
    try:
        return bool(_redis_client(redis_url=redis_url).ping())
    except redis.RedisError as exc:
        logger.warning("rq.queue.ping_failed", extra={"error": str(exc)})
        return False


def enqueue_task(
    task: QueuedTask,
    queue_name: str,
    *,
    redis_url: str | None = None,
) -> bool:
    """Push an envelope onto the queue; False when Redis is unreachable."""
    try:
        _redis_client(redis_url=redis_url).lpush(queue_name, task.to_json())
    except redis.RedisError as exc:
        logger.warning(
            "rq.queue.enqueue_failed",
            extra={"task_type": task.task_type, "queue_name": queue_name, "error": str(exc)},
        )
        return False
    logger.info(
        "rq.queue.enqueued",
        extra={"task_type": task.task_type, "queue_name": queue_name},
    )
    return True


def dequeue_task(
    queue_name: str,
    *,
    redis_url: str | None = None,
    block: bool = False,
    block_timeout: float = 0,
) -> QueuedTask | None:
    """Pop the oldest envelope, optionally waiting up to `block_timeout` seconds."""
    client = _redis_client(redis_url=redis_url)
    raw: str | bytes | None
    if block:
        popped = cast(
            tuple[bytes | str, bytes | str] | None,
            client.brpop([queue_name], timeout=max(0.0, float(block_timeout))),
        )
        raw = popped[1] if popped is not None else None
    else:
        raw = cast(str | bytes | None, client.rpop(queue_name))
    return None if raw is None else decode_task(raw, queue_name)


def decode_task(raw: str | bytes, queue_name: str) -> QueuedTask:
    """Parse a raw envelope; malformed input raises ValueError after logging."""
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        return QueuedTask.from_json(text)
    except (ValueError, KeyError, TypeError) as exc:
        logger.error(
            "rq.queue.decode_failed",
            extra={"queue_name": queue_name, "raw_payload": text, "error": str(exc)},
        )
        msg = f"Malformed task envelope on {queue_name!r}"
        raise ValueError(msg) from exc
