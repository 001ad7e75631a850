"""Probe payloads for liveness and readiness checks."""

from __future__ import annotations

from pydantic import Field
from sqlmodel import SQLModel


class HealthStatusResponse(SQLModel):
    ok: bool = Field(examples=[True])


class ReadinessResponse(HealthStatusResponse):
    """Readiness gates on the database; the event queue is reported but advisory."""

    database: bool = Field(description="`SELECT 1` succeeded on the primary database.")
    event_queue: bool = Field(
        description="Redis answered PING. Assignment events are best effort, so this "
        "does not affect `ok`.",
    )
