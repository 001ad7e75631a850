"""Shared SQLModel base that exposes the `objects` query manager."""

from __future__ import annotations

from typing import Any, ClassVar

from sqlmodel import SQLModel

from autoassign.db.query_manager import ManagerDescriptor


class QueryModel(SQLModel, table=False):
    """Base class for table models; adds `Model.objects` query helpers."""

    objects: ClassVar[ManagerDescriptor[Any]] = ManagerDescriptor()
