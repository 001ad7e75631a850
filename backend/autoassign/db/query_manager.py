"""Model-level query manager exposed as `Model.objects`."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlmodel import col

from autoassign.db.queryset import QuerySet, queryset_for

if TYPE_CHECKING:
    from collections.abc import Iterable

ModelT = TypeVar("ModelT")


class ModelManager(Generic[ModelT]):
    """Entry points for building querysets bound to one model class."""

    def __init__(self, model: type[ModelT]) -> None:
        self.model = model

    def all(self) -> QuerySet[ModelT]:
        return queryset_for(self.model)

    def by_id(self, obj_id: object) -> QuerySet[ModelT]:
        return self.by_field("id", obj_id)

    def by_ids(self, obj_ids: Iterable[object]) -> QuerySet[ModelT]:
        return self.by_field_in("id", obj_ids)

    def by_field(self, field_name: str, value: object) -> QuerySet[ModelT]:
        return self.filter(col(getattr(self.model, field_name)) == value)

    def by_field_in(self, field_name: str, values: Iterable[object]) -> QuerySet[ModelT]:
        return self.filter(col(getattr(self.model, field_name)).in_(list(values)))

    def filter(self, *criteria: Any) -> QuerySet[ModelT]:
        return queryset_for(self.model).filter(*criteria)

    def filter_by(self, **kwargs: object) -> QuerySet[ModelT]:
        return queryset_for(self.model).filter_by(**kwargs)


class ManagerDescriptor(Generic[ModelT]):
    """Class-level descriptor returning a manager bound to the accessing model."""

    def __get__(self, instance: object, owner: type[ModelT]) -> ModelManager[ModelT]:
        return ModelManager(owner)
