"""Store collections, write operations and queries."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Collection(StrEnum):
    BUS_LOCATIONS = "busLocations"
    ROUTES = "routes"


class WriteKind(StrEnum):
    SET = "set"
    MERGE = "merge"
    DELETE = "delete"


class WriteOp(BaseModel):
    """A single document write inside a store commit."""

    model_config = ConfigDict(frozen=True)

    collection: Collection
    doc_id: str = Field(..., description="Document key")
    kind: WriteKind = WriteKind.SET
    data: dict[str, Any] = Field(default_factory=dict, description="Document body (ignored for deletes)")

    @field_validator("doc_id")
    @classmethod
    def _normalize_doc_id(cls, value: str) -> str:
        doc_id = value.strip()
        if not doc_id:
            raise ValueError("doc_id must be non-empty")
        return doc_id

    @classmethod
    def set(cls, collection: Collection, doc_id: str, data: dict[str, Any]) -> WriteOp:
        return cls(collection=collection, doc_id=doc_id, kind=WriteKind.SET, data=data)

    @classmethod
    def delete(cls, collection: Collection, doc_id: str) -> WriteOp:
        return cls(collection=collection, doc_id=doc_id, kind=WriteKind.DELETE)


class StoreQuery(BaseModel):
    """Equality filter with optional ordering and limit.

    Frozen and hashable, so equal queries can share one store listener.
    """

    model_config = ConfigDict(frozen=True)

    where: tuple[tuple[str, Any], ...] = ()
    order_by: str | None = None
    descending: bool = False
    limit: int | None = Field(default=None, ge=1)

    def matches(self, document: dict[str, Any]) -> bool:
        return all(document.get(field) == value for field, value in self.where)
