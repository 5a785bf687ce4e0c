"""Records as the search backends see them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from searchsync.domain.shared.model.value import ValueObject

if TYPE_CHECKING:
    from searchsync.domain.index.port.query_engine import QueryEngine

# Keys carrying one of these prefixes are extension ("custom") fields
CUSTOM_FIELD_PREFIXES: tuple[str, ...] = ("cf:", "cf_")


class SearchResultPresenter(ValueObject):
    """Backend-agnostic display descriptor for a search hit."""

    title: str
    subtitle: str | None = None
    icon: str | None = None
    badge: str | None = None


class SearchResultLink(ValueObject):
    href: str
    label: str
    kind: str | None = None


class SearchBuildSource(ValueObject):
    """What a build_source hook contributes in one call."""

    text: str | list[str] | None = None
    presenter: SearchResultPresenter | None = None
    links: list[SearchResultLink] | None = None
    checksum_source: Any = None


class RecordRef(ValueObject):
    """Minimal pointer to a record, as carried on the queue."""

    entity_id: str
    record_id: str


class IndexableRecord(BaseModel):
    """One domain record translated into backend-ready form."""

    entity_id: str
    record_id: str
    tenant_id: str
    organization_id: str | None = None
    fields: dict[str, Any] = Field(default_factory=dict)
    text: str | list[str] | None = None
    presenter: SearchResultPresenter | None = None
    url: str | None = None
    links: list[SearchResultLink] | None = None
    checksum_source: Any = None

    @property
    def ref(self) -> RecordRef:
        return RecordRef(entity_id=self.entity_id, record_id=self.record_id)

    def text_content(self) -> str:
        """Flatten text, presenter, and fields into one embeddable string."""
        parts: list[str] = []
        if isinstance(self.text, list):
            parts.extend(t for t in self.text if t)
        elif self.text:
            parts.append(self.text)
        if self.presenter is not None:
            parts.append(self.presenter.title)
            if self.presenter.subtitle:
                parts.append(self.presenter.subtitle)
        if not parts:
            parts.extend(
                f"{key}: {value}"
                for key, value in self.fields.items()
                if isinstance(value, (str, int, float)) and value != ""
            )
        return "\n".join(parts)


@dataclass
class IndexRecordParams:
    """Input to SearchIndexer.index_record and bulk_index_records."""

    entity_id: str
    record_id: str
    tenant_id: str
    record: dict[str, Any]
    organization_id: str | None = None
    custom_fields: dict[str, Any] | None = None


@dataclass
class SearchBuildContext:
    """Everything a hook may look at while building one record.

    `query_engine` is always the no-reindex decorator, never the raw engine.
    """

    entity_id: str
    record_id: str
    tenant_id: str
    organization_id: str | None
    record: dict[str, Any]
    custom_fields: dict[str, Any] = field(default_factory=dict)
    query_engine: QueryEngine | None = None


def extract_custom_fields(record: dict[str, Any]) -> dict[str, Any]:
    """Collect prefixed extension fields, keyed by their logical name."""
    custom: dict[str, Any] = {}
    for key, value in record.items():
        for prefix in CUSTOM_FIELD_PREFIXES:
            if key.startswith(prefix):
                custom[key[len(prefix) :]] = value
                break
    return custom


def record_id_of(record: dict[str, Any]) -> str | None:
    """Return the record identifier as a string, or None if it is missing or blank."""
    value = record.get("id")
    if value is None:
        return None
    record_id = str(value).strip()
    return record_id or None
