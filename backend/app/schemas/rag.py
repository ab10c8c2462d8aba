"""Tagged metadata schemas for vector index entries.

Entries written to the index carry one of the known metadata shapes below,
selected by the ``kind`` discriminator and validated before the write.

Classes:
    ParticipantEntryMetadata: Denormalised participant snapshot used for cheap filtering and display.
    DocumentEntryMetadata: Knowledge document entry shape sharing the same index.

Functions:
    validate_entry_metadata(raw): Validate and normalise a metadata mapping at the write boundary.
    parse_entry_metadata(raw): Lenient read-side parsing that returns None for unknown shapes.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError


class ParticipantEntryMetadata(BaseModel):
    kind: Literal["participant"] = "participant"
    participant_id: str = Field(min_length=1)
    name: str = "Unnamed"
    role: Optional[str] = None
    employer: Optional[str] = None
    sector: Optional[str] = None
    program_brand: Optional[str] = None
    updated_at: int = 0


class DocumentEntryMetadata(BaseModel):
    kind: Literal["document"] = "document"
    title: str
    source: Optional[str] = None
    updated_at: int = 0


EntryMetadata = Annotated[
    Union[ParticipantEntryMetadata, DocumentEntryMetadata],
    Field(discriminator="kind"),
]

_ENTRY_METADATA_ADAPTER: TypeAdapter[EntryMetadata] = TypeAdapter(EntryMetadata)


def validate_entry_metadata(raw: dict[str, Any] | BaseModel) -> ParticipantEntryMetadata | DocumentEntryMetadata:
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    return _ENTRY_METADATA_ADAPTER.validate_python(raw)


def parse_entry_metadata(raw: Any) -> ParticipantEntryMetadata | DocumentEntryMetadata | None:
    if not isinstance(raw, dict):
        return None
    try:
        return _ENTRY_METADATA_ADAPTER.validate_python(raw)
    except ValidationError:
        return None
