"""Index schema: the field layout and the tokenizer chosen for each language."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import IndexerError


class Language(str, Enum):
    """A language with its own index and analyzer."""

    JA = "ja"
    EN = "en"

    def __str__(self) -> str:
        return self.value

    def text_tokenizer_name(self) -> str:
        """Name of the tokenizer registered for the ``text`` field."""
        return f"lang_{self.value}"

    def ngram_tokenizer_name(self) -> str | None:
        """Name of the single-character n-gram tokenizer, if the language uses one."""
        return "ja_ngram" if self is Language.JA else None


class IndexRecordOption(str, Enum):
    """How much posting information an indexed field records."""

    BASIC = "basic"
    WITH_FREQS = "freq"
    WITH_FREQS_AND_POSITIONS = "position"


class FieldType(str, Enum):
    TEXT = "text"
    JSON = "json"


@dataclass(frozen=True)
class FieldEntry:
    """One field of a schema. A field without a tokenizer is not indexed."""

    name: str
    field_type: FieldType
    stored: bool = False
    tokenizer: str | None = None
    record_option: IndexRecordOption = IndexRecordOption.BASIC

    @property
    def indexed(self) -> bool:
        return self.tokenizer is not None

    def to_dict(self) -> dict[str, Any]:
        indexing = (
            {"tokenizer": self.tokenizer, "record": self.record_option.value}
            if self.indexed
            else None
        )
        return {
            "name": self.name,
            "type": self.field_type.value,
            "stored": self.stored,
            "indexing": indexing,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FieldEntry:
        if not isinstance(data, Mapping):
            raise ValueError("field entry must be an object")
        name = data.get("name")
        if not isinstance(name, str):
            raise ValueError("field entry needs a string `name`")
        field_type = FieldType(data.get("type"))
        stored = bool(data.get("stored", False))
        indexing = data.get("indexing")
        if indexing is None:
            return cls(name, field_type, stored)
        if not isinstance(indexing, Mapping) or not isinstance(indexing.get("tokenizer"), str):
            raise ValueError(f"field `{name}` has malformed indexing options")
        return cls(
            name,
            field_type,
            stored,
            indexing["tokenizer"],
            IndexRecordOption(indexing.get("record", IndexRecordOption.BASIC.value)),
        )


@dataclass(frozen=True)
class Schema:
    """An ordered set of uniquely named fields; a field is its position."""

    entries: tuple[FieldEntry, ...]
    _by_name: dict[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        entries = tuple(self.entries)
        object.__setattr__(self, "entries", entries)
        by_name: dict[str, int] = {}
        for number, entry in enumerate(entries):
            if entry.name in by_name:
                raise ValueError(f"duplicate field `{entry.name}`")
            by_name[entry.name] = number
        object.__setattr__(self, "_by_name", by_name)

    def get_field(self, name: str) -> int:
        """The field number of ``name``; KeyError if there is no such field."""
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"no field named `{name}`") from None

    def to_dict(self) -> dict[str, Any]:
        return {"fields": [entry.to_dict() for entry in self.entries]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Schema:
        if not isinstance(data, Mapping) or not isinstance(data.get("fields"), list):
            raise ValueError("schema must be an object with a `fields` array")
        return cls(tuple(FieldEntry.from_dict(entry) for entry in data["fields"]))


@dataclass(frozen=True)
class SchemaFields:
    """Field numbers of the fields the indexer and searcher use."""

    id: int
    source_id: int
    text: int
    metadata: int
    text_ngram: int | None = None

    @classmethod
    def from_schema(cls, schema: Schema) -> SchemaFields:
        """Look the fields up in an existing schema.

        ``text_ngram`` may be absent; any other missing field is an error.
        """

        def required(name: str) -> int:
            try:
                return schema.get_field(name)
            except KeyError as exc:
                raise IndexerError(f"field '{name}' not found: {exc}") from None

        try:
            text_ngram: int | None = schema.get_field("text_ngram")
        except KeyError:
            text_ngram = None
        return cls(
            id=required("id"),
            source_id=required("source_id"),
            text=required("text"),
            metadata=required("metadata"),
            text_ngram=text_ngram,
        )


def build_schema(language: Language) -> tuple[Schema, SchemaFields]:
    """Build the schema for an index in ``language``.

    ``id`` and ``source_id`` are exact-match strings, ``text`` uses the
    language's tokenizer with frequencies and positions, ``metadata`` is a
    stored JSON object indexed with the raw tokenizer, and Japanese indexes
    add an unstored ``text_ngram`` field.
    """
    entries = [
        FieldEntry("id", FieldType.TEXT, stored=True, tokenizer="raw"),
        FieldEntry("source_id", FieldType.TEXT, stored=True, tokenizer="raw"),
        FieldEntry(
            "text",
            FieldType.TEXT,
            stored=True,
            tokenizer=language.text_tokenizer_name(),
            record_option=IndexRecordOption.WITH_FREQS_AND_POSITIONS,
        ),
        FieldEntry("metadata", FieldType.JSON, stored=True, tokenizer="raw"),
    ]
    ngram_name = language.ngram_tokenizer_name()
    if ngram_name is not None:
        entries.append(
            FieldEntry(
                "text_ngram",
                FieldType.TEXT,
                stored=False,
                tokenizer=ngram_name,
                record_option=IndexRecordOption.WITH_FREQS_AND_POSITIONS,
            )
        )
    schema = Schema(tuple(entries))
    return schema, SchemaFields.from_schema(schema)