"""Documents to index and the results a search returns."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

TAGS_KEY = "tags"
"""Reserved metadata key under which tags are stored as a JSON array."""

Metadata = dict[str, Any]


def _require_str(data: Mapping[str, Any], key: str) -> str:
    try:
        value = data[key]
    except KeyError:
        raise ValueError(f"missing field `{key}`") from None
    if not isinstance(value, str):
        raise ValueError(f"field `{key}` must be a string")
    return value


def _metadata_from(data: Mapping[str, Any]) -> Metadata:
    metadata = data.get("metadata", {})
    if metadata is None:
        return {}
    if not isinstance(metadata, Mapping):
        raise ValueError("field `metadata` must be an object")
    return dict(metadata)


def _require_mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError("expected a JSON object")
    return data


@dataclass
class Document:
    """A chunk of text with arbitrary JSON metadata, as fed to the index."""

    id: str
    source_id: str
    text: str
    metadata: Metadata = field(default_factory=dict)

    def with_metadata(self, key: str, value: Any) -> Document:
        """Return a copy with one metadata entry set."""
        return replace(self, metadata={**self.metadata, key: value})

    def with_metadata_map(self, metadata: Mapping[str, Any]) -> Document:
        """Return a copy with all entries of ``metadata`` merged in, overwriting."""
        return replace(self, metadata={**self.metadata, **metadata})

    def with_tag(self, tag: str) -> Document:
        """Return a copy with ``tag`` appended to ``metadata["tags"]``.

        A non-array value under the tags key is replaced by a new array.
        """
        existing = self.metadata.get(TAGS_KEY)
        tags = list(existing) if isinstance(existing, list) else []
        tags.append(tag)
        return replace(self, metadata={**self.metadata, TAGS_KEY: tags})

    def with_tags(self, tags: Iterable[str]) -> Document:
        """Return a copy with every tag in ``tags`` appended in order."""
        doc = self
        for tag in tags:
            doc = doc.with_tag(tag)
        return doc

    def tags(self) -> list[str]:
        """The string elements of ``metadata["tags"]``, or [] if it is not an array."""
        value = self.metadata.get(TAGS_KEY)
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, str)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "text": self.text,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Document:
        data = _require_mapping(data)
        return cls(
            id=_require_str(data, "id"),
            source_id=_require_str(data, "source_id"),
            text=_require_str(data, "text"),
            metadata=_metadata_from(data),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> Document:
        return cls.from_dict(json.loads(text))


@dataclass
class SearchResult:
    """One BM25 hit."""

    doc_id: str
    source_id: str
    score: float
    text: str
    metadata: Metadata = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "doc_id": self.doc_id,
            "source_id": self.source_id,
            "score": self.score,
            "text": self.text,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SearchResult:
        data = _require_mapping(data)
        if "score" not in data:
            raise ValueError("missing field `score`")
        score = data["score"]
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ValueError("field `score` must be a number")
        return cls(
            doc_id=_require_str(data, "doc_id"),
            source_id=_require_str(data, "source_id"),
            score=float(score),
            text=_require_str(data, "text"),
            metadata=_metadata_from(data),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> SearchResult:
        return cls.from_dict(json.loads(text))