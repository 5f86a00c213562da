"""Exception hierarchy for indexing and searching."""

from __future__ import annotations

from pathlib import Path
from typing import Any


class WakeruError(Exception):
    """Base class of every error the package raises."""


class ConfigError(WakeruError):
    """The configuration is invalid."""


class UnsupportedLanguageError(WakeruError):
    """The requested language has no index in this service."""

    def __init__(self, language: Any) -> None:
        self.language = language
        super().__init__(f"unsupported language: {language}")


class IndexerError(WakeruError):
    """Building, opening or writing an index failed."""


class InvalidIndexPathError(IndexerError):
    """The index directory could not be created."""

    def __init__(self, path: str | Path, reason: str = "") -> None:
        self.path = Path(path)
        self.reason = reason
        message = f"invalid index path: {self.path}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class MissingJapaneseTokenizerError(IndexerError):
    """A Japanese index was requested without a Japanese tokenizer."""

    def __init__(self) -> None:
        super().__init__("a Japanese index requires a Japanese tokenizer")


class LanguageSchemaMismatchError(IndexerError):
    """An existing index was built for a different language."""

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"index language mismatch: expected tokenizer `{expected}`, found `{actual}`"
        )


class SearcherError(WakeruError):
    """A search could not be carried out."""


class InvalidQueryError(SearcherError):
    """The query string could not be parsed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"invalid query: {reason}")


class InvalidIndexError(SearcherError):
    """A stored document lacks a required field."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"invalid index: field `{field}`: {reason}")