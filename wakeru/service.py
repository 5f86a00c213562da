"""Facade over the per-language indexes and search engines."""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .analysis import TokenSource
from .errors import ConfigError, UnsupportedLanguageError
from .index_manager import IndexManager
from .models import Document, SearchResult
from .schema import Language
from .searcher import SearchEngine


@dataclass
class _PerLanguage:
    """An index and the search engine reading it, kept together so they cannot mismatch."""

    index_manager: IndexManager
    search_engine: SearchEngine


def _as_language(value: Any) -> Language | None:
    if isinstance(value, Language):
        return value
    try:
        return Language(value)
    except ValueError:
        return None


class WakeruService:
    """Indexing and BM25 search across one index per supported language.

    Each language keeps its index under ``data_dir/<language code>``. Japanese
    indexes need ``tokenizer_ja``, the morphological tokenizer for their text.
    """

    def __init__(
        self,
        data_dir: str | os.PathLike[str],
        languages: Iterable[Language | str],
        default_language: Language | str,
        tokenizer_ja: TokenSource | None = None,
    ) -> None:
        resolved: list[Language] = []
        for value in languages:
            language = _as_language(value)
            if language is None:
                raise ConfigError(f"unknown language: {value!r}")
            if language not in resolved:
                resolved.append(language)
        if not resolved:
            raise ConfigError("at least one language must be configured")
        default = _as_language(default_language)
        if default is None:
            raise ConfigError(f"unknown default language: {default_language!r}")
        if default not in resolved:
            raise ConfigError(
                f"default language `{default}` is not among the configured languages"
            )

        self.data_dir = Path(data_dir)
        self.default_language = default
        self._langs: dict[Language, _PerLanguage] = {}
        try:
            for language in resolved:
                manager = IndexManager.open_or_create(
                    self.index_path_for_language(language),
                    language,
                    tokenizer_ja if language is Language.JA else None,
                )
                engine = SearchEngine(manager.index, manager.fields, language)
                self._langs[language] = _PerLanguage(manager, engine)
        except BaseException:
            self.close()
            raise

    def index_path_for_language(self, language: Language) -> Path:
        """Directory holding the index of ``language``."""
        return self.data_dir / language.value

    def _per_language(self, language: Language | str) -> _PerLanguage:
        resolved = _as_language(language)
        per_lang = self._langs.get(resolved) if resolved is not None else None
        if per_lang is None:
            raise UnsupportedLanguageError(language)
        return per_lang

    def index_documents_with_language(
        self, language: Language | str, documents: Iterable[Document]
    ) -> None:
        """Add documents to the index of ``language``; duplicates are skipped."""
        self._per_language(language).index_manager.add_documents(documents)

    def index_documents(self, documents: Iterable[Document]) -> None:
        """Add documents to the index of the default language."""
        self.index_documents_with_language(self.default_language, documents)

    def search_with_language(
        self, language: Language | str, query: str, limit: int
    ) -> list[SearchResult]:
        """BM25 search with a parsed query string in the index of ``language``."""
        return self._per_language(language).search_engine.search(query, limit)

    def search(self, query: str, limit: int) -> list[SearchResult]:
        """BM25 search in the index of the default language."""
        return self.search_with_language(self.default_language, query, limit)

    def search_tokens_or_with_language(
        self, language: Language | str, query: str, limit: int
    ) -> list[SearchResult]:
        """OR search over the analyzed tokens of ``query`` in the index of ``language``."""
        return self._per_language(language).search_engine.search_tokens_or(query, limit)

    def search_tokens_or(self, query: str, limit: int) -> list[SearchResult]:
        """OR search over analyzed tokens in the index of the default language."""
        return self.search_tokens_or_with_language(self.default_language, query, limit)

    def supported_languages(self) -> list[Language]:
        return list(self._langs)

    def is_language_supported(self, language: Language | str) -> bool:
        resolved = _as_language(language)
        return resolved is not None and resolved in self._langs

    def index_manager(self, language: Language | str) -> IndexManager | None:
        resolved = _as_language(language)
        per_lang = self._langs.get(resolved) if resolved is not None else None
        return per_lang.index_manager if per_lang is not None else None

    def search_engine(self, language: Language | str) -> SearchEngine | None:
        resolved = _as_language(language)
        per_lang = self._langs.get(resolved) if resolved is not None else None
        return per_lang.search_engine if per_lang is not None else None

    def close(self) -> None:
        """Close every index; further writes are refused."""
        for per_lang in self._langs.values():
            per_lang.index_manager.close()

    def __enter__(self) -> WakeruService:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()