"""On-disk inverted index and the manager that feeds documents into it."""

from __future__ import annotations

import copy
import json
import os
import threading
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .analysis import NgramTokenizer, RawTokenizer, TextAnalyzer, TokenSource, english_analyzer
from .errors import (
    IndexerError,
    InvalidIndexPathError,
    LanguageSchemaMismatchError,
    MissingJapaneseTokenizerError,
)
from .models import Document
from .report import AddDocumentsReport
from .schema import FieldEntry, FieldType, Language, Schema, SchemaFields, build_schema

META_JSON = "meta.json"
"""File whose presence marks a directory as holding an index."""

_STORE_JSON = "store.json"
_JSON_PATH_SEPARATOR = "\0"


@dataclass(frozen=True)
class StoredDocument:
    """The stored field values of one indexed document, keyed by field number."""

    doc_number: int
    values: Mapping[int, Any]


def _write_json_atomically(path: Path, data: Any) -> None:
    tmp = path.with_name(path.name + ".tmp")
    with tmp.open("w", encoding="utf-8") as handle:
        json.dump(data, handle, ensure_ascii=False)
    os.replace(tmp, path)


def _read_json(path: Path) -> Any:
    try:
        with path.open(encoding="utf-8") as handle:
            return json.load(handle)
    except OSError as exc:
        raise IndexerError(f"cannot read {path}: {exc}") from exc
    except ValueError as exc:
        raise IndexerError(f"corrupt index file {path}: {exc}") from exc


def _json_leaves(value: Any, path: tuple[str, ...] = ()) -> Iterator[tuple[str, Any]]:
    if isinstance(value, Mapping):
        for key, item in value.items():
            yield from _json_leaves(item, (*path, str(key)))
    elif isinstance(value, list):
        for item in value:
            yield from _json_leaves(item, path)
    elif value is not None:
        yield ".".join(path), value


class Index:
    """A persistent inverted index over the fields of a schema.

    Each indexed field keeps postings ``term -> {doc number: positions}`` and a
    per-document token count. Terms of JSON fields are ``"<dotted.path>\\0<value>"``.
    Every call to :meth:`add_documents` is a commit written to disk.
    """

    def __init__(self, path: Path, schema: Schema) -> None:
        self.path = path
        self.schema = schema
        self._tokenizers: dict[str, TokenSource] = {"raw": TextAnalyzer(RawTokenizer())}
        self._docs: list[dict[int, Any]] = []
        self._postings: dict[int, dict[str, dict[int, list[int]]]] = {}
        self._field_lengths: dict[int, list[int]] = {
            number: [] for number, entry in enumerate(schema.entries) if entry.indexed
        }
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def create_in_dir(cls, path: str | os.PathLike[str], schema: Schema) -> Index:
        """Create a new, empty index in an existing directory."""
        directory = Path(path)
        if not directory.is_dir():
            raise IndexerError(f"index directory does not exist: {directory}")
        if (directory / META_JSON).exists():
            raise IndexerError(f"an index already exists in {directory}")
        index = cls(directory, schema)
        try:
            index._persist()
        except OSError as exc:
            raise IndexerError(f"cannot create index in {directory}: {exc}") from exc
        return index

    @classmethod
    def open_in_dir(cls, path: str | os.PathLike[str]) -> Index:
        """Open the index stored in ``path``."""
        directory = Path(path)
        meta = _read_json(directory / META_JSON)
        try:
            schema = Schema.from_dict(meta["schema"])
        except (KeyError, TypeError, ValueError) as exc:
            raise IndexerError(f"corrupt index metadata in {directory}: {exc}") from exc
        index = cls(directory, schema)
        store = directory / _STORE_JSON
        if store.exists():
            index._load(_read_json(store))
        return index

    def _load(self, data: Any) -> None:
        try:
            docs = [{int(k): v for k, v in doc.items()} for doc in data["docs"]]
            postings = {
                int(field): {
                    term: {int(doc): [int(p) for p in positions] for doc, positions in docs_.items()}
                    for term, docs_ in terms.items()
                }
                for field, terms in data["postings"].items()
            }
            lengths = {
                int(field): [int(n) for n in counts]
                for field, counts in data["field_lengths"].items()
            }
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise IndexerError(f"corrupt index store in {self.path}: {exc}") from exc
        for field, counts in lengths.items():
            if len(counts) != len(docs):
                raise IndexerError(f"corrupt index store in {self.path}: field {field} lengths")
        self._docs = docs
        self._postings = postings
        for field in self._field_lengths:
            self._field_lengths[field] = lengths.get(field, [0] * len(docs))

    def _persist(self) -> None:
        store = {
            "docs": [{str(k): v for k, v in doc.items()} for doc in self._docs],
            "postings": {
                str(field): {
                    term: {str(doc): positions for doc, positions in docs_.items()}
                    for term, docs_ in terms.items()
                }
                for field, terms in self._postings.items()
            },
            "field_lengths": {str(field): counts for field, counts in self._field_lengths.items()},
        }
        _write_json_atomically(self.path / _STORE_JSON, store)
        _write_json_atomically(
            self.path / META_JSON,
            {"schema": self.schema.to_dict(), "num_docs": len(self._docs)},
        )

    def register_tokenizer(self, name: str, analyzer: TokenSource) -> None:
        """Make ``analyzer`` available to fields that name ``name`` as tokenizer."""
        self._tokenizers[name] = analyzer

    def tokenizer(self, name: str) -> TokenSource | None:
        """The analyzer registered under ``name``, or None."""
        return self._tokenizers.get(name)

    def doc_freq(self, field: int, term: str) -> int:
        """Number of documents whose ``field`` contains ``term``."""
        return len(self._postings.get(field, {}).get(term, {}))

    def num_docs(self) -> int:
        return len(self._docs)

    def postings(self, field: int, term: str) -> dict[int, tuple[int, ...]]:
        """Documents containing ``term`` in ``field``, with the term's positions."""
        docs = self._postings.get(field, {}).get(term, {})
        return {doc: tuple(positions) for doc, positions in docs.items()}

    def field_length(self, field: int, doc_number: int) -> int:
        """Number of tokens ``field`` has in the given document."""
        self._check_doc_number(doc_number)
        counts = self._field_lengths.get(field)
        return counts[doc_number] if counts is not None else 0

    def average_field_length(self, field: int) -> float:
        counts = self._field_lengths.get(field)
        if not counts:
            return 0.0
        return sum(counts) / len(counts)

    def stored_document(self, doc_number: int) -> StoredDocument:
        self._check_doc_number(doc_number)
        return StoredDocument(doc_number, copy.deepcopy(self._docs[doc_number]))

    def _check_doc_number(self, doc_number: int) -> None:
        if not 0 <= doc_number < len(self._docs):
            raise IndexError(f"no document number {doc_number}")

    def add_documents(self, documents: Iterable[Mapping[int, Any]]) -> list[int]:
        """Index and commit documents given as ``{field number: value}``.

        Returns the document numbers assigned to them.
        """
        with self._lock:
            if self._closed:
                raise IndexerError("index is closed")
            prepared = [self._prepare(doc) for doc in documents]
            first = len(self._docs)
            for number, (stored, terms, lengths) in enumerate(prepared, start=first):
                self._docs.append(stored)
                for field, term_positions in terms.items():
                    field_postings = self._postings.setdefault(field, {})
                    for term, positions in term_positions.items():
                        field_postings.setdefault(term, {})[number] = positions
                for field, counts in self._field_lengths.items():
                    counts.append(lengths.get(field, 0))
            if prepared:
                try:
                    self._persist()
                except OSError as exc:
                    self._rollback(first)
                    raise IndexerError(f"cannot commit index in {self.path}: {exc}") from exc
            return list(range(first, first + len(prepared)))

    def _rollback(self, first: int) -> None:
        del self._docs[first:]
        for counts in self._field_lengths.values():
            del counts[first:]
        for terms in self._postings.values():
            for term in list(terms):
                docs = terms[term]
                for doc in [d for d in docs if d >= first]:
                    del docs[doc]
                if not docs:
                    del terms[term]

    def _entry(self, field: Any) -> FieldEntry:
        if not isinstance(field, int) or isinstance(field, bool) or not (
            0 <= field < len(self.schema.entries)
        ):
            raise IndexerError(f"unknown field {field!r}")
        return self.schema.entries[field]

    def _analyzer(self, entry: FieldEntry) -> TokenSource:
        assert entry.tokenizer is not None
        analyzer = self._tokenizers.get(entry.tokenizer)
        if analyzer is None:
            raise IndexerError(f"tokenizer `{entry.tokenizer}` is not registered")
        return analyzer

    def _prepare(
        self, doc: Mapping[int, Any]
    ) -> tuple[dict[int, Any], dict[int, dict[str, list[int]]], dict[int, int]]:
        stored: dict[int, Any] = {}
        terms: dict[int, dict[str, list[int]]] = {}
        lengths: dict[int, int] = {}
        for field, value in doc.items():
            entry = self._entry(field)
            if entry.field_type is FieldType.TEXT:
                if not isinstance(value, str):
                    raise IndexerError(f"field `{entry.name}` expects a string")
                token_texts = (
                    [(t.text, t.position) for t in self._analyzer(entry).tokens(value)]
                    if entry.indexed
                    else []
                )
            else:
                if not isinstance(value, Mapping):
                    raise IndexerError(f"field `{entry.name}` expects a JSON object")
                try:
                    value = json.loads(json.dumps(value))
                except (TypeError, ValueError) as exc:
                    raise IndexerError(f"field `{entry.name}` is not valid JSON: {exc}") from exc
                token_texts = (
                    list(enumerate(self._json_terms(value, self._analyzer(entry))))
                    if entry.indexed
                    else []
                )
                token_texts = [(text, position) for position, text in token_texts]
            if entry.indexed:
                field_terms = terms.setdefault(field, {})
                for text, position in token_texts:
                    field_terms.setdefault(text, []).append(position)
                lengths[field] = lengths.get(field, 0) + len(token_texts)
            if entry.stored:
                stored[field] = value
        return stored, terms, lengths

    @staticmethod
    def _json_terms(value: Mapping[str, Any], analyzer: TokenSource) -> Iterator[str]:
        for path, leaf in _json_leaves(value):
            if isinstance(leaf, str):
                texts = [token.text for token in analyzer.tokens(leaf)]
            else:
                texts = [json.dumps(leaf)]
            for text in texts:
                yield f"{path}{_JSON_PATH_SEPARATOR}{text}"

    def close(self) -> None:
        """Refuse further writes."""
        with self._lock:
            self._closed = True

    def __enter__(self) -> Index:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class IndexManager:
    """Opens or creates the index of one language and adds documents to it.

    Japanese indexes use the supplied morphological tokenizer for ``text`` and a
    single-character n-gram tokenizer for ``text_ngram``; English indexes use
    alphanumeric splitting, lower-casing and stemming.
    """

    def __init__(self, index: Index, fields: SchemaFields, language: Language) -> None:
        self.index = index
        self.fields = fields
        self.language = language

    def __repr__(self) -> str:
        return f"IndexManager(language={self.language!r}, fields={self.fields!r}, ...)"

    @classmethod
    def open_or_create(
        cls,
        index_path: str | os.PathLike[str],
        language: Language,
        tokenizer_ja: TokenSource | None = None,
    ) -> IndexManager:
        """Open the index at ``index_path``, creating it if it does not exist."""
        path = Path(index_path)
        if (path / META_JSON).exists():
            index = Index.open_in_dir(path)
            fields = SchemaFields.from_schema(index.schema)
            cls._assert_schema_matches_language(index.schema, language)
        else:
            if not path.exists():
                try:
                    path.mkdir(parents=True)
                except OSError as exc:
                    raise InvalidIndexPathError(path, str(exc)) from exc
            schema, fields = build_schema(language)
            index = Index.create_in_dir(path, schema)

        if language is Language.JA:
            if tokenizer_ja is None:
                raise MissingJapaneseTokenizerError()
            index.register_tokenizer(language.text_tokenizer_name(), tokenizer_ja)
            index.register_tokenizer("ja_ngram", TextAnalyzer(NgramTokenizer(1, 1, False)))
        else:
            index.register_tokenizer(language.text_tokenizer_name(), english_analyzer())

        return cls(index, fields, language)

    @staticmethod
    def _assert_schema_matches_language(schema: Schema, language: Language) -> None:
        try:
            entry = schema.entries[schema.get_field("text")]
        except KeyError as exc:
            raise IndexerError(str(exc)) from None
        if entry.field_type is not FieldType.TEXT:
            raise IndexerError("text field is not a text field")
        if not entry.indexed:
            raise IndexerError("text field is not indexed")
        expected = language.text_tokenizer_name()
        if entry.tokenizer != expected:
            raise LanguageSchemaMismatchError(expected=expected, actual=str(entry.tokenizer))

    def add_documents(self, documents: Iterable[Document]) -> AddDocumentsReport:
        """Add documents, skipping any whose id is already indexed or repeated in the batch."""
        report = AddDocumentsReport()
        seen: set[str] = set()
        batch: list[dict[int, Any]] = []
        for doc in documents:
            report.record_total()
            in_batch = doc.id in seen
            seen.add(doc.id)
            in_index = self.index.doc_freq(self.fields.id, doc.id) > 0
            if in_batch or in_index:
                report.record_skipped()
                continue
            batch.append(self._to_index_document(doc))
            report.record_added()
        self.index.add_documents(batch)
        return report

    def _to_index_document(self, doc: Document) -> dict[int, Any]:
        values: dict[int, Any] = {
            self.fields.id: doc.id,
            self.fields.source_id: doc.source_id,
            self.fields.text: doc.text,
        }
        if self.fields.text_ngram is not None:
            values[self.fields.text_ngram] = doc.text
        if doc.metadata:
            values[self.fields.metadata] = dict(doc.metadata)
        return values

    def close(self) -> None:
        self.index.close()

    def __enter__(self) -> IndexManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()