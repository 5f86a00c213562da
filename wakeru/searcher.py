"""BM25 search over an index: a query-string parser and the search engine."""

from __future__ import annotations

import heapq
import json
import logging
import math
import re
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from .analysis import TokenizationResult, tokenize_with_tokenizer
from .errors import InvalidIndexError, InvalidQueryError
from .index_manager import Index
from .models import SearchResult
from .schema import FieldEntry, FieldType, IndexRecordOption, Language, SchemaFields

logger = logging.getLogger(__name__)

_K1 = 1.2
_B = 0.75
_JSON_PATH_SEPARATOR = "\0"


class _Occur(Enum):
    SHOULD = "should"
    MUST = "must"
    MUST_NOT = "must_not"


class _Query(Protocol):
    def scores(self, index: Index) -> dict[int, float]: ...


def _idf(index: Index, doc_freq: int) -> float:
    n_docs = index.num_docs()
    return math.log(1.0 + (n_docs - doc_freq + 0.5) / (doc_freq + 0.5))


def _bm25(index: Index, field: int, idf: float, term_freqs: dict[int, int]) -> dict[int, float]:
    average = index.average_field_length(field)
    scores: dict[int, float] = {}
    for doc, tf in term_freqs.items():
        if average > 0:
            norm = 1.0 - _B + _B * index.field_length(field, doc) / average
        else:
            norm = 1.0
        scores[doc] = idf * tf * (_K1 + 1.0) / (tf + _K1 * norm)
    return scores


@dataclass(frozen=True)
class _EmptyQuery:
    def scores(self, index: Index) -> dict[int, float]:
        return {}


@dataclass(frozen=True)
class _AllQuery:
    def scores(self, index: Index) -> dict[int, float]:
        return {doc: 1.0 for doc in range(index.num_docs())}


@dataclass(frozen=True)
class _TermQuery:
    field: int
    text: str

    def scores(self, index: Index) -> dict[int, float]:
        postings = index.postings(self.field, self.text)
        freqs = {doc: len(positions) for doc, positions in postings.items()}
        return _bm25(index, self.field, _idf(index, len(postings)), freqs)


@dataclass(frozen=True)
class _PhraseQuery:
    field: int
    terms: tuple[tuple[int, str], ...]

    def scores(self, index: Index) -> dict[int, float]:
        per_term = {text: index.postings(self.field, text) for _, text in self.terms}
        candidates = set.intersection(*(set(postings) for postings in per_term.values()))
        freqs: dict[int, int] = {}
        for doc in candidates:
            starts: set[int] | None = None
            for offset, text in self.terms:
                term_starts = {position - offset for position in per_term[text][doc]}
                starts = term_starts if starts is None else starts & term_starts
            if starts:
                freqs[doc] = len(starts)
        idf = sum(_idf(index, len(postings)) for postings in per_term.values())
        return _bm25(index, self.field, idf, freqs)


@dataclass(frozen=True)
class _TermSetQuery:
    terms: tuple[tuple[int, str], ...]

    def scores(self, index: Index) -> dict[int, float]:
        total: dict[int, float] = {}
        for field, text in dict.fromkeys(self.terms):
            for doc, score in _TermQuery(field, text).scores(index).items():
                total[doc] = total.get(doc, 0.0) + score
        return total


@dataclass(frozen=True)
class _BooleanQuery:
    clauses: tuple[tuple[_Occur, Any], ...]

    def scores(self, index: Index) -> dict[int, float]:
        must: list[dict[int, float]] = []
        should: list[dict[int, float]] = []
        excluded: set[int] = set()
        for occur, query in self.clauses:
            scores = query.scores(index)
            if occur is _Occur.MUST:
                must.append(scores)
            elif occur is _Occur.SHOULD:
                should.append(scores)
            else:
                excluded.update(scores)
        if must:
            candidates = set(must[0]).intersection(*must[1:])
        else:
            candidates = set().union(*should)
        candidates -= excluded
        contributing = (*must, *should)
        return {doc: sum(s.get(doc, 0.0) for s in contributing) for doc in candidates}


@dataclass(frozen=True)
class _Lexeme:
    kind: str
    text: str


_EOF = _Lexeme("eof", "")
_OPERATORS = frozenset({"AND", "OR", "NOT"})
_LEXEME = re.compile(
    r'(?P<space>\s+)|(?P<paren>[()])|(?P<colon>:)|"(?P<phrase>[^"]*)"|(?P<quote>")'
    r"|(?P<sign>[+-])(?=\S)|(?P<word>[^\s()\":]+)"
)


def _lex(query_str: str) -> Iterator[_Lexeme]:
    for match in _LEXEME.finditer(query_str):
        kind = match.lastgroup
        if kind == "space":
            continue
        if kind == "quote":
            raise InvalidQueryError("unterminated phrase")
        if kind == "phrase":
            yield _Lexeme("phrase", match.group("phrase"))
        elif kind == "word":
            word = match.group()
            yield _Lexeme(word if word in _OPERATORS else "word", word)
        else:
            yield _Lexeme(match.group(), match.group())


def _json_literal(text: str) -> Any:
    try:
        value = json.loads(text)
    except ValueError:
        return None
    if isinstance(value, (bool, int, float)):
        return value
    return None


_Target = tuple[int, "str | None"]


class _Parser:
    def __init__(self, lexemes: Iterable[_Lexeme], owner: QueryParser) -> None:
        self._lexemes = list(lexemes)
        self._pos = 0
        self._owner = owner

    def _peek(self) -> _Lexeme:
        return self._lexemes[self._pos] if self._pos < len(self._lexemes) else _EOF

    def _next(self) -> _Lexeme:
        lexeme = self._peek()
        if lexeme is not _EOF:
            self._pos += 1
        return lexeme

    def parse(self, targets: Sequence[_Target]) -> _BooleanQuery:
        clauses = self._query(targets)
        leftover = self._peek()
        if leftover is not _EOF:
            raise InvalidQueryError(f"unexpected `{leftover.text}`")
        return _BooleanQuery(tuple(clauses))

    def _query(self, targets: Sequence[_Target]) -> list[tuple[_Occur, Any]]:
        if self._peek().kind in ("eof", ")"):
            return []
        groups = [[self._clause(targets)]]
        while self._peek().kind not in ("eof", ")"):
            kind = self._peek().kind
            if kind == "AND":
                self._next()
                groups[-1].append(self._clause(targets))
            else:
                if kind == "OR":
                    self._next()
                groups.append([self._clause(targets)])
        clauses: list[tuple[_Occur, Any]] = []
        for group in groups:
            if len(group) == 1:
                clauses.append(group[0])
                continue
            conjunction = tuple(
                (_Occur.MUST_NOT if occur is _Occur.MUST_NOT else _Occur.MUST, query)
                for occur, query in group
            )
            clauses.append((_Occur.SHOULD, _BooleanQuery(conjunction)))
        if len(groups) == 1 and len(groups[0]) > 1:
            return list(clauses[0][1].clauses)
        return clauses

    def _clause(self, targets: Sequence[_Target]) -> tuple[_Occur, Any]:
        kind = self._peek().kind
        occur = _Occur.SHOULD
        if kind == "+":
            self._next()
            occur = _Occur.MUST
        elif kind in ("-", "NOT"):
            self._next()
            occur = _Occur.MUST_NOT
        return occur, self._atom(targets)

    def _atom(self, targets: Sequence[_Target]) -> Any:
        lexeme = self._next()
        if lexeme is _EOF:
            raise InvalidQueryError("expected a term at end of query")
        if lexeme.kind == "(":
            clauses = self._query(targets)
            if self._next().kind != ")":
                raise InvalidQueryError("expected `)`")
            return _BooleanQuery(tuple(clauses))
        if lexeme.kind == "phrase":
            return self._owner._leaf(targets, lexeme.text)
        if lexeme.kind == "word":
            if self._peek().kind == ":":
                self._next()
                return self._atom([self._owner._resolve(lexeme.text)])
            if lexeme.text == "*":
                return _AllQuery()
            return self._owner._leaf(targets, lexeme.text)
        raise InvalidQueryError(f"unexpected `{lexeme.text}`")


class QueryParser:
    """Parses query strings into queries over the fields of an index.

    Bare terms search ``default_fields``. Supported syntax: ``field:term``,
    ``json_field.path:value``, ``"phrases"``, ``+must``, ``-excluded``,
    ``NOT``, ``AND``, ``OR``, parentheses and ``*`` for every document.
    Juxtaposed clauses are alternatives (OR).
    """

    def __init__(self, index: Index, default_fields: Iterable[int]) -> None:
        self.index = index
        self.default_fields = tuple(default_fields)

    def parse(self, query_str: str) -> Any:
        """Parse ``query_str``; InvalidQueryError if it is malformed."""
        targets = [(field, None) for field in self.default_fields]
        return _Parser(_lex(query_str), self).parse(targets)

    def _resolve(self, name: str) -> _Target:
        schema = self.index.schema
        try:
            target: _Target = (schema.get_field(name), None)
        except KeyError:
            root, dot, path = name.partition(".")
            try:
                field = schema.get_field(root) if dot else None
            except KeyError:
                field = None
            if field is None or schema.entries[field].field_type is not FieldType.JSON:
                raise InvalidQueryError(f"unknown field `{name}`") from None
            target = (field, path)
        if not schema.entries[target[0]].indexed:
            raise InvalidQueryError(f"field `{name}` is not indexed")
        return target

    def _analyzer(self, entry: FieldEntry) -> Any:
        name = entry.tokenizer
        analyzer = self.index.tokenizer(name) if name is not None else None
        if analyzer is None:
            raise InvalidQueryError(f"tokenizer `{name}` is not registered")
        return analyzer

    def _leaf(self, targets: Sequence[_Target], text: str) -> Any:
        queries = [self._leaf_for(field, path, text) for field, path in targets]
        if len(queries) == 1:
            return queries[0]
        return _BooleanQuery(tuple((_Occur.SHOULD, query) for query in queries))

    def _leaf_for(self, field: int, path: str | None, text: str) -> Any:
        entry = self.index.schema.entries[field]
        analyzer = self._analyzer(entry)
        if entry.field_type is FieldType.JSON:
            prefix = f"{path or ''}{_JSON_PATH_SEPARATOR}"
            terms = [prefix + token.text for token in analyzer.tokens(text) if token.text]
            literal = _json_literal(text)
            if literal is not None:
                terms.append(prefix + json.dumps(literal))
            unique = list(dict.fromkeys(terms))
            if not unique:
                return _EmptyQuery()
            if len(unique) == 1:
                return _TermQuery(field, unique[0])
            return _BooleanQuery(tuple((_Occur.SHOULD, _TermQuery(field, t)) for t in unique))
        tokens = [(token.position, token.text) for token in analyzer.tokens(text)]
        if not tokens:
            return _EmptyQuery()
        if len(tokens) == 1:
            return _TermQuery(field, tokens[0][1])
        if entry.record_option is not IndexRecordOption.WITH_FREQS_AND_POSITIONS:
            raise InvalidQueryError(
                f"field `{entry.name}` does not index positions; phrase query impossible"
            )
        base = tokens[0][0]
        return _PhraseQuery(field, tuple((position - base, t) for position, t in tokens))


class SearchEngine:
    """BM25 search over the ``text`` field of one language's index."""

    def __init__(self, index: Index, fields: SchemaFields, language: Language) -> None:
        self.index = index
        self.fields = fields
        self.language = language

    def search(self, query_str: str, limit: int) -> list[SearchResult]:
        """Run a parsed query string and return up to ``limit`` hits, best first."""
        parser = QueryParser(self.index, [self.fields.text])
        return self._collect(parser.parse(query_str), limit)

    def _tokenize_query(self, query_str: str) -> TokenizationResult:
        name = self.language.text_tokenizer_name()
        analyzer = self.index.tokenizer(name)
        if analyzer is None:
            raise InvalidQueryError(f"tokenizer `{name}` is not registered")
        return tokenize_with_tokenizer(analyzer, self.fields.text, query_str)

    def search_tokens_or(self, query_str: str, limit: int) -> list[SearchResult]:
        """Analyze the query with the language's tokenizer and OR its tokens.

        For Japanese, single-character tokens are also looked up in the
        n-gram field.
        """
        logger.debug("query analysis started: query=%s limit=%d language=%s",
                     query_str, limit, self.language)
        result = self._tokenize_query(query_str)
        logger.debug("query analysis finished: query=%s tokens=%s num_terms=%d",
                     query_str, result.query_tokens, len(result.terms))
        if not result.terms:
            return []

        ngram_terms: list[tuple[int, str]] = []
        if self.fields.text_ngram is not None:
            ngram_terms = [
                (self.fields.text_ngram, token) for token in result.query_tokens if len(token) == 1
            ]

        morph_query = _TermSetQuery(tuple(result.terms))
        query: Any
        if ngram_terms:
            query = _BooleanQuery(
                ((_Occur.SHOULD, morph_query), (_Occur.SHOULD, _TermSetQuery(tuple(ngram_terms))))
            )
        else:
            query = morph_query
        logger.debug("query built: query=%s has_ngram=%s", query_str, bool(ngram_terms))
        return self._collect(query, limit)

    def _collect(self, query: Any, limit: int) -> list[SearchResult]:
        if limit < 1:
            raise ValueError("limit must be greater than 0")
        scores = query.scores(self.index)
        top = heapq.nsmallest(limit, scores.items(), key=lambda item: (-item[1], item[0]))
        return [self._to_result(doc, score) for doc, score in top]

    def _to_result(self, doc_number: int, score: float) -> SearchResult:
        values = self.index.stored_document(doc_number).values

        def required(field: int, name: str) -> str:
            value = values.get(field)
            if not isinstance(value, str):
                raise InvalidIndexError(name, "required field not found")
            return value

        doc_id = required(self.fields.id, "id")
        source_id = required(self.fields.source_id, "source_id")
        text = values.get(self.fields.text)
        metadata = values.get(self.fields.metadata)
        return SearchResult(
            doc_id=doc_id,
            source_id=source_id,
            score=float(score),
            text=text if isinstance(text, str) else "",
            metadata=dict(metadata) if isinstance(metadata, dict) else {},
        )