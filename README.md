# wakeru

wakeru is a full-text search library for retrieval pipelines. It keeps one
on-disk index per language and ranks hits with BM25. It uses only the standard library.

- **English** text is split into alphanumeric words, lower-cased and stemmed
  with an English (Porter2) stemmer (`wakeru.analysis.english_analyzer()`).
- **Japanese** text goes through a `wakeru.tokenizer.JapaneseTokenizer`. It
  wraps a morphological analyzer that you supply and keeps only the morphemes
  that `should_index` accepts. It also indexes a single-character n-gram field,
  so one-character queries can still match.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Documents

```python
from wakeru.models import Document

doc = (
    Document("doc-1", "src-1", "Tokyo is the capital of Japan")
    .with_metadata("author", "alice")
    .with_tag("category:geo")
)
doc.tags()                    # ["category:geo"]
text = doc.to_json()
Document.from_json(text) == doc   # True
```

The `with_*` methods return a new `Document` and leave the original unchanged.
Tags are kept as a list in `metadata["tags"]`. If that key holds something
other than a list, `with_tag` replaces it with a new list.

## Indexing and searching

```python
from wakeru.service import WakeruService
from wakeru.schema import Language

with WakeruService("data/index", [Language.EN], Language.EN) as service:
    service.index_documents([doc])                       # default language
    service.index_documents_with_language(Language.EN, [doc])

    hits = service.search("tokyo", 10)                   # query syntax
    hits = service.search_tokens_or("Tokyo Tower", 10)   # OR over analysed tokens
    for hit in hits:
        print(hit.doc_id, hit.score, hit.text, hit.metadata)
```

Each language's index lives in `data_dir/<code>`, for example `data/index/en`.
You can get that path from `index_path_for_language`. Languages can be given as
`Language` members or as their codes (`"en"`, `"ja"`).

The service raises `ConfigError` in these cases:

- the language list is empty,
- a language is unknown,
- the default language is not among the configured languages.

A Japanese index needs the `tokenizer_ja` argument. Without it the service
raises `MissingJapaneseTokenizerError`.

Documents whose id is already in the index, or that appears earlier in the same
batch, are skipped. Added documents can be searched at once.

`search` parses a query string. It supports:

- bare terms, which search the `text` field
- `field:term`
- `metadata.tags:category:geo`-style JSON paths
- `"phrases"`
- `+required` and `-excluded` (or `NOT`)
- `AND`, `OR`, parentheses
- `*` for every document

Clauses written next to each other are alternatives. A malformed query such as
`"("` raises `InvalidQueryError`.

`search_tokens_or` runs the query through the language's analyser and matches
any of the resulting tokens.

Both searches return at most `limit` `SearchResult`s, best score first. A
`limit` below 1 raises `ValueError`. Asking for a language the service was not
configured with raises `UnsupportedLanguageError`.

## Japanese tokenization

`JapaneseTokenizer(analyzer)` takes a callable. The callable maps a string to an
iterable of `Morpheme(surface, feature, start, end)`. `start` and `end` are
UTF-8 byte offsets, and `feature` is a comma-separated part-of-speech string in
IPADIC or UniDic style.

`should_index(feature)` decides which morphemes are kept:

- dropped: particles, auxiliary verbs, symbols, fillers, interjections,
  conjunctions, prefixes, adnominals, pronouns and dependent nouns
- kept: other nouns, noun-like suffixes, verbs, adjectives, adjectival nouns
  and general adverbs

```python
from wakeru.tokenizer import JapaneseTokenizer, should_index

should_index("名詞,固有名詞,地域,一般,*,*,東京,トウキョウ,トーキョー")  # True
should_index("助詞,格助詞,一般,*,*,*,が,ガ,ガ")                        # False
```

## Lower-level pieces

- `wakeru.index_manager.IndexManager.open_or_create(path, language, tokenizer_ja=None)`
  opens or creates a single-language index. Its `add_documents` returns an
  `AddDocumentsReport` with the counts `total`, `added` and `skipped_duplicates`.
  Opening an existing index with the wrong language raises
  `LanguageSchemaMismatchError`.
- `wakeru.index_manager.Index` is the inverted index itself. It provides
  postings, document frequencies, field lengths and stored documents.
- `wakeru.searcher.SearchEngine` runs BM25 searches over one index.
  `wakeru.searcher.QueryParser` turns query strings into queries.
- `wakeru.schema` defines `Language`, `Schema`, `SchemaFields` and `build_schema`.
- `wakeru.analysis` provides the tokenizers (`SimpleTokenizer`, `RawTokenizer`,
  `NgramTokenizer`), the filters (`LowerCaser`, `Stemmer`) and `TextAnalyzer`.

Every error is a subclass of `wakeru.errors.WakeruError`.

## What it does not do

- It ships no Japanese dictionary or morphological analyzer. You supply the
  analyzer callable.
- It has no command-line tool, server or configuration-file loading.
- Storage is a pair of JSON files per index (`meta.json`, `store.json`). The
  whole index is loaded into memory, and each batch rewrites the store. This
  suits modest collections, not large ones.
- Documents cannot be deleted or updated. A document whose id is already
  indexed is skipped.