from collections.abc import Iterator

import pytest

from wakeru.errors import (
    IndexerError,
    InvalidIndexPathError,
    LanguageSchemaMismatchError,
    MissingJapaneseTokenizerError,
)
from wakeru.index_manager import Index, IndexManager
from wakeru.models import Document
from wakeru.schema import Language, build_schema
from wakeru.tokenizer import JapaneseTokenizer, Morpheme

_LEXICON = {
    "東京": "名詞,固有名詞,地域,一般,*,*,東京,トウキョウ,トーキョー",
    "大阪": "名詞,固有名詞,地域,一般,*,*,大阪,オオサカ,オーサカ",
    "西日本": "名詞,固有名詞,地域,一般,*,*,西日本,ニシニホン,ニシニホン",
    "日本": "名詞,固有名詞,地域,国,*,*,日本,ニッポン,ニッポン",
    "首都": "名詞,一般,*,*,*,*,首都,シュト,シュト",
    "中心": "名詞,一般,*,*,*,*,中心,チュウシン,チューシン",
    "都市": "名詞,一般,*,*,*,*,都市,トシ,トシ",
    "は": "助詞,係助詞,*,*,*,*,は,ハ,ワ",
    "の": "助詞,連体化,*,*,*,*,の,ノ,ノ",
    "です": "助動詞,*,*,*,特殊・デス,基本形,です,デス,デス",
}


def _analyze(text: str) -> Iterator[Morpheme]:
    pos = 0
    byte = 0
    while pos < len(text):
        word = next(
            (text[pos : pos + n] for n in (3, 2, 1) if text[pos : pos + n] in _LEXICON),
            text[pos],
        )
        size = len(word.encode("utf-8"))
        yield Morpheme(word, _LEXICON.get(word, "記号,一般,*,*,*,*"), byte, byte + size)
        pos += len(word)
        byte += size


@pytest.fixture
def english(tmp_path):
    with IndexManager.open_or_create(tmp_path, Language.EN, None) as manager:
        yield manager


@pytest.fixture
def japanese(tmp_path):
    manager = IndexManager.open_or_create(tmp_path, Language.JA, JapaneseTokenizer(_analyze))
    yield manager
    manager.close()


def test_open_or_create_japanese_and_add_documents(japanese):
    assert japanese.language is Language.JA
    assert japanese.fields.text_ngram is not None
    docs = [
        Document("1", "src-1", "東京は日本の首都です").with_tag("category:geo"),
        Document("2", "src-1", "大阪は西日本の中心都市です")
        .with_tag("category:geo")
        .with_tag("region:kansai"),
    ]
    report = japanese.add_documents(docs)
    assert report.added == 2
    assert report.skipped_duplicates == 0


def test_japanese_postings_filter_particles_and_fill_ngrams(japanese):
    japanese.add_documents([Document("1", "src-1", "東京は日本の首都です")])
    index = japanese.index
    assert set(index.postings(japanese.fields.text, "首都")) == {0}
    assert index.doc_freq(japanese.fields.text, "は") == 0
    assert index.doc_freq(japanese.fields.text_ngram, "首") == 1
    assert index.doc_freq(japanese.fields.text_ngram, "は") == 1


def test_open_or_create_english_and_add_documents(english):
    assert english.language is Language.EN
    assert english.fields.text_ngram is None
    docs = [
        Document("1", "src-1", "Tokyo is the capital of Japan").with_tag("category:geo"),
        Document("2", "src-1", "Osaka is a major city in western Japan")
        .with_tag("category:geo")
        .with_tag("region:kansai"),
    ]
    report = english.add_documents(docs)
    assert report.added == 2
    assert report.skipped_duplicates == 0
    assert report.total == 2


def test_missing_japanese_tokenizer_error(tmp_path):
    with pytest.raises(MissingJapaneseTokenizerError):
        IndexManager.open_or_create(tmp_path, Language.JA, None)


def test_duplicate_documents_are_skipped_japanese(japanese):
    report1 = japanese.add_documents([Document("1", "src-1", "東京は日本の首都です")])
    assert (report1.added, report1.skipped_duplicates) == (1, 0)
    report2 = japanese.add_documents([Document("1", "src-1", "大阪は西日本の中心都市です")])
    assert (report2.added, report2.skipped_duplicates) == (0, 1)


def test_duplicate_documents_are_skipped_english(english):
    report1 = english.add_documents([Document("1", "src-1", "Tokyo is the capital of Japan")])
    assert (report1.added, report1.skipped_duplicates) == (1, 0)
    report2 = english.add_documents([Document("1", "src-1", "Osaka is a major city")])
    assert (report2.added, report2.skipped_duplicates) == (0, 1)
    assert english.index.num_docs() == 1


def test_duplicates_within_one_batch_are_skipped(english):
    report = english.add_documents(
        [Document("1", "src-1", "first"), Document("1", "src-1", "second")]
    )
    assert (report.total, report.added, report.skipped_duplicates) == (2, 1, 1)
    assert not report.is_all_added()


def test_english_terms_are_lowercased_and_stemmed(english):
    english.add_documents([Document("1", "src-1", "Tokyo RUNNING")])
    assert english.index.postings(english.fields.text, "tokyo") == {0: (0,)}
    assert english.index.postings(english.fields.text, "run") == {0: (1,)}
    analyzer = english.index.tokenizer("lang_en")
    assert [t.text for t in analyzer.tokens("Running")] == ["run"]
    assert english.index.tokenizer("missing") is None


def test_field_lengths(english):
    english.add_documents(
        [
            Document("1", "src-1", "Tokyo is the capital of Japan"),
            Document("2", "src-1", "Osaka is a major city"),
        ]
    )
    text = english.fields.text
    assert english.index.field_length(text, 0) == 6
    assert english.index.field_length(text, 1) == 5
    assert english.index.average_field_length(text) == 5.5
    with pytest.raises(IndexError):
        english.index.field_length(text, 2)


def test_metadata_is_stored_and_indexed(english):
    english.add_documents(
        [Document("1", "src-1", "Tokyo").with_metadata("author", "alice").with_tag("category:geo")]
    )
    stored = english.index.stored_document(0)
    assert stored.values[english.fields.metadata] == {
        "author": "alice",
        "tags": ["category:geo"],
    }
    assert stored.values[english.fields.id] == "1"
    assert english.index.doc_freq(english.fields.metadata, "tags\0category:geo") == 1
    assert english.index.doc_freq(english.fields.id, "1") == 1


def test_document_without_metadata_stores_none(english):
    english.add_documents([Document("1", "src-1", "Tokyo")])
    assert english.fields.metadata not in english.index.stored_document(0).values


def test_unserializable_metadata_is_rejected(english):
    with pytest.raises(IndexerError):
        english.add_documents([Document("1", "src-1", "x").with_metadata("bad", object())])
    assert english.index.num_docs() == 0


def test_index_persists_across_reopen(tmp_path):
    with IndexManager.open_or_create(tmp_path, Language.EN) as manager:
        manager.add_documents(
            [
                Document("1", "src-1", "Tokyo is the capital").with_metadata("version", 1),
                Document("2", "src-2", "Osaka is a city"),
            ]
        )
    with IndexManager.open_or_create(tmp_path, Language.EN) as reopened:
        assert reopened.index.num_docs() == 2
        assert reopened.index.postings(reopened.fields.text, "tokyo") == {0: (0,)}
        stored = reopened.index.stored_document(1)
        assert stored.values[reopened.fields.source_id] == "src-2"
        assert reopened.index.stored_document(0).values[reopened.fields.metadata] == {
            "version": 1
        }
        report = reopened.add_documents([Document("1", "src-1", "again")])
        assert report.skipped_duplicates == 1


def test_language_mismatch_is_detected(tmp_path):
    IndexManager.open_or_create(tmp_path, Language.EN).close()
    with pytest.raises(LanguageSchemaMismatchError) as info:
        IndexManager.open_or_create(tmp_path, Language.JA, JapaneseTokenizer(_analyze))
    assert info.value.expected == "lang_ja"
    assert info.value.actual == "lang_en"


def test_invalid_index_path(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    with pytest.raises(InvalidIndexPathError):
        IndexManager.open_or_create(blocker / "index", Language.EN)


def test_create_in_dir_twice_fails(tmp_path):
    schema, _ = build_schema(Language.EN)
    Index.create_in_dir(tmp_path, schema)
    with pytest.raises(IndexerError):
        Index.create_in_dir(tmp_path, schema)


def test_open_in_dir_without_index_fails(tmp_path):
    with pytest.raises(IndexerError):
        Index.open_in_dir(tmp_path)


def test_index_rejects_unknown_field_and_closed_writes(tmp_path):
    schema, fields = build_schema(Language.EN)
    index = Index.create_in_dir(tmp_path, schema)
    with pytest.raises(IndexerError):
        index.add_documents([{99: "x"}])
    with pytest.raises(IndexerError, match="lang_en"):
        index.add_documents([{fields.text: "hello"}])
    assert index.add_documents([{fields.id: "a"}]) == [0]
    index.close()
    with pytest.raises(IndexerError):
        index.add_documents([{fields.id: "b"}])
    assert index.num_docs() == 1