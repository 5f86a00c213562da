import pytest

from wakeru.analysis import TextAnalyzer, tokenize_with_tokenizer
from wakeru.tokenizer import JapaneseTokenizer, Morpheme, should_index


@pytest.mark.parametrize(
    "feature",
    [
        "名詞,一般,*,*,*,*,東京,トウキョウ,トーキョー",
        "名詞,固有名詞,地域,一般,*,*,東京,トウキョウ,トーキョー",
        "名詞,サ変接続,*,*,*,*,検索,ケンサク,ケンサク",
        "動詞,自立,*,*,一段,連用形,食べる,タベ,タベ",
        "形容詞,自立,*,*,形容詞・アウオ段,基本形,高い,タカイ,タカイ",
        "接尾辞,名詞的,一般,*,*,*,寺,テラ,寺,テラ,*,*,*,*,*,*",
        "接尾辞,名詞的,一般,*,*,*,駅,エキ,駅,エキ,*,*,*,*,*,*",
        "接尾辞,名詞的,一般,*,*,*,温泉,オンセン,温泉,オンセン,*,*,*,*,*,*",
        "形状詞,一般,*,*,*,*,きれい,キレイ,キレイ,きれい,キレイ,1,C2,*",
        "形状詞,一般,*,*,*,*,静か,シズカ,シズカ,静か,シズカ,0,C2,*",
    ],
)
def test_indexed_features(feature):
    assert should_index(feature) is True


@pytest.mark.parametrize(
    "feature",
    [
        "助詞,格助詞,一般,*,*,*,が,ガ,ガ",
        "記号,句点,*,*,*,*,。,。,。",
        "名詞,代名詞,一般,*,*,*,これ,コレ,コレ",
        "名詞,非自立,一般,*,*,*,こと,コト,コト",
        "接続詞,*,*,*,*,*,しかし,シカシ,シカシ",
        "助動詞,*,*,*,特殊・デス,基本形,です,デス,デス",
        "フィラー,*,*,*,*,*,えー,エー,エー",
        "感動詞,*,*,*,*,*,はい,ハイ,ハイ",
        "接尾辞,動詞的,*,*,*,*,れる,レル,れる,レル",
        "接尾辞,形容詞的,*,*,*,*,しい,シイ,しい,シイ",
        "補助記号,句点,*,*,*,*,*,。,。,*,。,*,記号,*,*,*,*,*,*,補助,*,*,*,*,*,*,*,6880571302400,25",
        "補助記号,読点,*,*,*,*,*,、,、,*,、,*,記号,*,*,*,*,*,*,補助,*,*,*,*,*,*,*,6605693395456,24",
    ],
)
def test_excluded_features(feature):
    assert should_index(feature) is False


def test_adverbs_only_general_kept():
    assert should_index("副詞,一般,*,*,*,*,ゆっくり,ユックリ,ユックリ") is True
    assert should_index("副詞,助詞類接続,*,*,*,*,こう,コウ,コー") is False


_SENTENCE = [
    Morpheme("東京", "名詞,固有名詞,地域,一般,*,*,東京,トウキョウ,トーキョー", 0, 6),
    Morpheme("は", "助詞,係助詞,*,*,*,*,は,ハ,ワ", 6, 9),
    Morpheme("日本", "名詞,固有名詞,地域,国,*,*,日本,ニッポン,ニッポン", 9, 15),
    Morpheme("の", "助詞,連体化,*,*,*,*,の,ノ,ノ", 15, 18),
    Morpheme("首都", "名詞,一般,*,*,*,*,首都,シュト,シュト", 18, 24),
    Morpheme("です", "助動詞,*,*,*,特殊・デス,基本形,です,デス,デス", 24, 30),
]


def _fake_analyzer(text):
    assert text == "東京は日本の首都です"
    return iter(_SENTENCE)


def test_japanese_tokenizer_filters_and_numbers_positions():
    tokens = list(JapaneseTokenizer(_fake_analyzer).tokens("東京は日本の首都です"))
    assert [t.text for t in tokens] == ["東京", "日本", "首都"]
    assert [t.position for t in tokens] == [0, 1, 2]
    assert (tokens[1].offset_from, tokens[1].offset_to) == (9, 15)
    assert all(t.position_length == 1 for t in tokens)


def test_japanese_tokenizer_in_analyzer_and_query_tokenization():
    analyzer = TextAnalyzer(JapaneseTokenizer(_fake_analyzer))
    result = tokenize_with_tokenizer(analyzer, 2, "東京は日本の首都です")
    assert result.query_tokens == ["東京", "日本", "首都"]
    assert result.terms[0] == (2, "東京")


def test_japanese_tokenizer_empty_input():
    tokens = list(JapaneseTokenizer(lambda text: []).tokens(""))
    assert tokens == []