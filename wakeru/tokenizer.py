"""Japanese tokenizer built on a morphological analyzer, with part-of-speech filtering."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass

from .analysis import Token

logger = logging.getLogger(__name__)

_EXCLUDED_PREFIXES = (
    "助詞",
    "助動詞",
    "記号",
    "フィラー",
    "感動詞",
    "接続詞",
    "接頭詞",
    "連体詞",
)


def should_index(feature: str) -> bool:
    """Whether a morpheme with this feature string is a content word worth indexing.

    Particles, auxiliaries, symbols, fillers, interjections, conjunctions,
    prefixes and adnominals are dropped, as are pronouns and dependent nouns.
    Noun-like suffixes (UniDic), other nouns, verbs, adjectives, adjectival
    nouns and general adverbs are kept.
    """
    if feature.startswith(_EXCLUDED_PREFIXES):
        return False
    if feature.startswith("接尾辞,名詞的"):
        return True
    if feature.startswith("名詞"):
        return not feature.startswith(("名詞,代名詞", "名詞,非自立"))
    if feature.startswith(("動詞", "形容詞", "形状詞")):
        return True
    if feature.startswith("副詞"):
        return feature.startswith("副詞,一般")
    return False


@dataclass(frozen=True)
class Morpheme:
    """One morpheme: surface form, feature string and UTF-8 byte range."""

    surface: str
    feature: str
    start: int
    end: int


Analyzer = Callable[[str], Iterable[Morpheme]]


class JapaneseTokenizer:
    """Tokenizer yielding the indexable morphemes found by ``analyzer``."""

    def __init__(self, analyzer: Analyzer) -> None:
        self.analyzer = analyzer

    def tokens(self, text: str) -> Iterator[Token]:
        logger.debug("morphological analysis started: %s", text)
        morphemes = list(self.analyzer(text))
        kept = []
        for morpheme in morphemes:
            indexed = should_index(morpheme.feature)
            logger.debug(
                "token surface=%s feature=%s start=%d end=%d indexed=%s",
                morpheme.surface,
                morpheme.feature,
                morpheme.start,
                morpheme.end,
                indexed,
            )
            if indexed:
                kept.append(morpheme)
        logger.debug(
            "morphological analysis finished: total=%d indexed=%d", len(morphemes), len(kept)
        )
        for position, morpheme in enumerate(kept):
            yield Token(morpheme.surface, morpheme.start, morpheme.end, position, 1)