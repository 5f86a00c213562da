"""Text analysis: tokenizers, token filters and query tokenization."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field, replace
from itertools import accumulate
from typing import Protocol


@dataclass(frozen=True)
class Token:
    """A token with UTF-8 byte offsets into the analysed text."""

    text: str
    offset_from: int = 0
    offset_to: int = 0
    position: int = 0
    position_length: int = 1


class TokenSource(Protocol):
    def tokens(self, text: str) -> Iterable[Token]: ...


TokenFilter = Callable[[Iterable[Token]], Iterable[Token]]


def _byte_offsets(text: str) -> list[int]:
    """Byte offset of every character boundary, including the end."""
    return list(accumulate((len(ch.encode("utf-8")) for ch in text), initial=0))


_WORD = re.compile(r"[^\W_]+")


class SimpleTokenizer:
    """Splits text into runs of alphanumeric characters."""

    def tokens(self, text: str) -> Iterator[Token]:
        offsets = _byte_offsets(text)
        for position, match in enumerate(_WORD.finditer(text)):
            yield Token(match.group(), offsets[match.start()], offsets[match.end()], position)


class RawTokenizer:
    """Emits the whole text as a single token."""

    def tokens(self, text: str) -> Iterator[Token]:
        yield Token(text, 0, len(text.encode("utf-8")), 0)


class NgramTokenizer:
    """Emits every character n-gram of length ``min_gram`` to ``max_gram``."""

    def __init__(self, min_gram: int, max_gram: int, prefix_only: bool = False) -> None:
        if min_gram < 1:
            raise ValueError("min_gram must be at least 1")
        if max_gram < min_gram:
            raise ValueError("max_gram must not be smaller than min_gram")
        self.min_gram = min_gram
        self.max_gram = max_gram
        self.prefix_only = prefix_only

    def tokens(self, text: str) -> Iterator[Token]:
        offsets = _byte_offsets(text)
        starts = range(1) if self.prefix_only else range(len(text))
        position = 0
        for start in starts:
            for length in range(self.min_gram, self.max_gram + 1):
                end = start + length
                if end > len(text):
                    break
                yield Token(text[start:end], offsets[start], offsets[end], position)
                position += 1


class LowerCaser:
    """Token filter that lower-cases token text."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            yield replace(token, text=token.text.lower())


_VOWELS = frozenset("aeiouy")
_DOUBLES = ("bb", "dd", "ff", "gg", "mm", "nn", "pp", "rr", "tt")
_LI_ENDINGS = frozenset("cdeghkmnrt")
_VOWEL_CONSONANT = re.compile(r"[aeiouy][^aeiouy]")
_Y_AFTER_VOWEL = re.compile(r"([aeiouy])y")
_HAS_VOWEL = re.compile(r"[aeiouy]")

_EXCEPTIONS = {
    "skis": "ski",
    "skies": "sky",
    "dying": "die",
    "lying": "lie",
    "tying": "tie",
    "idly": "idl",
    "gently": "gentl",
    "ugly": "ugli",
    "early": "earli",
    "only": "onli",
    "singly": "singl",
    "sky": "sky",
    "news": "news",
    "howe": "howe",
    "atlas": "atlas",
    "cosmos": "cosmos",
    "bias": "bias",
    "andes": "andes",
}
_INVARIANT_AFTER_1A = frozenset(
    {"inning", "outing", "canning", "herring", "earring", "proceed", "exceed", "succeed"}
)

_STEP1B = ("eedly", "ingly", "edly", "eed", "ing", "ed")
_STEP2 = {
    "tional": "tion",
    "enci": "ence",
    "anci": "ance",
    "abli": "able",
    "entli": "ent",
    "izer": "ize",
    "ization": "ize",
    "ational": "ate",
    "ation": "ate",
    "ator": "ate",
    "alism": "al",
    "aliti": "al",
    "alli": "al",
    "fulness": "ful",
    "ousli": "ous",
    "ousness": "ous",
    "iveness": "ive",
    "iviti": "ive",
    "biliti": "ble",
    "bli": "ble",
    "ogi": "og",
    "fulli": "ful",
    "lessli": "less",
    "li": "",
}
_STEP3 = {
    "tional": "tion",
    "ational": "ate",
    "alize": "al",
    "icate": "ic",
    "iciti": "ic",
    "ical": "ic",
    "ful": "",
    "ness": "",
    "ative": "",
}
_STEP4 = (
    "al", "ance", "ence", "er", "ic", "able", "ible", "ant", "ement",
    "ment", "ent", "ism", "ate", "iti", "ous", "ive", "ize", "ion",
)


def _by_length(suffixes: Iterable[str]) -> tuple[str, ...]:
    return tuple(sorted(suffixes, key=len, reverse=True))


_STEP2_ORDER = _by_length(_STEP2)
_STEP3_ORDER = _by_length(_STEP3)
_STEP4_ORDER = _by_length(_STEP4)


def _longest_suffix(word: str, suffixes: tuple[str, ...]) -> str | None:
    return next((suffix for suffix in suffixes if word.endswith(suffix)), None)


def _region_after(word: str, start: int) -> int:
    match = _VOWEL_CONSONANT.search(word, start)
    return match.end() if match else len(word)


def _regions(word: str) -> tuple[int, int]:
    r1 = next(
        (len(p) for p in ("gener", "commun", "arsen") if word.startswith(p)),
        None,
    )
    if r1 is None:
        r1 = _region_after(word, 0)
    return r1, _region_after(word, r1)


def _ends_short_syllable(word: str) -> bool:
    if len(word) == 2:
        return word[0] in _VOWELS and word[1] not in _VOWELS
    return (
        len(word) >= 3
        and word[-3] not in _VOWELS
        and word[-2] in _VOWELS
        and word[-1] not in _VOWELS
        and word[-1] not in "wxY"
    )


class Stemmer:
    """English (Porter2) stemmer, usable as a token filter."""

    def stem(self, word: str) -> str:
        """Stem one lower-case English word."""
        if word in _EXCEPTIONS:
            return _EXCEPTIONS[word]
        if len(word) <= 2:
            return word
        if word.startswith("'"):
            word = word[1:]
        if word.startswith("y"):
            word = "Y" + word[1:]
        word = _Y_AFTER_VOWEL.sub(r"\1Y", word)
        r1, r2 = _regions(word)

        word = self._step0(word)
        word = self._step1a(word)
        if word in _INVARIANT_AFTER_1A:
            return word
        word = self._step1b(word, r1)
        word = self._step1c(word)
        word = self._step2(word, r1)
        word = self._step3(word, r1, r2)
        word = self._step4(word, r2)
        word = self._step5(word, r1, r2)
        return word.replace("Y", "y")

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            yield replace(token, text=self.stem(token.text))

    @staticmethod
    def _step0(word: str) -> str:
        suffix = _longest_suffix(word, ("'s'", "'s", "'"))
        return word[: -len(suffix)] if suffix else word

    @staticmethod
    def _step1a(word: str) -> str:
        if word.endswith("sses"):
            return word[:-2]
        if word.endswith(("ied", "ies")):
            return word[:-3] + ("i" if len(word) > 4 else "ie")
        if word.endswith(("us", "ss")):
            return word
        if word.endswith("s") and _HAS_VOWEL.search(word[:-2]):
            return word[:-1]
        return word

    @staticmethod
    def _step1b(word: str, r1: int) -> str:
        suffix = _longest_suffix(word, _STEP1B)
        if suffix is None:
            return word
        base = word[: -len(suffix)]
        if suffix in ("eed", "eedly"):
            return base + "ee" if len(base) >= r1 else word
        if not _HAS_VOWEL.search(base):
            return word
        if base.endswith(("at", "bl", "iz")):
            return base + "e"
        if base.endswith(_DOUBLES):
            return base[:-1]
        if _ends_short_syllable(base) and r1 >= len(base):
            return base + "e"
        return base

    @staticmethod
    def _step1c(word: str) -> str:
        if len(word) > 2 and word[-1] in "yY" and word[-2] not in _VOWELS:
            return word[:-1] + "i"
        return word

    @staticmethod
    def _step2(word: str, r1: int) -> str:
        suffix = _longest_suffix(word, _STEP2_ORDER)
        if suffix is None:
            return word
        base = word[: -len(suffix)]
        if len(base) < r1:
            return word
        if suffix == "ogi" and not base.endswith("l"):
            return word
        if suffix == "li" and (not base or base[-1] not in _LI_ENDINGS):
            return word
        return base + _STEP2[suffix]

    @staticmethod
    def _step3(word: str, r1: int, r2: int) -> str:
        suffix = _longest_suffix(word, _STEP3_ORDER)
        if suffix is None:
            return word
        base = word[: -len(suffix)]
        if len(base) < r1 or (suffix == "ative" and len(base) < r2):
            return word
        return base + _STEP3[suffix]

    @staticmethod
    def _step4(word: str, r2: int) -> str:
        suffix = _longest_suffix(word, _STEP4_ORDER)
        if suffix is None:
            return word
        base = word[: -len(suffix)]
        if len(base) < r2:
            return word
        if suffix == "ion" and not base.endswith(("s", "t")):
            return word
        return base

    @staticmethod
    def _step5(word: str, r1: int, r2: int) -> str:
        if word.endswith("e"):
            base = word[:-1]
            if len(base) >= r2 or (len(base) >= r1 and not _ends_short_syllable(base)):
                return base
        elif word.endswith("l"):
            base = word[:-1]
            if len(base) >= r2 and base.endswith("l"):
                return base
        return word


class TextAnalyzer:
    """A tokenizer followed by a chain of token filters."""

    def __init__(self, tokenizer: TokenSource, *filters: TokenFilter) -> None:
        self.tokenizer = tokenizer
        self.filters = filters

    def tokens(self, text: str) -> Iterator[Token]:
        stream: Iterable[Token] = self.tokenizer.tokens(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        yield from stream


def english_analyzer() -> TextAnalyzer:
    """Alphanumeric splitting, lower-casing and English stemming."""
    return TextAnalyzer(SimpleTokenizer(), LowerCaser(), Stemmer())


@dataclass
class TokenizationResult:
    """Unique query terms as ``(field, text)`` pairs, and their texts."""

    terms: list[tuple[int, str]] = field(default_factory=list)
    query_tokens: list[str] = field(default_factory=list)


def tokenize_from_stream(tokens: Iterable[Token], field: int) -> TokenizationResult:
    """Collect non-empty tokens once each, in order of first appearance."""
    result = TokenizationResult()
    seen: set[str] = set()
    for token in tokens:
        if not token.text or token.text in seen:
            continue
        seen.add(token.text)
        result.query_tokens.append(token.text)
        result.terms.append((field, token.text))
    return result


def tokenize_with_tokenizer(tokenizer: TokenSource, field: int, query_str: str) -> TokenizationResult:
    """Tokenize ``query_str`` and collect its unique terms for ``field``."""
    return tokenize_from_stream(tokenizer.tokens(query_str), field)