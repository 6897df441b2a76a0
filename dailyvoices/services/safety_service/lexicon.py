"""Trigger lexicons, one per supported language.

Lexicons are built once at import time and never change afterwards.
Lookups fail closed: an unknown language gets the default lexicon, never
an empty one, because an empty lexicon would silently switch detection off.
"""
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Tuple, Union

from dailyvoices.shared.errors import UnsupportedLanguageError
from dailyvoices.shared.models import Language

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = Language.EN

LanguageTag = Union[Language, str, None]


# Phrase order is the order matches are reported in. Keep it stable.
_ENGLISH_PHRASES = (
    # ==========================================================================
    # DIRECT SELF-HARM LANGUAGE
    # ==========================================================================
    "kill",
    "suicide",
    "die",
    "death",
    "harm",
    "hurt",
    "end it",
    "give up",
    "worthless",
    "hopeless",
    "can't go on",
    "want to die",
    "better off dead",
    "self harm",
    "cut myself",

    # ==========================================================================
    # METHODS
    # ==========================================================================
    "overdose",
    "jump",
    "hang",
    "gun",
    "knife",
    "pills",
    "poison",
    "bridge",
    "rope",
    "blade",
    "razor",
    "cutting",

    # ==========================================================================
    # HOPELESSNESS AND SELF-WORTH
    # ==========================================================================
    "no point",
    "pointless",
    "useless",
    "burden",
    "hate myself",
    "kill myself",
    "end my life",
    "take my life",
    "don't want to live",
    "tired of living",
    "can't take it",
    "too much pain",
    "nobody cares",
    "alone forever",
    "never get better",
    "no hope",
    "no future",
    "waste of space",
)

_JAPANESE_PHRASES = (
    # 直接的な表現
    "死にたい",
    "自殺",
    "死ぬ",
    "殺す",
    "害",
    "傷つける",
    "終わりにしたい",
    "あきらめる",
    "価値がない",
    "絶望",
    "続けられない",
    "死にたい",
    "死んだ方がまし",
    "自傷",
    "自分を切る",

    # 手段
    "薬物過剰摂取",
    "飛び降り",
    "首吊り",
    "銃",
    "ナイフ",
    "薬",
    "毒",
    "橋",
    "ロープ",
    "刃",
    "カミソリ",
    "切る",

    # 絶望感・自己評価
    "意味がない",
    "無意味",
    "役に立たない",
    "負担",
    "自分が嫌い",
    "自殺したい",
    "命を終わらせる",
    "命を奪う",
    "生きたくない",
    "生きるのに疲れた",
    "耐えられない",
    "痛みが多すぎる",
    "誰も気にしない",
    "永遠に一人",
    "良くならない",
    "希望がない",
    "未来がない",
    "場所の無駄",
)


@dataclass(frozen=True)
class TriggerLexicon:
    """Ordered, de-duplicated, lowercase trigger phrases for one language."""
    language: Language
    phrases: Tuple[str, ...]

    def __len__(self) -> int:
        return len(self.phrases)

    def __contains__(self, phrase: object) -> bool:
        return isinstance(phrase, str) and phrase.lower() in self.phrases


def build_lexicon(language: Language, phrases: Iterable[str]) -> TriggerLexicon:
    """Lowercase, strip and de-duplicate phrases, keeping first occurrence order.

    Raises:
        ValueError: If no usable phrase remains
    """
    seen = []
    for phrase in phrases:
        normalized = phrase.strip().lower()
        if normalized and normalized not in seen:
            seen.append(normalized)
    if not seen:
        raise ValueError(f"Lexicon for {language.value} must not be empty")
    return TriggerLexicon(language=language, phrases=tuple(seen))


LEXICONS: Mapping[Language, TriggerLexicon] = MappingProxyType({
    Language.EN: build_lexicon(Language.EN, _ENGLISH_PHRASES),
    Language.JA: build_lexicon(Language.JA, _JAPANESE_PHRASES),
})


def parse_language(tag: Union[Language, str]) -> Language:
    """Strict form of resolve_language.

    Raises:
        UnsupportedLanguageError: If the tag names no lexicon
    """
    if isinstance(tag, Language):
        language = tag
    else:
        primary = str(tag).strip().replace("_", "-").split("-")[0].lower()
        try:
            language = Language(primary)
        except ValueError:
            raise UnsupportedLanguageError(f"No lexicon for language tag: {tag}")
    if language not in LEXICONS:
        raise UnsupportedLanguageError(f"No lexicon for language: {language.value}")
    return language


def resolve_language(tag: LanguageTag) -> Language:
    """Map a language tag to a language that has a lexicon.

    Accepts enum members, plain tags ("ja") and locale tags ("en-US",
    "ja_JP"). Anything unrecognised resolves to DEFAULT_LANGUAGE.
    """
    if not tag:
        return DEFAULT_LANGUAGE
    try:
        return parse_language(tag)
    except UnsupportedLanguageError:
        logger.warning(
            "UNSUPPORTED_LANGUAGE_FALLBACK",
            extra={
                "language_tag": str(tag)[:16],
                "fallback_language": DEFAULT_LANGUAGE.value,
            }
        )
        return DEFAULT_LANGUAGE


def get_lexicon(language: LanguageTag = None) -> TriggerLexicon:
    """Return the lexicon for a language, falling back to the default."""
    return LEXICONS[resolve_language(language)]


def get_phrases(language: LanguageTag = None) -> Tuple[str, ...]:
    """Return the trigger phrases for a language, falling back to the default."""
    return get_lexicon(language).phrases


def supported_languages() -> Tuple[Language, ...]:
    return tuple(LEXICONS.keys())
