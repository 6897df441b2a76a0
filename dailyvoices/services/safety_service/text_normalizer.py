"""Text normalization for trigger detection.

Produces a second view of user text with common obfuscation undone, so
that "K1LL", "k.i.l.l" or "ⓚⓘⓛⓛ" reach the detector as "kill". The
detector scans this view in addition to the plain lowercased text.

Japanese text is left in its own script: only width folding, invisible
character stripping and whitespace collapse apply to it.
"""
import logging
import re
import unicodedata
from typing import Dict, FrozenSet, Optional

logger = logging.getLogger(__name__)


# Leetspeak character mappings (numbers/symbols → letters)
LEETSPEAK_MAP: Dict[str, str] = {
    "0": "o",
    "1": "i",
    "3": "e",
    "4": "a",
    "5": "s",
    "7": "t",
    "8": "b",
    "@": "a",
    "$": "s",
    "!": "i",
    "|": "l",
}

# Typographic apostrophes folded to ASCII so "can’t" matches "can't"
APOSTROPHES: FrozenSet[str] = frozenset({
    "\u2018",  # Left single quotation mark
    "\u2019",  # Right single quotation mark
    "\u02bc",  # Modifier letter apostrophe
    "\uff07",  # Fullwidth apostrophe
})

# Characters to strip (zero-width, invisible, separators)
STRIP_CHARS: FrozenSet[str] = frozenset({
    "\u200b",  # Zero-width space
    "\u200c",  # Zero-width non-joiner
    "\u200d",  # Zero-width joiner
    "\ufeff",  # Byte order mark
    "\u00ad",  # Soft hyphen
    "\u2060",  # Word joiner
})

_ASCII_LETTER = re.compile(r"[a-zA-Z]")

# Three or more isolated letters joined by separators: k.i.l.l, k i l l
_LETTER_RUN = re.compile(r"(?<![a-zA-Z])[a-zA-Z](?:[.\-_\s]+[a-zA-Z](?![a-zA-Z])){2,}")
_SEPARATORS = re.compile(r"[.\-_\s]+")


class TextNormalizer:
    """Undoes common evasion techniques before phrase matching.

    Handles:
    - Zero-width and invisible characters
    - Styled Unicode letters (circled, mathematical, fullwidth)
    - Accented Latin letters
    - Leetspeak inside words (K1LL → kill, but "4 pills" stays as is)
    - Separated letters (k.i.l.l, k-i-l-l, k i l l → kill)
    - Typographic apostrophes and runs of whitespace
    """

    def __init__(self):
        self._token_pattern = re.compile(r"\S+")

        logger.debug(
            "TEXT_NORMALIZER_INITIALIZED",
            extra={"leetspeak_mappings": len(LEETSPEAK_MAP)}
        )

    def normalize(self, text: Optional[str]) -> str:
        """Return the evasion-normalized, lowercased form of text.

        Steps, in order: strip invisible characters, fold Unicode to its
        compatibility form, fold apostrophes, convert leetspeak inside
        words, remove separators between single letters, collapse
        whitespace, lowercase.
        """
        if not text:
            return ""

        result = "".join(c for c in text if c not in STRIP_CHARS)
        result = self._fold_unicode(result)
        result = "".join("'" if c in APOSTROPHES else c for c in result)
        result = self._token_pattern.sub(self._convert_leetspeak, result)
        result = self._remove_letter_separators(result)
        result = " ".join(result.split())
        return result.lower()

    def _fold_unicode(self, text: str) -> str:
        """NFKC-fold text, then drop accents from Latin letters only.

        NFKC maps circled, mathematical and fullwidth letters to ASCII and
        halfwidth katakana to fullwidth. Accent stripping is limited to
        characters whose base is ASCII so kana voicing marks survive.
        """
        folded = []
        for char in unicodedata.normalize("NFKC", text):
            decomposed = unicodedata.normalize("NFKD", char)
            if decomposed and ord(decomposed[0]) < 128:
                folded.append(
                    "".join(c for c in decomposed if ord(c) < 128)
                )
            else:
                folded.append(char)
        return "".join(folded)

    def _convert_leetspeak(self, match: "re.Match") -> str:
        token = match.group(0)
        if not _ASCII_LETTER.search(token):
            return token
        return "".join(LEETSPEAK_MAP.get(c, c) for c in token)

    def _remove_letter_separators(self, text: str) -> str:
        """Join single letters split by punctuation or spaces (k.i.l.l → kill).

        Runs of two letters are left alone so "I a" style text is untouched.
        """
        return _LETTER_RUN.sub(lambda m: _SEPARATORS.sub("", m.group(0)), text)


_normalizer: Optional[TextNormalizer] = None


def get_normalizer() -> TextNormalizer:
    """Get the shared TextNormalizer instance."""
    global _normalizer
    if _normalizer is None:
        _normalizer = TextNormalizer()
    return _normalizer


def normalize_text(text: Optional[str]) -> str:
    """Convenience function to normalize text."""
    return get_normalizer().normalize(text)
