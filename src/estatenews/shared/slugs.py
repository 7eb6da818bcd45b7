"""URL slug normalisation."""

from __future__ import annotations

import re
import unicodedata

_DANISH = str.maketrans({"æ": "ae", "ø": "oe", "å": "aa"})
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """Lowercase, transliterate Danish letters, strip accents, hyphenate.

    >>> slugify("Ny ejendomshandel på Østerbro")
    'ny-ejendomshandel-paa-oesterbro'
    """
    lowered = text.lower().translate(_DANISH)
    decomposed = unicodedata.normalize("NFKD", lowered)
    ascii_only = decomposed.encode("ascii", "ignore").decode("ascii")
    return _NON_ALNUM.sub("-", ascii_only).strip("-")
