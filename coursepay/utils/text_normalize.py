from __future__ import annotations

from typing import Optional

# Normalization for user typed fields (account numbers, transaction refs)
# - Removes zero-width and direction control chars
# - Maps Bengali digits to ASCII
# - Collapses multiple spaces and normalizes NBSP/NNBSP

_REMOVE_CHARS = "\u200c\u200d\u200e\u200f\u202a\u202b\u202c\u202d\u202e\u202f\ufeff\ufe0f"
_SUBS = str.maketrans({"\u00a0": " ", "\u202f": " "})
_BENGALI_DIGITS = str.maketrans("\u09e6\u09e7\u09e8\u09e9\u09ea\u09eb\u09ec\u09ed\u09ee\u09ef", "0123456789")


def normalize_text(value: Optional[str]) -> str:
    if not isinstance(value, str):
        return ""
    t = value.strip().translate(_SUBS)
    t = t.translate(str.maketrans("", "", _REMOVE_CHARS))
    return " ".join(t.split())


def normalize_account(value: Optional[str]) -> str:
    """Canonical form of a mobile account number: ASCII digits, no separators."""
    t = normalize_text(value).translate(_BENGALI_DIGITS)
    return "".join(ch for ch in t if ch not in " -.()")
