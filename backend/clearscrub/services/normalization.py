"""Canonical comparison keys for entity resolution.

Extraction output varies in formatting ("ABC Corp." vs "ABC CORPORATION"); these
keys turn identity into plain equality so resolution stays deterministic.
"""

from __future__ import annotations

import hashlib
import re

_NOISE_CHARS = re.compile(r"[.,/#!$%^&*;:{}=\-_`~()]")
_WHITESPACE = re.compile(r"\s+")
# L.L.C loses its dots to the noise filter before this runs, hence LLC covers it;
# the dotted form stays listed for inputs that reach here unfiltered.
_LEGAL_SUFFIXES = re.compile(r"\b(INC|LLC|CORP|CO|LTD|CORPORATION|L\.L\.C|PLLC)\b")
_NON_DIGITS = re.compile(r"[^0-9]")


def normalize_company_name(name: str | None) -> str:
    if not name:
        return ""
    s = str(name).upper()
    s = _NOISE_CHARS.sub("", s)
    s = _WHITESPACE.sub(" ", s)
    s = _LEGAL_SUFFIXES.sub("", s)
    return _WHITESPACE.sub(" ", s).strip()


def normalize_account_number(value: str | int | None) -> str:
    if value is None:
        return ""
    return _NON_DIGITS.sub("", str(value))


def hash_account_number(value: str | int | None) -> str:
    """SHA-256 hex digest of the digits-only account number."""

    return hashlib.sha256(normalize_account_number(value).encode("utf-8")).hexdigest()


def mask_account_number(value: str | int | None) -> str:
    return f"****{normalize_account_number(value)[-4:]}"
