from __future__ import annotations

import unicodedata


def normalize(name: str) -> str:
    normalized = unicodedata.normalize("NFKC", name or "").strip().upper()
    return " ".join(normalized.split())


def split_full_name(full_name: str) -> tuple[str, str]:
    """First word is the first name; the remaining words form the last name."""

    parts = (full_name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])
