"""Text normalisation helpers shared by indexing and search."""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any

HIDDEN_ID_PATTERN = re.compile(r"\[ID:[^\]]+\]\s*")
ELLIPSIS = "…"


def hidden_id_token(participant_id: Any) -> str:
    return f"[ID:{participant_id}]"


def collapse_whitespace(text: str) -> str:
    """Collapse consecutive whitespace characters into single spaces."""

    if not text:
        return ""
    return " ".join(text.split())


def strip_hidden_id(text: str) -> str:
    return HIDDEN_ID_PATTERN.sub("", text or "")


def has_indexable_content(text: str | None) -> bool:
    """Return True when *text* carries more than the hidden id line."""

    if not text:
        return False
    return bool(strip_hidden_id(text).strip())


def sanitize_snippet(snippet: str) -> str:
    return collapse_whitespace(strip_hidden_id(snippet)).strip()


def truncate_snippet(snippet: str, max_length: int = 320) -> str:
    if len(snippet) <= max_length:
        return snippet
    return snippet[: max_length - 1] + ELLIPSIS


def content_hash(text: str, metadata: dict[str, Any] | None = None) -> str:
    payload = {"text": text, "metadata": metadata or {}}
    blob = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")
    return hashlib.sha256(blob).hexdigest()


def strip_code_fences(text: str) -> str:
    """Remove a leading ```/```json fence and the trailing fence from LLM output."""

    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```(?:json)?\s*\n?", "", cleaned)
        cleaned = re.sub(r"\n?```\s*$", "", cleaned)
    return cleaned.strip()
