"""Normalization heuristics shared by the source adapters."""

from __future__ import annotations

import re

from bs4 import BeautifulSoup

from listings.schemas.listings import ListingKind, RemoteMode

_WHITESPACE_RE = re.compile(r"\s+")

LISTING_KIND_PATTERNS: list[tuple[str, ListingKind]] = [
    (r"\b(intern|internship|trainee)\b", "internship"),
    (r"\b(freelance|freelancer)\b", "freelance"),
    (r"\b(contract|contractor|temporary|temp)\b", "contract"),
    (r"\b(part[\s-]?time)\b", "part-time"),
]

REQ_BULLET_RE = re.compile(
    r"(?:^|\n)\s*(?:[-*•]|\d+\.)\s+(.+?)(?=\n\s*(?:[-*•]|\d+\.)\s+|\Z)",
    flags=re.DOTALL,
)


def clean_text(value: str | None) -> str:
    return _WHITESPACE_RE.sub(" ", value or "").strip()


def html_to_text(markup: str | None) -> str:
    """Reduce an HTML snippet to plain text, keeping line breaks for bullet detection."""
    if not markup:
        return ""
    text = BeautifulSoup(markup, "html.parser").get_text("\n")
    lines = [clean_text(line) for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def infer_remote_mode(*texts: str | None) -> RemoteMode:
    blob = " ".join(t for t in texts if t).lower()
    if "hybrid" in blob:
        return "hybrid"
    if re.search(r"\b(remote|work from home|wfh|anywhere)\b", blob):
        return "remote"
    return "on-site"


def infer_listing_kind(title: str | None, default: ListingKind = "full-time") -> ListingKind:
    t = (title or "").lower()
    for pat, kind in LISTING_KIND_PATTERNS:
        if re.search(pat, t):
            return kind
    return default


def extract_requirements(description: str, max_items: int = 12) -> list[str]:
    """Bullet-like lines of a description, used as a naive requirements list."""
    if not description:
        return []

    cleaned = description.replace("\r", "").strip()
    items = [clean_text(m.group(1)) for m in REQ_BULLET_RE.finditer(cleaned)]
    items = [it for it in items if 3 <= len(it) <= 220]

    seen: set[str] = set()
    out: list[str] = []
    for it in items:
        key = it.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(it)
    return out[:max_items]


def truncate(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[:limit].rstrip()
