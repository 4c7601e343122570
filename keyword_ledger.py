"""
keyword_ledger.py — Track which keywords already have generated content.

A keyword counts as done when the article store holds an article for it or
the generate cache lists it. Keywords are compared on their trimmed,
lower-cased text.
"""

import hashlib
import json
import logging
from pathlib import Path
from typing import Iterable

from config import CACHE_PATH

log = logging.getLogger("keyword_ledger")


def normalize_keyword(keyword: str) -> str:
    return keyword.strip().lower()


def read_keyword_file(path: Path) -> str:
    """Return the raw keyword file contents, or '' when the file is missing."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError:
        log.warning(f"Keyword file not found: {path}")
        return ""


def parse_keywords(text: str) -> list[str]:
    """Split keyword file contents into trimmed, non-empty keywords."""
    return [line.strip() for line in text.splitlines() if line.strip()]


def load_keywords(path: Path) -> list[str]:
    return parse_keywords(read_keyword_file(path))


def keywords_hash(text: str) -> str:
    """Checksum of the keyword file contents, used to skip unchanged runs."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def empty_cache() -> dict:
    return {"generatedKeywords": [], "lastHash": ""}


def load_cache(path: Path = CACHE_PATH) -> dict:
    """Load the generate cache. Missing or corrupt files mean a first run."""
    if not path.exists():
        return empty_cache()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        log.warning(f"Ignoring unreadable cache {path.name}: {e}")
        return empty_cache()
    if not isinstance(data, dict):
        return empty_cache()
    return {
        "generatedKeywords": list(data.get("generatedKeywords", [])),
        "lastHash": data.get("lastHash", "") or "",
    }


def save_cache(cache: dict, path: Path = CACHE_PATH):
    """Save the generate cache."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(cache, f, indent=2, ensure_ascii=False)


def known_keywords(articles: list[dict], cache: dict,
                   extra: Iterable[str] = ()) -> set[str]:
    """Normalized keywords that already have content.

    Articles without a 'keyword' field cannot be matched and are ignored.
    """
    known = {normalize_keyword(k) for k in cache.get("generatedKeywords", [])}
    known.update(
        normalize_keyword(a["keyword"]) for a in articles
        if isinstance(a.get("keyword"), str)
    )
    known.update(normalize_keyword(k) for k in extra)
    return known


def pending_keywords(keywords: list[str], known: set[str]) -> list[str]:
    """Keywords without content, in file order, duplicates collapsed."""
    pending = []
    seen = set(known)
    for keyword in keywords:
        key = normalize_keyword(keyword)
        if not key or key in seen:
            continue
        seen.add(key)
        pending.append(keyword.strip())
    return pending


def mark_generated(cache: dict, keywords: Iterable[str]):
    """Add keywords to the cache's generatedKeywords list."""
    generated = cache.setdefault("generatedKeywords", [])
    existing = set(generated)
    for keyword in keywords:
        key = normalize_keyword(keyword)
        if key not in existing:
            generated.append(key)
            existing.add(key)


def is_unchanged(keyword_text: str, cache: dict) -> bool:
    """True when the keyword file matches the last fully processed one."""
    last_hash = cache.get("lastHash", "")
    return bool(last_hash) and keywords_hash(keyword_text) == last_hash
