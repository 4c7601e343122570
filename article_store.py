"""
article_store.py — JSON array persistence for generated articles.

The whole store is rewritten after every committed article so an interrupted
run loses at most the article in flight.
"""

import json
import logging
import os
import re
from pathlib import Path

from config import ARTICLES_PATH

log = logging.getLogger("article_store")


class ArticleStoreError(Exception):
    """The article store exists but cannot be read as a JSON array."""


def create_slug(text: str = "") -> str:
    """Build a URL-safe slug: lower-case, spaces to hyphens, other symbols dropped."""
    slug = re.sub(r"\s+", "-", (text or "").strip().lower())
    return re.sub(r"[^\w-]+", "", slug)


def load_articles(path: Path = ARTICLES_PATH) -> list[dict]:
    """Load the article array. Only a missing file is an empty store.

    Raises ArticleStoreError when the file is unreadable, corrupt or not a
    JSON array, so nothing gets written over existing articles.
    """
    if not path.exists():
        return []
    try:
        with open(path, "r", encoding="utf-8") as f:
            articles = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ArticleStoreError(f"Could not read {path}: {e}") from e
    if not isinstance(articles, list):
        raise ArticleStoreError(f"{path} does not hold a JSON array")
    return articles


def save_articles(articles: list[dict], path: Path = ARTICLES_PATH):
    """Write the full article array, replacing the previous file atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(articles, f, indent=2, ensure_ascii=False)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, path)


def append_article(articles: list[dict], article: dict, path: Path = ARTICLES_PATH):
    """Append an article to the working set and flush the store to disk."""
    articles.append(article)
    save_articles(articles, path)
    log.info(f"Saved: {article.get('slug', '')} ({len(articles)} articles in store)")


def article_routes(articles: list[dict]) -> list[str]:
    """Return the per-article routes used by the prerender step."""
    return [f"/{a['slug']}" for a in articles if a.get("slug")]
