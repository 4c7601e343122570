"""Tests for article_store module."""

import json

import pytest

from article_store import (
    ArticleStoreError, append_article, article_routes, create_slug, load_articles,
    save_articles,
)


def sample_article(n: int) -> dict:
    return {
        "keyword": f"keyword {n}",
        "term": f"Title {n}",
        "slug": f"keyword-{n}",
        "date": "2026-03-01",
        "category": "Technology",
        "categorySlug": "technology",
        "tags": ["a", "b"],
        "isPopular": n % 2 == 0,
        "summary": "Résumé with “quotes”",
        "deepDive": "## Deep\nText",
        "importance": "## Why\nText",
        "prosCons": [{"pro": "x", "con": "y"}],
        "faq": [{"question": "q?", "answer": "a"}],
        "imageUrl": None,
    }


class TestLoadSave:
    def test_round_trip_keeps_every_field(self, tmp_path) -> None:
        path = tmp_path / "public" / "articles.json"
        articles = [sample_article(n) for n in range(5)]

        save_articles(articles, path)

        assert load_articles(path) == articles

    def test_missing_file_is_empty_store(self, tmp_path) -> None:
        assert load_articles(tmp_path / "articles.json") == []

    def test_corrupt_file_raises(self, tmp_path) -> None:
        path = tmp_path / "articles.json"
        path.write_text("[{broken")
        with pytest.raises(ArticleStoreError):
            load_articles(path)
        assert path.read_text() == "[{broken"

    def test_non_array_raises(self, tmp_path) -> None:
        path = tmp_path / "articles.json"
        path.write_text(json.dumps({"slug": "x"}))
        with pytest.raises(ArticleStoreError):
            load_articles(path)

    def test_save_leaves_no_temp_file(self, tmp_path) -> None:
        path = tmp_path / "articles.json"
        save_articles([sample_article(1)], path)
        assert [p.name for p in tmp_path.iterdir()] == ["articles.json"]

    def test_writes_unicode_unescaped(self, tmp_path) -> None:
        path = tmp_path / "articles.json"
        save_articles([sample_article(1)], path)
        assert "Résumé" in path.read_text(encoding="utf-8")


class TestAppendArticle:
    def test_flushes_after_each_append(self, tmp_path) -> None:
        path = tmp_path / "articles.json"
        articles = []

        append_article(articles, sample_article(1), path)
        assert len(load_articles(path)) == 1

        append_article(articles, sample_article(2), path)
        assert [a["slug"] for a in load_articles(path)] == ["keyword-1", "keyword-2"]


class TestSlugs:
    def test_create_slug(self) -> None:
        assert create_slug("Best Laptops 2026") == "best-laptops-2026"

    def test_create_slug_drops_symbols(self) -> None:
        assert create_slug("  What's new in C++?  ") == "whats-new-in-c"

    def test_create_slug_empty(self) -> None:
        assert create_slug("") == ""

    def test_article_routes(self) -> None:
        articles = [{"slug": "a"}, {"slug": ""}, {"term": "no slug"}, {"slug": "b"}]
        assert article_routes(articles) == ["/a", "/b"]
