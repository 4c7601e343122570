"""Tests for keyword_ledger module."""

import json

from keyword_ledger import (
    is_unchanged, keywords_hash, known_keywords, load_cache, load_keywords,
    mark_generated, normalize_keyword, parse_keywords, pending_keywords, save_cache,
)


class TestParseKeywords:
    def test_trims_and_drops_blank_lines(self) -> None:
        assert parse_keywords("  best laptops \n\n\ncoffee grinders\r\n   \n") == [
            "best laptops", "coffee grinders",
        ]

    def test_missing_file_is_empty(self, tmp_path) -> None:
        assert load_keywords(tmp_path / "nope.txt") == []

    def test_normalize(self) -> None:
        assert normalize_keyword("  Best Laptops ") == "best laptops"


class TestPendingKeywords:
    def test_subtracts_known_case_insensitively(self) -> None:
        keywords = ["Best Laptops", "coffee grinders", "Solar Panels"]
        known = {"best laptops", "solar panels"}
        assert pending_keywords(keywords, known) == ["coffee grinders"]

    def test_preserves_file_order_and_original_text(self) -> None:
        keywords = ["Zebra Facts", "apple pie", "Mango"]
        assert pending_keywords(keywords, set()) == ["Zebra Facts", "apple pie", "Mango"]

    def test_collapses_duplicates(self) -> None:
        keywords = ["Mango", " mango ", "MANGO", "kiwi"]
        assert pending_keywords(keywords, set()) == ["Mango", "kiwi"]

    def test_is_idempotent(self) -> None:
        keywords = ["a", "B", "c"]
        known = {"b"}
        first = pending_keywords(keywords, known)
        assert pending_keywords(keywords, known) == first
        assert pending_keywords(first, known) == first

    def test_known_does_not_mutate(self) -> None:
        known = {"a"}
        pending_keywords(["a", "b"], known)
        assert known == {"a"}


class TestKnownKeywords:
    def test_unions_store_cache_and_extra(self) -> None:
        articles = [{"keyword": "Best Laptops", "slug": "best-laptops"}]
        cache = {"generatedKeywords": ["coffee grinders"], "lastHash": ""}
        known = known_keywords(articles, cache, ["Solar Panels"])
        assert known == {"best laptops", "coffee grinders", "solar panels"}

    def test_articles_without_keyword_are_ignored(self) -> None:
        articles = [{"slug": "legacy-post", "term": "Legacy Post"}]
        assert known_keywords(articles, {"generatedKeywords": []}) == set()


class TestCache:
    def test_missing_cache_is_first_run(self, tmp_path) -> None:
        assert load_cache(tmp_path / "cache.json") == {"generatedKeywords": [], "lastHash": ""}

    def test_corrupt_cache_is_first_run(self, tmp_path) -> None:
        path = tmp_path / "cache.json"
        path.write_text("{not json")
        assert load_cache(path) == {"generatedKeywords": [], "lastHash": ""}

    def test_save_and_load(self, tmp_path) -> None:
        path = tmp_path / "cache.json"
        save_cache({"generatedKeywords": ["mango"], "lastHash": "abc"}, path)
        assert load_cache(path) == {"generatedKeywords": ["mango"], "lastHash": "abc"}
        assert json.loads(path.read_text())["lastHash"] == "abc"

    def test_mark_generated_lowercases_without_duplicates(self) -> None:
        cache = {"generatedKeywords": ["mango"], "lastHash": ""}
        mark_generated(cache, ["Mango", "Kiwi ", "kiwi"])
        assert cache["generatedKeywords"] == ["mango", "kiwi"]


class TestUnchangedShortcut:
    def test_matching_hash(self) -> None:
        text = "a\nb\n"
        assert is_unchanged(text, {"lastHash": keywords_hash(text)})

    def test_changed_text(self) -> None:
        assert not is_unchanged("a\nb\nc\n", {"lastHash": keywords_hash("a\nb\n")})

    def test_no_previous_hash(self) -> None:
        assert not is_unchanged("", {"lastHash": ""})

    def test_hash_is_deterministic(self) -> None:
        assert keywords_hash("a\nb") == keywords_hash("a\nb")
        assert keywords_hash("a\nb") != keywords_hash("a\nb\n")
