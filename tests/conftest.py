"""Shared fakes for the generation pipeline tests."""

import datetime
import json
import re

import pytest

from generate_content import GenerationContext


class FakeRotator:
    """Answers pipeline prompts without calling Gemini.

    Keywords listed in fail_on make the strategy call raise; keywords in
    interrupt_on raise KeyboardInterrupt to simulate a killed process.
    """

    def __init__(self, fail_on=(), interrupt_on=(), rewrite_fails=False):
        self.fail_on = {k.lower() for k in fail_on}
        self.interrupt_on = {k.lower() for k in interrupt_on}
        self.rewrite_fails = rewrite_fails
        self.prompts = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if "content strategist" in prompt:
            keyword = re.search(r'Analyze the user keyword: "(.*?)"', prompt).group(1)
            if keyword.lower() in self.interrupt_on:
                raise KeyboardInterrupt
            if keyword.lower() in self.fail_on:
                raise RuntimeError("All 2 API keys failed for this request")
            strategy = {
                "suggestedTitle": f"The Hidden Side of {keyword}",
                "primaryCategory": "Technology",
                "categorySlug": "technology",
                "persona": "A skeptical tech reviewer",
                "uniqueAngle": f"{keyword} seen through the eyes of a skeptic",
                "hookIntro": "You have been told a story.",
            }
            return "Here is the plan:\n```json\n" + json.dumps(strategy) + "\n```"
        if "Creative Brief" in prompt:
            keyword = re.search(r'URL-friendly version of the term "(.*?)"', prompt).group(1)
            date = re.search(r'"date": Must be exactly "(.*?)"', prompt).group(1)
            draft = {
                "slug": keyword.lower().replace(" ", "-"),
                "term": "ignored",
                "date": date,
                "category": "Technology",
                "categorySlug": "technology",
                "tags": ["tech", "review", "guide"],
                "isPopular": True,
                "summary": "You have been told a story. Here is the rest.",
                "deepDive": "## Deep\nOriginal deep dive.",
                "importance": "## Why\nOriginal importance.",
                "prosCons": [{"pro": "Fast", "con": "Pricey"}],
                "faq": [{"question": "Is it good?", "answer": "Mostly."}],
            }
            return json.dumps(draft)
        if "master editor" in prompt:
            if self.rewrite_fails:
                raise RuntimeError("All 2 API keys failed for this request")
            return "## Rewritten\nFresh wording."
        raise AssertionError(f"Unexpected prompt: {prompt[:80]}")


class FakeClock:
    def __init__(self, start: datetime.datetime | None = None):
        self.current = start or datetime.datetime(2026, 3, 1, 12, 0, tzinfo=datetime.timezone.utc)

    def __call__(self) -> datetime.datetime:
        return self.current

    def advance(self, minutes: float):
        self.current += datetime.timedelta(minutes=minutes)


@pytest.fixture
def site(tmp_path):
    """File layout of a site root inside tmp_path."""
    return {
        "keywords": tmp_path / "keyword.txt",
        "batch": tmp_path / "keyword-batch.txt",
        "articles": tmp_path / "public" / "articles.json",
        "cache": tmp_path / ".generate-cache.json",
        "progress": tmp_path / ".batch-progress.json",
    }


@pytest.fixture
def make_context(site):
    def _make(rotator, search_image=None, **overrides) -> GenerationContext:
        params = {
            "rotator": rotator,
            "search_image": search_image,
            "articles_path": site["articles"],
            "cache_path": site["cache"],
            "backdate_days": 3,
            "future_days": 30,
            "api_call_delay": 0,
            "request_delay": 0,
        }
        params.update(overrides)
        return GenerationContext(**params)
    return _make


@pytest.fixture
def clock():
    return FakeClock()
