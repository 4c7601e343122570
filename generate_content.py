"""
generate_content.py — KontenKit keyword-to-article generation pipeline.

For every keyword without an article: designs a content strategy, writes a
draft, rewrites the long-form sections for uniqueness, looks up a cover image,
and commits the article to public/articles.json.

Usage:
    python generate_content.py              # Generate for keyword.txt
    python generate_content.py --batch      # Generate for keyword-batch.txt only
    python generate_content.py --force      # Ignore the unchanged-keywords shortcut
"""

import re
import sys
import json
import math
import time
import logging
import datetime
import argparse
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, Optional

import requests

from config import (
    KEYWORD_PATH, BATCH_KEYWORD_PATH, API_KEY_PATH, PEXELS_API_KEY_PATH,
    PEXELS_API_KEY, PEXELS_SEARCH_URL, PEXELS_TIMEOUT_SECONDS,
    ARTICLES_PATH, CACHE_PATH, PROMPTS_DIR,
    BACKDATE_DAYS, FUTURE_SCHEDULE_DAYS,
    REQUEST_DELAY_SECONDS, API_CALL_DELAY_SECONDS,
)
from article_store import (
    ArticleStoreError, load_articles, save_articles, append_article, create_slug,
)
from key_rotator import KeyRotator, NoValidKeysError, load_api_keys
from keyword_ledger import (
    read_keyword_file, parse_keywords, keywords_hash, is_unchanged,
    load_cache, save_cache, known_keywords, pending_keywords, mark_generated,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger("generate_content")


class ContentParseError(Exception):
    """The model response held no usable JSON object."""


@dataclass
class GenerationContext:
    """Collaborators and settings shared by every keyword in a run."""
    rotator: object
    search_image: Optional[Callable[[str], Optional[str]]] = None
    articles_path: Path = ARTICLES_PATH
    cache_path: Path = CACHE_PATH
    backdate_days: int = BACKDATE_DAYS
    future_days: int = FUTURE_SCHEDULE_DAYS
    api_call_delay: float = API_CALL_DELAY_SECONDS
    request_delay: float = REQUEST_DELAY_SECONDS
    backfill_images: bool = True


def pause(seconds: float):
    if seconds > 0:
        time.sleep(seconds)


# ═══════════════════════════════════════════════════════════════
# Section 1: Prompts
# ═══════════════════════════════════════════════════════════════

def load_prompt(name: str) -> str:
    """Load a prompt template from the prompts directory."""
    path = PROMPTS_DIR / name
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def render_prompt(template: str, **kwargs) -> str:
    """Substitute {key} placeholders without touching other braces."""
    result = template
    for key, value in kwargs.items():
        result = result.replace("{" + key + "}", str(value))
    return result


# ═══════════════════════════════════════════════════════════════
# Section 2: JSON Extraction
# ═══════════════════════════════════════════════════════════════

def find_json_object(text: str) -> str | None:
    """Return the first balanced {...} span in free-form text, or None."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def repair_json(text: str) -> str:
    """Fix common model JSON mistakes."""
    text = re.sub(r",\s*([}\]])", r"\1", text)          # trailing commas
    text = re.sub(r"'([^']*)'(?=\s*:)", r'"\1"', text)  # single-quoted keys
    text = re.sub(r":\s*'([^']*)'", r': "\1"', text)    # single-quoted values
    return text


def extract_json(response_text: str) -> dict | None:
    """Parse the first JSON object out of a model response.

    Best effort: returns None when no object is found or it cannot be parsed,
    even after repair.
    """
    span = find_json_object(response_text or "")
    if span is None:
        log.warning("No JSON block found in the response")
        return None

    try:
        return json.loads(span)
    except json.JSONDecodeError:
        pass
    try:
        return json.loads(repair_json(span))
    except json.JSONDecodeError as e:
        log.error(f"JSON parse error at char {e.pos}: {e.msg}")
        return None


# ═══════════════════════════════════════════════════════════════
# Section 3: Publish Date Scheduling
# ═══════════════════════════════════════════════════════════════

def compute_posts_per_day(pending_count: int, backdate_days: int, future_days: int) -> int:
    """Spread pending keywords evenly over the backdate + future window."""
    span = backdate_days + future_days
    if span <= 0:
        return max(1, pending_count)
    return max(1, math.ceil(pending_count / span))


def compute_publish_date(ordinal: int, posts_per_day: int, backdate_days: int,
                         today: datetime.date | None = None) -> datetime.date:
    """Publish date for the keyword at a 1-based position in the whole backlog.

    The first slot lands backdate_days - 1 days in the past, or today when
    nothing is backdated.
    """
    today = today or datetime.date.today()
    day_slot = (ordinal - 1) // posts_per_day
    day_offset = day_slot - (backdate_days - 1 if backdate_days > 0 else 0)
    return today + datetime.timedelta(days=day_offset)


# ═══════════════════════════════════════════════════════════════
# Section 4: Image Search
# ═══════════════════════════════════════════════════════════════

def fetch_image_from_pexels(query: str, api_key: str) -> str | None:
    """Return the first landscape Pexels photo URL for a query, or None."""
    log.info(f"Searching image for: \"{query}\"")
    resp = requests.get(
        PEXELS_SEARCH_URL,
        headers={"Authorization": api_key},
        params={"query": query, "per_page": 1, "orientation": "landscape"},
        timeout=PEXELS_TIMEOUT_SECONDS,
    )
    resp.raise_for_status()
    photos = resp.json().get("photos") or []
    if not photos:
        log.warning(f"No Pexels image found for \"{query}\"")
        return None
    image_url = photos[0]["src"]["large"]
    log.info(f"Image found: {image_url}")
    return image_url


def load_pexels_key(path: Path = PEXELS_API_KEY_PATH) -> str:
    """Read the Pexels key file, falling back to the PEXELS_API_KEY env var."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            key = f.read().strip()
    except FileNotFoundError:
        key = ""
    if not key:
        key = PEXELS_API_KEY.strip()
    if not key:
        log.warning(f"{path.name} not found. Image search will be skipped.")
    return key


def find_image(ctx: GenerationContext, query: str) -> str | None:
    """Image lookup that never fails the caller."""
    if ctx.search_image is None:
        log.warning("Image search disabled, skipping")
        return None
    try:
        image_url = ctx.search_image(query)
    except Exception as e:
        log.warning(f"Image search failed for \"{query}\": {e}")
        image_url = None
    pause(ctx.api_call_delay)
    return image_url


# ═══════════════════════════════════════════════════════════════
# Section 5: Article Generation
# ═══════════════════════════════════════════════════════════════

def generate_json(ctx: GenerationContext, prompt: str, stage: str) -> dict:
    """Call the model and parse its JSON answer, raising on unusable output."""
    response_text = ctx.rotator.generate(prompt)
    pause(ctx.api_call_delay)
    data = extract_json(response_text)
    if data is None:
        raise ContentParseError(f"Could not extract JSON from the {stage} response")
    return data


def uniqueness_rewrite(ctx: GenerationContext, text: str, persona: str) -> str:
    """Rewrite a long-form section. Keeps the original text on failure."""
    if not text:
        return text or ""
    prompt = render_prompt(load_prompt("rewrite_unique.txt"), persona=persona, text=text)
    try:
        rewritten = ctx.rotator.generate(prompt)
    except Exception as e:
        log.warning(f"Uniqueness rewrite failed, keeping original text: {e}")
        return text
    pause(ctx.api_call_delay)
    return rewritten.strip() or text


def unique_slug(slug: str, articles: list[dict]) -> str:
    """Suffix the slug with -2, -3, ... when another article already uses it."""
    taken = {a.get("slug") for a in articles}
    if slug not in taken:
        return slug
    n = 2
    while f"{slug}-{n}" in taken:
        n += 1
    return f"{slug}-{n}"


def generate_article(ctx: GenerationContext, keyword: str,
                     publish_date: datetime.date, articles: list[dict]) -> dict:
    """Run strategy, draft, rewrite and image steps for one keyword."""
    log.info("Step 1: designing a unique content strategy...")
    strategy = generate_json(
        ctx, render_prompt(load_prompt("analyze_keyword.txt"), keyword=keyword), "strategy",
    )
    log.info(f"Unique angle: \"{strategy.get('uniqueAngle', '')}\"")

    title = strategy.get("suggestedTitle") or keyword
    category = strategy.get("primaryCategory", "")
    category_slug = strategy.get("categorySlug") or create_slug(category)
    persona = strategy.get("persona", "An experienced writer")

    log.info("Step 2: writing the first draft...")
    prompt = render_prompt(
        load_prompt("write_article.txt"),
        persona=persona,
        title=title,
        unique_angle=strategy.get("uniqueAngle", ""),
        hook_intro=strategy.get("hookIntro", ""),
        keyword=keyword,
        date=publish_date.isoformat(),
        category=category,
        category_slug=category_slug,
    )
    article = generate_json(ctx, prompt, "draft")
    log.info(f"Draft for \"{keyword}\" created")

    log.info("Step 3: applying uniqueness rewrite...")
    article["deepDive"] = uniqueness_rewrite(ctx, article.get("deepDive", ""), persona)
    article["importance"] = uniqueness_rewrite(ctx, article.get("importance", ""), persona)

    log.info("Step 4: searching for an image...")
    image_url = find_image(ctx, keyword)

    slug = create_slug(article.get("slug") or "") or create_slug(keyword)
    article["keyword"] = keyword
    article["term"] = title
    article["slug"] = unique_slug(slug, articles)
    article["date"] = publish_date.isoformat()
    article["category"] = category or article.get("category", "")
    article["categorySlug"] = category_slug or article.get("categorySlug", "")
    article.setdefault("tags", [])
    article.setdefault("isPopular", False)
    article.setdefault("summary", "")
    article.setdefault("prosCons", [])
    article.setdefault("faq", [])
    article["imageUrl"] = image_url
    return article


def process_new_keywords(ctx: GenerationContext, keywords: list[str],
                         articles: list[dict],
                         today: datetime.date | None = None,
                         backlog_size: int | None = None) -> tuple[list[str], list[str]]:
    """Generate and commit an article per keyword.

    backlog_size is the pending count the publish dates are spread over.
    A batch slice passes the whole backlog; it defaults to len(keywords).

    Returns (generated, failed) keyword lists. A failed keyword never stops
    the run.
    """
    log.info(f"Found {len(keywords)} new keywords to process")
    posts_per_day = compute_posts_per_day(
        max(backlog_size or 0, len(keywords)), ctx.backdate_days, ctx.future_days,
    )
    ordinal = len(articles)
    generated, failed = [], []

    for i, keyword in enumerate(keywords):
        ordinal += 1
        log.info(f"[{i + 1}/{len(keywords)}] Processing keyword: \"{keyword}\"")
        publish_date = compute_publish_date(ordinal, posts_per_day, ctx.backdate_days, today)

        try:
            article = generate_article(ctx, keyword, publish_date, articles)
        except Exception as e:
            log.error(f"Skipping keyword \"{keyword}\": {e}")
            failed.append(keyword)
        else:
            append_article(articles, article, ctx.articles_path)
            generated.append(keyword)
            log.info(f"Article for \"{keyword}\" completed")

        if i < len(keywords) - 1:
            log.info(f"Waiting {ctx.request_delay:g}s before the next keyword...")
            pause(ctx.request_delay)

    return generated, failed


def update_images_for_existing_articles(ctx: GenerationContext, articles: list[dict]) -> int:
    """Backfill imageUrl on legacy articles that never had one."""
    missing = [a for a in articles if "imageUrl" not in a]
    if not missing:
        log.info("No articles need an image update")
        return 0
    if ctx.search_image is None:
        log.warning(f"{len(missing)} articles lack an image but image search is disabled")
        return 0

    log.info(f"Updating images for {len(missing)} existing articles")
    updated = 0
    for article in missing:
        query = (article.get("term") or article.get("keyword") or "").strip()
        if not query:
            log.warning(f"Article \"{article.get('slug', '')}\" has no term or keyword, skipping image search")
            continue
        article["imageUrl"] = find_image(ctx, query)
        if article["imageUrl"]:
            updated += 1
        save_articles(articles, ctx.articles_path)

    log.info(f"Image update complete, {updated} images added")
    return updated


# ═══════════════════════════════════════════════════════════════
# Section 6: Run Orchestration
# ═══════════════════════════════════════════════════════════════

def generation_result(reason: str, generated: list[str] | None = None,
                      failed: list[str] | None = None, skipped: int = 0) -> dict:
    generated = generated or []
    failed = failed or []
    return {
        "generated": len(generated),
        "skipped": skipped,
        "failed": len(failed),
        "reason": reason,
        "generatedKeywords": generated,
        "failedKeywords": failed,
    }


def run_generation(ctx: GenerationContext, keyword_path: Path = KEYWORD_PATH,
                   force: bool = False, record_hash: bool = True,
                   today: datetime.date | None = None,
                   backlog_size: int | None = None) -> dict:
    """Generate articles for every pending keyword in a keyword file.

    Args:
        ctx: Shared generation collaborators and settings.
        keyword_path: Newline-delimited keyword file.
        force: Diff the ledger even if the keyword file is unchanged.
        record_hash: Remember the keyword file checksum once nothing is left
            pending. Batch slices pass False so they don't shadow the full list.
        today: Reference date for publish scheduling.
        backlog_size: Pending keyword count of the whole backlog when
            keyword_path only holds a batch slice of it.

    Returns:
        Result dict with generated/skipped/failed counts and a reason code.

    Raises:
        ArticleStoreError: The article store is corrupt. Nothing is written.
    """
    keyword_text = read_keyword_file(keyword_path)
    keywords = parse_keywords(keyword_text)
    if not keywords:
        log.info("No keywords to process")
        return generation_result("no_keywords")

    cache = load_cache(ctx.cache_path)
    if not force and is_unchanged(keyword_text, cache):
        log.info("Keyword list unchanged since the last complete run, skipping")
        return generation_result("no_changes", skipped=len(keywords))

    try:
        articles = load_articles(ctx.articles_path)
    except ArticleStoreError as e:
        log.error(f"Article store unreadable, aborting before any write: {e}")
        raise
    pending = pending_keywords(keywords, known_keywords(articles, cache))
    skipped = len(keywords) - len(pending)

    generated, failed = [], []
    if pending:
        generated, failed = process_new_keywords(ctx, pending, articles, today, backlog_size)
        mark_generated(cache, generated)
        reason = "generated"
    else:
        log.info("All keywords already have articles. No new content created.")
        reason = "all_generated"

    if ctx.backfill_images:
        update_images_for_existing_articles(ctx, articles)

    if record_hash:
        cache["lastHash"] = "" if failed else keywords_hash(keyword_text)
    save_cache(cache, ctx.cache_path)

    if failed:
        log.error(f"Failed keywords: {', '.join(failed)}")
    log.info(
        f"Done. Generated {len(generated)}, skipped {skipped}, failed {len(failed)}. "
        f"Total articles: {len(articles)}"
    )
    return generation_result(reason, generated, failed, skipped)


def build_context(api_key_path: Path = API_KEY_PATH,
                  pexels_key_path: Path = PEXELS_API_KEY_PATH,
                  **overrides) -> GenerationContext:
    """Create the process-wide generation context.

    Raises NoValidKeysError when no Gemini key can be loaded.
    """
    rotator = KeyRotator(load_api_keys(api_key_path))
    pexels_key = load_pexels_key(pexels_key_path)
    search_image = partial(fetch_image_from_pexels, api_key=pexels_key) if pexels_key else None
    return GenerationContext(rotator=rotator, search_image=search_image, **overrides)


# ═══════════════════════════════════════════════════════════════
# CLI Entry Point
# ═══════════════════════════════════════════════════════════════

def main():
    parser = argparse.ArgumentParser(description="KontenKit article generator")
    parser.add_argument("--batch", action="store_true", help="Process keyword-batch.txt instead of keyword.txt")
    parser.add_argument("--force", action="store_true", help="Diff keywords even if keyword.txt is unchanged")
    parser.add_argument("--no-backfill", action="store_true", help="Skip image backfill for existing articles")
    args = parser.parse_args()

    log.info("Starting content generation...")
    try:
        ctx = build_context(backfill_images=not args.no_backfill)
    except NoValidKeysError as e:
        log.error(f"Fatal: {e}")
        sys.exit(1)

    keyword_path = BATCH_KEYWORD_PATH if args.batch else KEYWORD_PATH
    try:
        run_generation(ctx, keyword_path, force=args.force or args.batch, record_hash=not args.batch)
    except ArticleStoreError as e:
        log.error(f"Fatal: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
