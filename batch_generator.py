"""
batch_generator.py — Time-boxed batch scheduling for keyword generation.

Each run takes at most BATCH_SIZE pending keywords, and only when at least
BATCH_INTERVAL_MINUTES have passed since the previous batch. Progress is kept
in .batch-progress.json so runs can be spread across many invocations.

Usage:
    python batch_generator.py             # Run the next batch if it is due
    python batch_generator.py --status    # Show batch progress
    python batch_generator.py --reset     # Start batch progress over
"""

import sys
import json
import math
import logging
import datetime
import argparse
from pathlib import Path
from typing import Callable

from config import (
    KEYWORD_PATH, BATCH_KEYWORD_PATH, PROGRESS_PATH,
    ARTICLES_PATH, CACHE_PATH, BATCH_SIZE, BATCH_INTERVAL_MINUTES, BATCH_MAX_ATTEMPTS,
)
from article_store import ArticleStoreError, load_articles
from generate_content import build_context, run_generation
from key_rotator import NoValidKeysError
from keyword_ledger import (
    load_keywords, load_cache, known_keywords, pending_keywords, normalize_keyword,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger("batch_generator")


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def parse_timestamp(value: str) -> datetime.datetime:
    """Parse an ISO timestamp, treating naive values as UTC."""
    dt = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return dt


class BatchGenerator:
    """Carve pending keywords into batches and track progress across runs."""

    def __init__(self, keyword_path: Path = KEYWORD_PATH,
                 batch_keyword_path: Path = BATCH_KEYWORD_PATH,
                 progress_path: Path = PROGRESS_PATH,
                 articles_path: Path = ARTICLES_PATH,
                 cache_path: Path = CACHE_PATH,
                 batch_size: int = BATCH_SIZE,
                 interval_minutes: int = BATCH_INTERVAL_MINUTES,
                 max_attempts: int = BATCH_MAX_ATTEMPTS,
                 now: Callable[[], datetime.datetime] = utc_now):
        self.keyword_path = keyword_path
        self.batch_keyword_path = batch_keyword_path
        self.progress_path = progress_path
        self.articles_path = articles_path
        self.cache_path = cache_path
        self.batch_size = batch_size
        self.interval_minutes = interval_minutes
        self.max_attempts = max_attempts
        self.now = now
        self.progress = self.load_progress()

    # ─── Progress file ─────────────────────────────────────────

    def new_progress(self) -> dict:
        return {
            "totalKeywords": 0,
            "processedKeywords": [],
            "failedAttempts": {},
            "currentBatch": 0,
            "totalBatches": 0,
            "lastRun": None,
            "status": "idle",
            "startedAt": self.now().isoformat(),
        }

    def load_progress(self) -> dict:
        """Load saved progress, or start fresh if there is none."""
        if self.progress_path.exists():
            try:
                with open(self.progress_path, "r", encoding="utf-8") as f:
                    progress = json.load(f)
                log.info("Loaded existing progress file")
                return {**self.new_progress(), **progress}
            except (OSError, json.JSONDecodeError) as e:
                log.warning(f"Could not read progress file, starting fresh: {e}")
        return self.new_progress()

    def save_progress(self):
        self.progress_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.progress_path, "w", encoding="utf-8") as f:
            json.dump(self.progress, f, indent=2, ensure_ascii=False)

    def reset_progress(self):
        """Forget all batch progress and remove any leftover batch file."""
        self.progress = self.new_progress()
        self.save_progress()
        self.cleanup_batch_file()
        log.info("Progress reset")

    # ─── Scheduling ────────────────────────────────────────────

    def abandoned_keywords(self) -> list[str]:
        """Normalized keywords that failed max_attempts batches."""
        return [k for k, n in self.progress["failedAttempts"].items() if n >= self.max_attempts]

    def get_pending_keywords(self) -> list[str]:
        """Keywords in keyword.txt that have no article yet and were not given up on."""
        keywords = load_keywords(self.keyword_path)
        known = known_keywords(
            load_articles(self.articles_path),
            load_cache(self.cache_path),
            self.progress["processedKeywords"] + self.abandoned_keywords(),
        )
        return pending_keywords(keywords, known)

    def record_failures(self, keywords: list[str]):
        """Count a failed attempt per keyword. Saved by mark_batch_complete."""
        attempts = self.progress["failedAttempts"]
        for keyword in keywords:
            key = normalize_keyword(keyword)
            attempts[key] = attempts.get(key, 0) + 1
            if attempts[key] >= self.max_attempts:
                log.warning(f"\"{keyword}\" failed {attempts[key]} batches, leaving it out of later batches")

    def minutes_since_last_run(self) -> float | None:
        last_run = self.progress.get("lastRun")
        if not last_run:
            return None
        return (self.now() - parse_timestamp(last_run)).total_seconds() / 60

    def should_run_batch(self) -> bool:
        if self.progress["status"] == "completed":
            log.info("All batches completed")
            return False

        elapsed = self.minutes_since_last_run()
        if elapsed is not None and elapsed < self.interval_minutes:
            minutes_left = math.ceil(self.interval_minutes - elapsed)
            log.info(f"Next batch in {minutes_left} minutes")
            return False
        return True

    def prepare_batch(self) -> list[str] | None:
        """Write the next slice of pending keywords to the batch file.

        Returns the slice, or None when nothing is pending.
        """
        pending = self.get_pending_keywords()
        if not pending:
            self.progress["status"] = "completed"
            self.save_progress()
            log.info("All keywords processed")
            return None

        batch = pending[:self.batch_size]
        self.batch_keyword_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.batch_keyword_path, "w", encoding="utf-8") as f:
            f.write("\n".join(batch))

        self.progress["currentBatch"] += 1
        self.progress["totalKeywords"] = len(self.progress["processedKeywords"]) + len(pending)
        self.progress["totalBatches"] = (
            self.progress["currentBatch"] - 1 + math.ceil(len(pending) / self.batch_size)
        )
        self.progress["status"] = "processing"
        self.save_progress()

        log.info(f"Batch {self.progress['currentBatch']}/{self.progress['totalBatches']}: "
                 f"{len(batch)} keywords")
        for i, keyword in enumerate(batch, 1):
            log.info(f"  {i}. {keyword}")
        return batch

    def mark_batch_complete(self, keywords: list[str]):
        """Record finished keywords and stamp the batch time."""
        processed = self.progress["processedKeywords"]
        seen = {normalize_keyword(k) for k in processed}
        for keyword in keywords:
            if normalize_keyword(keyword) not in seen:
                processed.append(keyword)
                seen.add(normalize_keyword(keyword))

        self.progress["lastRun"] = self.now().isoformat()
        pending = self.get_pending_keywords()
        self.progress["status"] = "completed" if not pending else "idle"
        self.save_progress()

        total = len(processed) + len(pending)
        percent = len(processed) / total * 100 if total else 100.0
        log.info(f"Batch {self.progress['currentBatch']} completed")
        log.info(f"Progress: {len(processed)}/{total} keywords ({percent:.1f}%)")
        if pending:
            next_run = self.now() + datetime.timedelta(minutes=self.interval_minutes)
            log.info(f"Next batch: {next_run.isoformat(timespec='minutes')}")
        else:
            log.info("All batches completed")

    def cleanup_batch_file(self):
        if self.batch_keyword_path.exists():
            self.batch_keyword_path.unlink()
            log.info("Cleaned up batch keyword file")

    # ─── Execution ─────────────────────────────────────────────

    def run_batch(self, generate: Callable[[Path, int], dict]) -> dict:
        """Run one scheduled batch.

        Args:
            generate: Pipeline step called with the batch file path and the
                backlog size (totalKeywords) so publish dates spread over the
                whole backlog. Returns a generation result dict.

        Returns:
            Dict with processed count, shouldDeploy, hasMore and a reason code.
        """
        log.info("Batch Content Generator")
        if self.progress["status"] == "completed":
            self.cleanup_batch_file()
            return {"processed": 0, "shouldDeploy": False, "hasMore": False,
                    "reason": "already_completed"}

        if not self.should_run_batch():
            self.cleanup_batch_file()
            return {"processed": 0, "shouldDeploy": False, "hasMore": True,
                    "reason": "interval_not_reached"}

        batch = self.prepare_batch()
        if batch is None:
            self.cleanup_batch_file()
            return {"processed": 0, "shouldDeploy": True, "hasMore": False,
                    "reason": "all_completed"}

        log.info("Starting batch generation...")
        try:
            result = generate(self.batch_keyword_path, self.progress["totalKeywords"])
        except Exception as e:
            log.error(f"Batch generation failed: {e}")
            self.progress["status"] = "idle"
            self.save_progress()
            return {"processed": 0, "shouldDeploy": False, "hasMore": True,
                    "reason": "generation_failed"}
        finally:
            self.cleanup_batch_file()

        done = result.get("generatedKeywords", [])
        failed = result.get("failedKeywords", [])
        if failed:
            log.warning(f"{len(failed)} keywords failed and stay pending: {', '.join(failed)}")
            self.record_failures(failed)
        self.mark_batch_complete(done)

        return {
            "processed": len(done),
            "shouldDeploy": len(done) > 0,
            "hasMore": self.progress["status"] != "completed",
            "reason": "batch_completed",
        }

    def get_status(self) -> dict:
        """Read-only snapshot of batch progress."""
        pending = len(self.get_pending_keywords())
        processed = len(self.progress["processedKeywords"])
        total = processed + pending
        now = self.now()

        next_run = None
        last_run = self.progress.get("lastRun")
        if last_run and pending:
            next_run = parse_timestamp(last_run) + datetime.timedelta(minutes=self.interval_minutes)

        estimated_minutes = pending / self.batch_size * self.interval_minutes
        return {
            "processed": processed,
            "pending": pending,
            "abandoned": len(self.abandoned_keywords()),
            "total": total,
            "percentage": round(processed / total * 100, 1) if total else 0.0,
            "currentBatch": self.progress["currentBatch"],
            "totalBatches": self.progress["totalBatches"],
            "status": self.progress["status"],
            "nextRun": next_run,
            "estimatedCompletion": now + datetime.timedelta(minutes=estimated_minutes),
            "startedAt": self.progress["startedAt"],
            "config": {
                "batchSize": self.batch_size,
                "intervalMinutes": self.interval_minutes,
                "maxAttempts": self.max_attempts,
            },
        }


def log_status(status: dict):
    log.info("Batch Generation Status")
    log.info(f"Started: {status['startedAt']}")
    log.info(f"Processed: {status['processed']}/{status['total']} keywords ({status['percentage']}%)")
    log.info(f"Pending: {status['pending']} keywords")
    if status["abandoned"]:
        log.info(f"Abandoned after {status['config']['maxAttempts']} failed batches: {status['abandoned']} keywords")
    log.info(f"Batch: {status['currentBatch']}/{status['totalBatches']}")
    log.info(f"Config: {status['config']['batchSize']} keywords every "
             f"{status['config']['intervalMinutes']} minutes")
    if status["pending"]:
        if status["nextRun"]:
            log.info(f"Next batch: {status['nextRun'].isoformat(timespec='minutes')}")
        log.info(f"Estimated completion: {status['estimatedCompletion'].isoformat(timespec='minutes')}")
    else:
        log.info("All batches completed")
    log.info(f"Status: {status['status']}")


# ═══════════════════════════════════════════════════════════════
# CLI Entry Point
# ═══════════════════════════════════════════════════════════════

def main():
    parser = argparse.ArgumentParser(description="KontenKit batch content generator")
    parser.add_argument("--status", action="store_true", help="Show batch progress and exit")
    parser.add_argument("--reset", action="store_true", help="Reset batch progress and exit")
    args = parser.parse_args()

    generator = BatchGenerator()
    if args.reset:
        generator.reset_progress()
        return

    try:
        log_status(generator.get_status())
        if args.status:
            return
        ctx = build_context()
        result = generator.run_batch(
            lambda path, backlog_size: run_generation(
                ctx, path, force=True, record_hash=False, backlog_size=backlog_size,
            )
        )
    except (NoValidKeysError, ArticleStoreError) as e:
        log.error(f"Fatal: {e}")
        sys.exit(1)
    log.info(f"Batch result: {result}")


if __name__ == "__main__":
    main()
