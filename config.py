"""KontenKit — Content pipeline configuration constants."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# ─── Paths ──────────────────────────────────────────────────────
BASE_DIR = Path(os.environ.get("SITE_ROOT") or Path(__file__).parent)
KEYWORD_PATH = BASE_DIR / "keyword.txt"
BATCH_KEYWORD_PATH = BASE_DIR / "keyword-batch.txt"
API_KEY_PATH = BASE_DIR / "apikey.txt"
PEXELS_API_KEY_PATH = BASE_DIR / "pexels_apikey.txt"
ARTICLES_PATH = BASE_DIR / "public" / "articles.json"
CACHE_PATH = BASE_DIR / ".generate-cache.json"
PROGRESS_PATH = BASE_DIR / ".batch-progress.json"
PROMPTS_DIR = Path(__file__).parent / "prompts"

# ─── Gemini AI ─────────────────────────────────────────────────
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-pro")
GEMINI_TEMPERATURE = 0.9
GEMINI_MAX_OUTPUT_TOKENS = 8192
API_KEY_PREFIX = "AIzaSy"

# ─── Image Search (Pexels) ─────────────────────────────────────
PEXELS_API_KEY = os.environ.get("PEXELS_API_KEY", "")
PEXELS_SEARCH_URL = "https://api.pexels.com/v1/search"
PEXELS_TIMEOUT_SECONDS = 15

# ─── Publish Scheduling ────────────────────────────────────────
BACKDATE_DAYS = int(os.environ.get("BACKDATE_DAYS") or "3")
FUTURE_SCHEDULE_DAYS = int(os.environ.get("FUTURE_SCHEDULE_DAYS") or "30")

# ─── Rate Limiting ─────────────────────────────────────────────
REQUEST_DELAY_SECONDS = float(os.environ.get("REQUEST_DELAY_SECONDS") or "10")
API_CALL_DELAY_SECONDS = float(os.environ.get("API_CALL_DELAY_SECONDS") or "10")

# ─── Batching ──────────────────────────────────────────────────
BATCH_SIZE = int(os.environ.get("BATCH_SIZE") or "5")
BATCH_INTERVAL_MINUTES = int(os.environ.get("BATCH_INTERVAL_MINUTES") or "30")
# A keyword that fails this many batches is left out of later batches.
BATCH_MAX_ATTEMPTS = int(os.environ.get("BATCH_MAX_ATTEMPTS") or "3")

# ─── Build Collaborators ───────────────────────────────────────
# An empty command disables the step.
SITE_BUILD_COMMAND = os.environ.get("SITE_BUILD_COMMAND", "npx vite build")
PRERENDER_COMMAND = os.environ.get("PRERENDER_COMMAND", "node ./scripts/prerender.js")
SITEMAP_COMMAND = os.environ.get("SITEMAP_COMMAND", "node ./scripts/generate-sitemap.js")
FEED_COMMAND = os.environ.get("FEED_COMMAND", "node ./scripts/generate-rss.js")
