"""
key_rotator.py — Round-robin Gemini client over several API keys.

Each call starts at the key after the last one that succeeded and falls
through the remaining keys once before giving up.
"""

import logging
from pathlib import Path

from google import genai

from config import (
    API_KEY_PREFIX, GEMINI_MODEL,
    GEMINI_TEMPERATURE, GEMINI_MAX_OUTPUT_TOKENS,
)

log = logging.getLogger("key_rotator")


class NoValidKeysError(Exception):
    """No usable API key was found; generation cannot start."""


class AllKeysExhaustedError(Exception):
    """Every API key in the rotation failed for a single request."""


def load_api_keys(path: Path, prefix: str = API_KEY_PREFIX) -> list[str]:
    """Read newline-delimited API keys, keeping lines with the expected prefix."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
    except FileNotFoundError as e:
        raise NoValidKeysError(f"API key file not found: {path}") from e

    keys = [line.strip() for line in lines if line.strip().startswith(prefix)]
    if not keys:
        raise NoValidKeysError(f"No valid API keys in {path}")
    return keys


def classify_error(error: Exception) -> str:
    """Classify an API failure for logging.

    Returns one of 'rate_limit', 'invalid_key', 'permission_denied', 'other'.
    """
    code = getattr(error, "code", None)
    message = str(error)
    if code == 429 or "429" in message:
        return "rate_limit"
    if "API key not valid" in message or "API_KEY_INVALID" in message:
        return "invalid_key"
    if code == 403 or "permission" in message.lower():
        return "permission_denied"
    return "other"


ERROR_DESCRIPTIONS = {
    "rate_limit": "HTTP 429: rate limit exceeded",
    "invalid_key": "HTTP 400: API key is invalid or malformed",
    "permission_denied": "HTTP 403: permission denied, check that the API is enabled and billing is linked",
}


class KeyRotator:
    """Distribute generation calls across API keys with failover."""

    def __init__(self, api_keys: list[str], model: str = GEMINI_MODEL,
                 client_factory=None):
        if not api_keys:
            raise ValueError("API key list must not be empty")
        factory = client_factory or (lambda key: genai.Client(api_key=key))
        self.clients = [factory(key) for key in api_keys]
        self.model = model
        self.current_index = 0
        log.info(f"KeyRotator initialized with {len(self.clients)} keys")

    def generate(self, prompt: str) -> str:
        """Generate text for a prompt, rotating keys on failure."""
        total = len(self.clients)
        for attempt in range(total):
            index = (self.current_index + attempt) % total
            client = self.clients[index]
            log.info(f"Trying API key #{index + 1}...")
            try:
                response = client.models.generate_content(
                    model=self.model,
                    contents=prompt,
                    config={
                        "temperature": GEMINI_TEMPERATURE,
                        "max_output_tokens": GEMINI_MAX_OUTPUT_TOKENS,
                    },
                )
            except Exception as e:
                kind = classify_error(e)
                detail = ERROR_DESCRIPTIONS.get(kind, str(e))
                log.warning(f"API key #{index + 1} failed ({kind}): {detail}")
                continue
            self.current_index = (index + 1) % total
            return response.text or ""

        raise AllKeysExhaustedError(f"All {total} API keys failed for this request")
