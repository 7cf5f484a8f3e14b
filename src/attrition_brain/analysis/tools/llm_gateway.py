"""Centralized LLM gateway.

Provides structured LLM access with:
- Rate limiting (asyncio.Semaphore)
- Exponential backoff retry (3 attempts)
- Prompt-level caching (md5 hash)
- Robust JSON extraction
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging

from attrition_brain.analysis.tools import llm_providers

logger = logging.getLogger(__name__)

_MAX_ATTEMPTS = 3

# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

_semaphore = asyncio.Semaphore(5)

# ---------------------------------------------------------------------------
# Prompt cache (md5 → response text)
# ---------------------------------------------------------------------------

_cache: dict[str, str] = {}
_CACHE_MAX = 500


def _cache_key(prompt: str) -> str:
    return hashlib.md5(prompt.encode()).hexdigest()


def clear_cache() -> None:
    _cache.clear()


def forget(prompt: str, system_instruction: str | None = None) -> None:
    """Drop a cached response the caller rejected."""
    _cache.pop(_cache_key(f"{system_instruction or ''}\n{prompt}"), None)


# ---------------------------------------------------------------------------
# JSON extraction
# ---------------------------------------------------------------------------


def _extract_json(raw: str) -> dict | None:
    """Robustly extract a JSON object from an LLM response."""
    text = raw.strip()
    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else None
    except (json.JSONDecodeError, ValueError):
        pass
    if "```" in text:
        parts = text.split("```")
        for part in parts[1::2]:
            block = part.strip()
            for tag in ("json", "JSON"):
                if block.startswith(tag):
                    block = block[len(tag) :].strip()
            try:
                parsed = json.loads(block)
            except (json.JSONDecodeError, ValueError):
                continue
            if isinstance(parsed, dict):
                return parsed
    start = text.find("{")
    end = text.rfind("}")
    if start >= 0 and end > start:
        try:
            parsed = json.loads(text[start : end + 1])
            return parsed if isinstance(parsed, dict) else None
        except (json.JSONDecodeError, ValueError):
            pass
    return None


# ---------------------------------------------------------------------------
# Core call with retry + rate limit + cache
# ---------------------------------------------------------------------------


async def _call_llm(
    prompt: str,
    system_instruction: str | None = None,
    json_mode: bool = False,
    use_cache: bool = True,
) -> str:
    """Low-level provider call with semaphore, retry, and cache."""
    key = _cache_key(f"{system_instruction or ''}\n{prompt}")
    if use_cache and key in _cache:
        return _cache[key]

    async with _semaphore:
        last_error: Exception | None = None
        for attempt in range(_MAX_ATTEMPTS):
            try:
                provider = llm_providers.get_provider()
                text = await asyncio.to_thread(
                    provider.generate,
                    prompt,
                    system_instruction=system_instruction,
                    json_mode=json_mode,
                )

                if use_cache:
                    if len(_cache) >= _CACHE_MAX:
                        # Evict oldest ~25%
                        keys = list(_cache.keys())
                        for k in keys[: len(keys) // 4]:
                            _cache.pop(k, None)
                    _cache[key] = text

                return text
            except Exception as exc:
                last_error = exc
                wait = 2 ** attempt  # 1s, 2s, 4s
                logger.warning(
                    "LLM call failed (attempt %d/%d): %s: retrying in %ds",
                    attempt + 1,
                    _MAX_ATTEMPTS,
                    str(exc)[:200],
                    wait,
                )
                await asyncio.sleep(wait)

        raise RuntimeError(f"LLM call failed after {_MAX_ATTEMPTS} attempts: {last_error}")


# ---------------------------------------------------------------------------
# Public API: typed wrappers
# ---------------------------------------------------------------------------


def is_available() -> bool:
    """Whether any LLM credential is configured."""
    return llm_providers.is_configured()


async def extract(prompt: str, system_instruction: str | None = None, use_cache: bool = True) -> dict | None:
    """Ask for a JSON object and parse it.

    Returns:
        The parsed object, or None when the response holds no JSON object.

    Raises:
        RuntimeError: when the provider keeps failing.
    """
    raw = await _call_llm(prompt, system_instruction=system_instruction, json_mode=True, use_cache=use_cache)
    parsed = _extract_json(raw) if raw else None
    if parsed is None:
        forget(prompt, system_instruction=system_instruction)
    return parsed
