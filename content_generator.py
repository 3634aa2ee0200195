"""
Content Generator -- transcript to multi-platform marketing copy.

One GPT call per transcript, asked for a single JSON object with short-form
scripts, social posts, a blog article, quotes and a two-week calendar.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Dict, Optional

from openai import OpenAI

import config

logger = logging.getLogger(__name__)

REQUIRED_KEYS = (
    "shortFormScripts",
    "socialPosts",
    "blogArticle",
    "quotes",
    "contentCalendar",
)

SYSTEM_PROMPT = (
    "You are a content repurposing expert. Be creative, engaging, and make "
    "sure each piece of content is tailored to its platform. "
    "Return ONLY valid JSON."
)

USER_PROMPT_TEMPLATE = """Based on the following transcript, generate content for multiple platforms.

TRANSCRIPT:
{transcript}

Return one JSON object with exactly these keys:

1. "shortFormScripts": 5-10 short-form video scripts (30-60 seconds) for TikTok/Reels,
   each with "hook", "body", "callToAction" and "hashtags" (5-7 hashtags).
2. "socialPosts": object with "linkedin", "twitter" and "instagram", each an array of
   10+ posts (tweets under 280 characters).
3. "blogArticle": object with "title", "metaDescription" (155-160 chars), "content"
   (800-1200 words of markdown) and "keywords" (10+).
4. "quotes": 10 standalone, shareable quotes of 1-3 sentences.
5. "contentCalendar": 14 days, each with "date" (1-14), "platform", "contentType",
   "contentIndex", "bestTime" and "notes".
"""


class GenerationError(RuntimeError):
    """The model call failed or returned unusable output."""


def parse_generated_json(text: str) -> Dict:
    """
    Parse model output as JSON, tolerating a surrounding ```json fence.

    Raises GenerationError for anything that is not a JSON object.
    """
    cleaned = (text or "").strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    cleaned = cleaned.strip()

    try:
        content = json.loads(cleaned)
    except ValueError as e:
        logger.error(f"Failed to parse generated JSON: {text[:200] if text else ''}")
        raise GenerationError("Failed to parse generated content as JSON") from e

    if not isinstance(content, dict):
        raise GenerationError("Generated content is not a JSON object")
    return content


class ContentGenerator:
    """Uses GPT to repurpose a transcript into multi-platform content."""

    def __init__(self, db_path=None, client: Optional[OpenAI] = None):
        self.db_path = db_path or config.DB_PATH
        self._client = client

    def generate(self, transcript: str) -> Dict:
        """
        Generate repurposed content for a transcript.

        Returns:
            {
                "shortFormScripts": [{"hook", "body", "callToAction", "hashtags"}],
                "socialPosts": {"linkedin": [], "twitter": [], "instagram": []},
                "blogArticle": {"title", "metaDescription", "content", "keywords"},
                "quotes": [str],
                "contentCalendar": [{"date", "platform", "contentType",
                                     "contentIndex", "bestTime", "notes"}],
            }
        """
        transcript = (transcript or "").strip()
        if not transcript:
            raise ValueError("Transcript is required")

        try:
            response = self._get_client().chat.completions.create(
                model=config.OPENAI_MODEL,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": USER_PROMPT_TEMPLATE.format(
                        transcript=transcript)},
                ],
                temperature=config.OPENAI_TEMPERATURE,
                max_tokens=config.OPENAI_MAX_TOKENS,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            logger.error(f"Content generation failed: {e}")
            raise GenerationError(f"Content generation failed: {e}") from e

        # Log token usage
        self._log_usage(response.usage)

        content = parse_generated_json(response.choices[0].message.content)

        missing = [key for key in REQUIRED_KEYS if key not in content]
        if missing:
            logger.warning(f"Generated content missing keys: {', '.join(missing)}")

        return content

    def _get_client(self) -> OpenAI:
        """Get OpenAI client with API key from DB or env."""
        if self._client is None:
            self._client = OpenAI(api_key=config.get_api_key('openai'))
        return self._client

    def _log_usage(self, usage) -> None:
        """Log token usage for budget tracking."""
        try:
            prompt_tokens = usage.prompt_tokens
            completion_tokens = usage.completion_tokens
            total_tokens = usage.total_tokens
            estimated_cost = (
                (prompt_tokens / 1000) * config.COST_PER_1K_INPUT_TOKENS +
                (completion_tokens / 1000) * config.COST_PER_1K_OUTPUT_TOKENS
            )

            conn = sqlite3.connect(str(self.db_path))
            conn.execute("""
                INSERT INTO token_usage
                (timestamp, model, prompt_tokens, completion_tokens,
                 total_tokens, estimated_cost_usd, context)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                datetime.now(timezone.utc).isoformat(),
                config.OPENAI_MODEL,
                prompt_tokens,
                completion_tokens,
                total_tokens,
                round(estimated_cost, 6),
                "content_generation",
            ))
            conn.commit()
            conn.close()
        except Exception as e:
            logger.warning(f"Failed to log token usage: {e}")
