"""
Claude-assisted mood resolution.

Asks Claude to pick catalog tags for a free-text mood.  Whenever that is
not possible (no API key, SDK missing, API error, unusable reply) the local
MoodFallbackMatcher answers instead, so callers always get a tag list.
"""

import json
import os
import re
from typing import Any, Iterable, List, Literal, Optional, Union

from loguru import logger
from pydantic import BaseModel, Field

from .config import StationConfig, resolve_config
from .models import Track
from .mood import MoodFallbackMatcher
from .tags import TagStat, normalize_tag
from .vocabulary import Vocabulary

JSON_ARRAY = re.compile(r"\[.*?\]", re.DOTALL)

SYSTEM_PROMPT = (
    "You pick music tags for a radio station. Given a listener's mood and the "
    "list of tags available in the catalog, reply with ONLY a JSON array of at "
    "most {max_tags} tags copied exactly from the available list, best match "
    "first. Reply [] if nothing fits."
)


class MoodResolution(BaseModel):
    tags: List[str] = Field(default_factory=list)
    source: Literal["ai", "fallback"] = "fallback"


class MoodResolver:
    """Mood text -> tags, via Claude when configured, else the local matcher."""

    def __init__(
        self,
        config: Optional[StationConfig] = None,
        vocabulary: Optional[Vocabulary] = None,
        api_key: Optional[str] = None,
        client=None,
        fallback: Optional[MoodFallbackMatcher] = None,
    ):
        self.config = resolve_config(config)
        self._api_key = api_key if api_key is not None else os.environ.get("ANTHROPIC_API_KEY", "")
        self._client = client
        self.fallback = fallback or MoodFallbackMatcher(self.config, vocabulary)

    @property
    def enabled(self) -> bool:
        return self._client is not None or bool(self._api_key)

    def _get_client(self):
        """Lazy-init the Anthropic client."""
        if self._client is None:
            import anthropic
            self._client = anthropic.Anthropic(api_key=self._api_key)
        return self._client

    def resolve(
        self,
        text: str,
        known_tags: Iterable[Union[TagStat, str]],
        catalog: Optional[Iterable[Track]] = None,
    ) -> MoodResolution:
        known = [t if isinstance(t, TagStat) else TagStat.from_tag(t) for t in known_tags]

        if text and text.strip() and self.enabled:
            tags = self._ask_claude(text.strip(), known)
            if tags:
                logger.info(f"Mood '{text}' resolved by Claude: {tags}")
                return MoodResolution(tags=tags, source="ai")
            logger.warning(f"Mood assist gave no usable tags for '{text}', using local matcher")

        tags = self.fallback.match(text, known, catalog)
        return MoodResolution(tags=tags, source="fallback")

    def _ask_claude(self, text: str, known: List[TagStat]) -> List[str]:
        offered = known[: self.config.mood_max_known_tags]
        if not offered:
            return []
        try:
            client = self._get_client()
            response = client.messages.create(
                model=self.config.mood_model,
                max_tokens=256,
                system=SYSTEM_PROMPT.format(max_tags=self.config.mood_max_tags),
                messages=[
                    {
                        "role": "user",
                        "content": (
                            f"Mood: {text}\n"
                            f"Available tags: {json.dumps([t.tag for t in offered])}"
                        ),
                    }
                ],
            )
        except Exception as e:
            logger.error(f"Claude API error: {e}")
            return []

        reply = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        return self.parse_reply(reply, offered)

    def parse_reply(self, reply: str, known: List[TagStat]) -> List[str]:
        """First JSON array in ``reply``, mapped onto known display forms and capped."""
        match = JSON_ARRAY.search(reply or "")
        if not match:
            return []
        try:
            items: Any = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.warning(f"Could not parse mood assist reply: {e}")
            return []
        if not isinstance(items, list):
            return []

        by_key = {}
        for stat in known:
            by_key.setdefault(stat.key, stat.tag)

        tags: List[str] = []
        for item in items:
            if not isinstance(item, str):
                continue
            tag = by_key.get(normalize_tag(item))
            if tag and tag not in tags:
                tags.append(tag)
            if len(tags) >= self.config.mood_max_tags:
                break
        return tags
