"""
Mood Fallback Matcher

Turns free-text mood input ("chill lo-fi for studying") into up to five
catalog tags without any remote service.  Three additive stages:

1. Direct match: each token against the known tags (exact, or substring
   when both are long enough).
2. Vibe words: the vocabulary maps mood words to genre tags; only tags the
   catalog actually carries are kept.
3. Content search: tokens found in track titles and lyrics vote for the
   tags of those tracks.

Results keep insertion order across stages, deduplicated by normalized key.
"""

import re
from typing import Dict, Iterable, List, Optional, Union

from loguru import logger

from .config import StationConfig, resolve_config
from .models import Track
from .tags import TagStat, normalize_tag
from .vocabulary import Vocabulary, default_vocabulary

TOKEN_SPLIT = re.compile(r"[\s,]+")


def tokenize(text: str) -> List[str]:
    """Split on whitespace and commas; hyphenated words stay one token."""
    if not text:
        return []
    return [tok for tok in TOKEN_SPLIT.split(text.strip()) if tok]


class _TagCollector:
    """Ordered, key-deduplicated, capped tag list."""

    def __init__(self, limit: int):
        self.limit = limit
        self.tags: List[str] = []
        self._keys = set()

    @property
    def full(self) -> bool:
        return len(self.tags) >= self.limit

    def add(self, tag: str) -> None:
        key = normalize_tag(tag)
        if not key or key in self._keys or self.full:
            return
        self._keys.add(key)
        self.tags.append(tag.strip())


class MoodFallbackMatcher:
    def __init__(
        self,
        config: Optional[StationConfig] = None,
        vocabulary: Optional[Vocabulary] = None,
    ):
        self.config = resolve_config(config)
        self.vocabulary = vocabulary or default_vocabulary()

    def match(
        self,
        free_text: str,
        known_tags: Iterable[Union[TagStat, str]],
        catalog: Optional[Iterable[Track]] = None,
    ) -> List[str]:
        """Return at most ``mood_max_tags`` tags for ``free_text``."""
        tokens = tokenize(free_text or "")
        token_keys = [k for k in (normalize_tag(t) for t in tokens) if k]
        if not token_keys:
            return []

        known = [t if isinstance(t, TagStat) else TagStat.from_tag(t) for t in known_tags]
        known = [t for t in known if t.key]
        known_by_key: Dict[str, TagStat] = {}
        for stat in known:
            known_by_key.setdefault(stat.key, stat)

        result = _TagCollector(self.config.mood_max_tags)

        self._direct_matches(token_keys, known, result)
        direct = len(result.tags)
        self._vibe_matches(tokens, known_by_key, result)
        vibes = len(result.tags) - direct
        if catalog is not None and not result.full:
            self._content_matches(token_keys, catalog, known_by_key, result)

        logger.debug(
            f"Mood '{free_text}': {direct} direct, {vibes} vibe, "
            f"{len(result.tags) - direct - vibes} content tags"
        )
        return result.tags

    def _direct_matches(self, token_keys: List[str], known: List[TagStat], result: _TagCollector) -> None:
        min_len = self.config.mood_substring_min_length
        for token in token_keys:
            for stat in known:
                if result.full:
                    return
                if token == stat.key or (
                    len(token) >= min_len
                    and len(stat.key) >= min_len
                    and (token in stat.key or stat.key in token)
                ):
                    result.add(stat.tag)

    def _vibe_matches(self, tokens: List[str], known_by_key: Dict[str, TagStat], result: _TagCollector) -> None:
        for token in tokens:
            for mapped in self.vocabulary.vibe_tags(token):
                stat = known_by_key.get(normalize_tag(mapped))
                if stat is not None:
                    result.add(stat.tag)

    def _content_matches(
        self,
        token_keys: List[str],
        catalog: Iterable[Track],
        known_by_key: Dict[str, TagStat],
        result: _TagCollector,
    ) -> None:
        search = [t for t in dict.fromkeys(token_keys) if len(t) >= self.config.mood_content_min_token_length]
        if not search:
            return

        hits_by_key: Dict[str, int] = {}
        display: Dict[str, str] = {}
        for track in catalog:
            text = normalize_tag(track.title) + " " + normalize_tag(track.lyrics_text)
            hits = sum(1 for token in search if token in text)
            if not hits:
                continue
            for tag in track.tags:
                key = normalize_tag(tag)
                if not key:
                    continue
                if key not in hits_by_key:
                    hits_by_key[key] = 0
                    stat = known_by_key.get(key)
                    display[key] = stat.tag if stat is not None else tag
                hits_by_key[key] += hits

        # ties keep first-seen order
        for key in sorted(hits_by_key, key=lambda k: hits_by_key[k], reverse=True):
            if result.full:
                break
            result.add(display[key])
