"""
Curated tag vocabulary: the related-genre graph and the vibe-to-genre map.

Both tables are hand-authored data, so they ship as a versioned JSON file
(data/vocabulary.json) instead of constants.  STATION_VOCABULARY_PATH points
at a replacement file; extending the tables never needs a code change.

    vocab = Vocabulary.load()
    vocab.is_related("hiphop", "trap")   # True (normalized keys)
    vocab.vibe_tags("chill")             # ["Lo-Fi", "Ambient", "Downtempo"]
"""

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Set

from loguru import logger
from pydantic import BaseModel, PrivateAttr, ValidationError

from .tags import normalize_tag

DATA_DIR = Path(__file__).resolve().parent / "data"
DEFAULT_VOCABULARY_PATH = DATA_DIR / "vocabulary.json"


class Vocabulary(BaseModel):
    """
    related: genre -> genres it blends with.  Relationships are symmetric:
        declaring "hip hop" -> ["trap"] also relates "trap" to "hip hop".
    vibes: mood word -> tags that express it.
    """

    version: int = 1
    related: Dict[str, List[str]] = {}
    vibes: Dict[str, List[str]] = {}

    _related_keys: Dict[str, Set[str]] = PrivateAttr(default_factory=dict)
    _vibe_keys: Dict[str, List[str]] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context) -> None:
        graph: Dict[str, Set[str]] = {}
        for head, others in self.related.items():
            head_key = normalize_tag(head)
            if not head_key:
                continue
            for other in others:
                other_key = normalize_tag(other)
                if not other_key or other_key == head_key:
                    continue
                graph.setdefault(head_key, set()).add(other_key)
                graph.setdefault(other_key, set()).add(head_key)
        self._related_keys = graph

        vibes: Dict[str, List[str]] = {}
        for word, tags in self.vibes.items():
            word_key = normalize_tag(word)
            if not word_key:
                continue
            bucket = vibes.setdefault(word_key, [])
            for tag in tags:
                if tag not in bucket:
                    bucket.append(tag)
        self._vibe_keys = vibes

    def is_related(self, a: str, b: str) -> bool:
        """True if normalized tags ``a`` and ``b`` are declared related."""
        return b in self._related_keys.get(a, ())

    def vibe_tags(self, word: str) -> List[str]:
        """Tags mapped from a mood word (matched by normalized form)."""
        return list(self._vibe_keys.get(normalize_tag(word), ()))

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Vocabulary":
        """Load from ``path``, else STATION_VOCABULARY_PATH, else the bundled file."""
        if path is None:
            env_path = os.environ.get("STATION_VOCABULARY_PATH", "")
            path = Path(env_path) if env_path else DEFAULT_VOCABULARY_PATH
        try:
            with open(path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read vocabulary file {path}: {e}")
            raise
        try:
            vocab = cls.model_validate(data)
        except ValidationError as e:
            logger.error(f"Invalid vocabulary file {path}: {e}")
            raise
        logger.info(
            f"Vocabulary v{vocab.version} loaded from {path}: "
            f"{len(vocab._related_keys)} related tags, {len(vocab._vibe_keys)} vibe words"
        )
        return vocab


@lru_cache(maxsize=1)
def default_vocabulary() -> Vocabulary:
    """The bundled vocabulary, loaded once per process."""
    return Vocabulary.load(DEFAULT_VOCABULARY_PATH)
