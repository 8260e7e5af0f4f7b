"""Load vocabulary entries from YAML files."""

import logging
from pathlib import Path
from typing import Any

import yaml

from mneme.domain.study.models import Vocabulary

logger = logging.getLogger(__name__)

# YAML key -> Vocabulary field
_FIELD_ALIASES = {
    "def_th": "definition_th",
    "def_en": "definition_en",
    "type": "part_of_speech",
    "pos": "part_of_speech",
}
_FIELDS = set(Vocabulary.__dataclass_fields__)


def _to_vocabulary(raw: dict[str, Any], deck: str | None, index: int) -> Vocabulary:
    data = {_FIELD_ALIASES.get(k, k): v for k, v in raw.items()}
    unknown = set(data) - _FIELDS
    if unknown:
        raise ValueError(f"Entry #{index + 1} has unknown keys: {sorted(unknown)}")
    if not data.get("word"):
        raise ValueError(f"Entry #{index + 1} is missing 'word'")

    data.setdefault("id", 0)
    if deck and not data.get("tag"):
        data["tag"] = deck
    return Vocabulary(**data)


def parse_vocabulary(content: str) -> list[Vocabulary]:
    """
    Parse vocabulary YAML.

    Accepts either a bare list of entries or a mapping with a ``words`` list
    and an optional ``deck`` tag applied to entries without their own.
    """
    doc = yaml.safe_load(content)
    deck = None
    if isinstance(doc, dict):
        deck = doc.get("deck")
        doc = doc.get("words")
    if not isinstance(doc, list):
        raise ValueError("Expected a list of vocabulary entries (or a 'words' list)")

    items = []
    for i, raw in enumerate(doc):
        if not isinstance(raw, dict):
            raise ValueError(f"Entry #{i + 1} is not a mapping")
        items.append(_to_vocabulary(raw, deck, i))
    return items


def load_vocabulary(path: Path) -> list[Vocabulary]:
    items = parse_vocabulary(Path(path).read_text(encoding="utf-8"))
    logger.info(f"Loaded {len(items)} vocabulary entries from {path}")
    return items
