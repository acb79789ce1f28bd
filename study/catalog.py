"""Content catalog: the fixed order in which new cards are introduced."""

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

# Easiest first
JLPT_LEVELS = ('N5', 'N4', 'N3', 'N2', 'N1')


def level_rank(level: str) -> int:
    """Position of a JLPT level; unknown levels sort after N1."""
    try:
        return JLPT_LEVELS.index(level.upper())
    except ValueError:
        return len(JLPT_LEVELS)


@dataclass
class CatalogCard:
    """A card the learner can be introduced to."""
    card_id: str
    topic: str = ''
    level: str = 'N5'
    position: int = 0

    def sort_key(self):
        return (level_rank(self.level), self.topic, self.position, self.card_id)

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'CatalogCard':
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


class CardCatalog:
    """
    Immutable, deterministically ordered card catalog.

    Order: JLPT level (N5 first), topic, position, card_id. New cards are
    always offered in this order; shuffling for presentation is the UI's
    business.
    """

    def __init__(self, cards: Iterable[CatalogCard] = ()):
        by_id: Dict[str, CatalogCard] = {}
        for card in cards:
            by_id[card.card_id] = card
        self._cards: List[CatalogCard] = sorted(by_id.values(), key=CatalogCard.sort_key)
        self._by_id = by_id

    @classmethod
    def load(cls, path) -> 'CardCatalog':
        """
        Load from a JSONL file (one card per line) or a JSON array.
        A missing file gives an empty catalog.
        """
        path = Path(path)
        if not path.exists():
            return cls()
        text = path.read_text(encoding='utf-8')
        if text.lstrip().startswith('['):
            rows = json.loads(text)
        else:
            rows = [json.loads(line) for line in text.splitlines() if line.strip()]
        return cls(CatalogCard.from_dict(r) for r in rows)

    def get(self, card_id: str) -> Optional[CatalogCard]:
        return self._by_id.get(card_id)

    def ordered_ids(self) -> List[str]:
        return [c.card_id for c in self._cards]

    def new_card_ids(self, exclude: Set[str], limit: Optional[int] = None) -> List[str]:
        """Catalog order, skipping `exclude`."""
        out: List[str] = []
        for card in self._cards:
            if limit is not None and len(out) >= limit:
                break
            if card.card_id not in exclude:
                out.append(card.card_id)
        return out

    def __len__(self) -> int:
        return len(self._cards)

    def __contains__(self, card_id) -> bool:
        return card_id in self._by_id
