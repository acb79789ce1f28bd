"""Tests for study/catalog.py -- content order for new cards."""

import json
import sys
import tempfile
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from study.catalog import CardCatalog, CatalogCard, level_rank


def test_ordered_by_level_topic_position():
    catalog = CardCatalog([
        CatalogCard('k2', topic='kanji', level='N4', position=0),
        CatalogCard('h2', topic='hiragana', level='N5', position=2),
        CatalogCard('h1', topic='hiragana', level='N5', position=1),
        CatalogCard('v1', topic='vocab', level='N5', position=0),
    ])
    assert catalog.ordered_ids() == ['h1', 'h2', 'v1', 'k2']


def test_unknown_level_sorts_last():
    assert level_rank('n5') == 0
    assert level_rank('N1') == 4
    assert level_rank('X') == 5


def test_new_card_ids_excludes_and_limits():
    catalog = CardCatalog(CatalogCard(f'c{i}', position=i) for i in range(5))
    assert catalog.new_card_ids({'c0', 'c2'}) == ['c1', 'c3', 'c4']
    assert catalog.new_card_ids(set(), limit=2) == ['c0', 'c1']
    assert catalog.new_card_ids(set(), limit=0) == []


def test_load_jsonl_and_json_array():
    with tempfile.TemporaryDirectory() as tmp:
        rows = [{'card_id': 'a', 'topic': 't', 'level': 'N3', 'position': 1, 'extra': True},
                {'card_id': 'b', 'level': 'N5'}]
        jsonl = Path(tmp) / 'catalog.jsonl'
        jsonl.write_text('\n'.join(json.dumps(r) for r in rows) + '\n', encoding='utf-8')
        array = Path(tmp) / 'catalog.json'
        array.write_text(json.dumps(rows), encoding='utf-8')

        for path in (jsonl, array):
            catalog = CardCatalog.load(path)
            assert catalog.ordered_ids() == ['b', 'a']
            assert 'a' in catalog
            assert catalog.get('a').level == 'N3'


def test_missing_file_is_empty():
    with tempfile.TemporaryDirectory() as tmp:
        catalog = CardCatalog.load(Path(tmp) / 'nope.jsonl')
        assert len(catalog) == 0
