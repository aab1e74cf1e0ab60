#!/usr/bin/env python3
"""
Tests for narrative_graph/load_units.py

Tests loading .rpy files from a directory tree and from units.json.
"""

import sys
import json
import tempfile
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from narrative_graph.load_units import load_units, load_units_from_path


def write_file(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding='utf-8')


def test_load_units_from_directory():
    """Test IDs are paths relative to the parent of the source directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        game = Path(tmpdir) / 'game'
        write_file(game / 'script.rpy', 'label start:\n    return\n')
        write_file(game / 'sub' / 'x.rpy', 'label x:\n    return\n')
        write_file(game / 'notes.txt', 'not a script')

        units = load_units(game)

        assert [u['id'] for u in units] == ['game/script.rpy', 'game/sub/x.rpy']
        assert units[0]['file_path'] == 'game/script.rpy'
        assert units[0]['title'] == 'script.rpy'
        assert units[0]['text'] == 'label start:\n    return\n'


def test_load_units_missing_directory():
    """Test that a missing directory yields no units."""
    with tempfile.TemporaryDirectory() as tmpdir:
        assert load_units(Path(tmpdir) / 'missing') == []


def test_load_units_skips_undecodable_file():
    """Test that a file that is not UTF-8 is skipped, not fatal."""
    with tempfile.TemporaryDirectory() as tmpdir:
        game = Path(tmpdir) / 'game'
        write_file(game / 'good.rpy', 'label start:\n')
        (game / 'bad.rpy').write_bytes(b'\xff\xfe\xfa label')

        units = load_units(game)
        assert [u['id'] for u in units] == ['game/good.rpy']


def test_load_units_from_json():
    """Test reading a units.json file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        units_json = Path(tmpdir) / 'units.json'
        units = [{'id': 'u1', 'text': 'label start:\n', 'file_path': 'game/u1.rpy'}]
        units_json.write_text(json.dumps(units), encoding='utf-8')

        assert load_units_from_path(units_json) == units


def test_load_units_from_path_directory():
    """Test that a directory path is loaded as scripts."""
    with tempfile.TemporaryDirectory() as tmpdir:
        game = Path(tmpdir) / 'game'
        write_file(game / 'a.rpy', 'label a:\n')

        assert [u['id'] for u in load_units_from_path(game)] == ['game/a.rpy']


if __name__ == '__main__':
    import pytest
    pytest.main([__file__, '-v'])
