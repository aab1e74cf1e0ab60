#!/usr/bin/env python3
"""
Tests for narrative_graph/analyze.py

Tests the combined analysis result, memoization in NarrativeAnalyzer and
JSON serialization.
"""

import sys
import json
from pathlib import Path

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import narrative_graph.analyze as analyze_module
from narrative_graph.analyze import (
    NarrativeAnalyzer,
    analysis_key,
    perform_analysis,
    serialize_analysis,
)


def unit(unit_id, text, file_path=None):
    return {'id': unit_id, 'text': text, 'file_path': file_path or f'game/{unit_id}.rpy'}


SAMPLE_UNITS = [
    unit('characters', '# profile: The heroine\ndefine e = Character("Eileen", color="#ff0000")\n'
                       'default met_eileen = False\n', file_path='game/characters.rpy'),
    unit('script', 'label start:\n    e "Hi there."\n    $ met_eileen = True\n    menu:\n'
                   '        "Park":\n            jump park\n        "Cafe":\n            jump cafe\n'),
    unit('park', 'image bg park = "bg/park.png"\nlabel park:\n    "The park is quiet."\n    jump ending\n'),
    unit('cafe', 'label cafe:\n    e "Coffee?"\n    jump ending\n    jump secret_room\n'),
    unit('ending', 'label ending:\n    "The end."\n    return\n'),
    unit('screens', 'screen hud():\n    text "HUD"\n'),
]


# =============================================================================
# FULL ANALYSIS
# =============================================================================

def test_result_keys():
    """Test that every documented key is present."""
    result = perform_analysis(SAMPLE_UNITS)
    expected = {
        'links', 'invalid_jumps', 'first_labels', 'labels', 'transfers',
        'root_unit_ids', 'leaf_unit_ids', 'branching_unit_ids', 'story_unit_ids',
        'screen_only_unit_ids', 'config_unit_ids', 'characters', 'dialogue_lines',
        'character_usage', 'variables', 'variable_usages', 'screens',
        'defined_images', 'unit_types', 'label_nodes', 'route_edges', 'routes',
    }
    assert set(result) == expected


def test_sample_story():
    """Test a small multi-unit story end to end."""
    result = perform_analysis(SAMPLE_UNITS)

    assert {(l['source_id'], l['target_id']) for l in result['links']} == {
        ('script', 'park'), ('script', 'cafe'), ('park', 'ending'), ('cafe', 'ending'),
    }
    assert result['invalid_jumps'] == {'cafe': ['secret_room']}
    assert result['root_unit_ids'] == {'characters', 'script', 'screens'}
    assert result['leaf_unit_ids'] == {'characters', 'ending', 'screens'}
    assert result['branching_unit_ids'] == {'script'}
    assert result['story_unit_ids'] == {'characters', 'script', 'park', 'cafe', 'ending'}
    assert result['screen_only_unit_ids'] == {'screens'}
    assert result['config_unit_ids'] == set()

    assert result['characters']['e']['profile'] == 'The heroine'
    assert result['character_usage'] == {'e': 2}
    assert result['variable_usages']['met_eileen'] == [{'unit_id': 'script', 'line': 3}]
    assert result['defined_images'] == {'bg park'}
    assert result['first_labels']['cafe'] == 'cafe'

    sequences = [route['node_ids'] for route in result['routes']]
    assert sequences == [
        ['script:start', 'park:park', 'ending:ending'],
        ['script:start', 'cafe:cafe', 'ending:ending'],
    ]


def test_empty_analysis():
    """Test analysis of an empty unit collection."""
    result = perform_analysis([])
    assert result['links'] == []
    assert result['characters'] == {}
    assert result['root_unit_ids'] == set()
    assert result['routes'] == []


def test_fresh_result_per_call():
    """Test that each call returns independent data."""
    first = perform_analysis(SAMPLE_UNITS)
    second = perform_analysis(SAMPLE_UNITS)

    first['links'].clear()
    assert second['links']


# =============================================================================
# MEMOIZATION
# =============================================================================

def test_analysis_key_tracks_text():
    """Test that the key changes with unit text."""
    changed = [dict(SAMPLE_UNITS[0], text='label other:\n')] + SAMPLE_UNITS[1:]
    assert analysis_key(SAMPLE_UNITS) == analysis_key(list(SAMPLE_UNITS))
    assert analysis_key(SAMPLE_UNITS) != analysis_key(changed)


def test_analyzer_reuses_result():
    """Test that unchanged input returns the cached result object."""
    analyzer = NarrativeAnalyzer()
    first = analyzer.analyze(SAMPLE_UNITS)
    assert analyzer.analyze(list(SAMPLE_UNITS)) is first
    assert analyzer.result is first


def test_analyzer_recomputes_on_trigger_or_change():
    """Test recomputation on a new trigger value or edited text."""
    analyzer = NarrativeAnalyzer()
    first = analyzer.analyze(SAMPLE_UNITS)

    second = analyzer.analyze(SAMPLE_UNITS, trigger=1)
    assert second is not first

    edited = SAMPLE_UNITS[:-1] + [unit('screens', 'label bonus:\n    return\n')]
    third = analyzer.analyze(edited, trigger=1)
    assert third is not second
    assert 'bonus' in third['labels']


def test_analyzer_keeps_previous_result_on_error(monkeypatch):
    """Test that a failing pass leaves the previous result in effect."""
    analyzer = NarrativeAnalyzer()
    previous = analyzer.analyze(SAMPLE_UNITS)

    def explode(units):
        raise RuntimeError('pathological input')

    monkeypatch.setattr(analyze_module, 'perform_analysis', explode)
    with pytest.raises(RuntimeError):
        analyzer.analyze(SAMPLE_UNITS, trigger=5)

    assert analyzer.result is previous


# =============================================================================
# SERIALIZATION
# =============================================================================

def test_serialize_analysis_is_json_ready():
    """Test that sets become sorted lists and the result dumps to JSON."""
    serialized = serialize_analysis(perform_analysis(SAMPLE_UNITS))
    text = json.dumps(serialized)

    assert serialized['root_unit_ids'] == ['characters', 'screens', 'script']
    assert serialized['defined_images'] == ['bg park']
    assert isinstance(serialized['routes'][0]['edge_ids'], list)
    assert json.loads(text)['links']


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
