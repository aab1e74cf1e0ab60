#!/usr/bin/env python3
"""
Tests for narrative_graph/report.py

Tests statistics, row building and HTML rendering of an analysis result.
"""

import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from narrative_graph.analyze import perform_analysis
from narrative_graph.report import (
    build_route_rows,
    build_unit_rows,
    calculate_statistics,
    generate_report,
)


UNITS = [
    {'id': 'A', 'text': 'define e = Character("Eileen", color="#ff0000")\nlabel start:\n    e "Hi"\n    jump b\n'},
    {'id': 'B', 'text': 'label b:\n    jump nowhere\n    return\n'},
]


def test_calculate_statistics():
    """Test summary counts."""
    stats = calculate_statistics(perform_analysis(UNITS), len(UNITS))

    assert stats['units'] == 2
    assert stats['labels'] == 2
    assert stats['links'] == 1
    assert stats['routes'] == 1
    assert stats['characters'] == 1
    assert stats['invalid_jumps'] == 1


def test_build_unit_rows():
    """Test per-unit roles and unresolved jumps."""
    rows = build_unit_rows(perform_analysis(UNITS), ['A', 'B'])

    assert rows[0]['first_label'] == 'start'
    assert 'root' in rows[0]['roles']
    assert 'root' not in rows[1]['roles']
    assert rows[1]['invalid_jumps'] == ['nowhere']


def test_build_route_rows():
    """Test routes are described by label names."""
    rows = build_route_rows(perform_analysis(UNITS))
    assert rows == [{'id': 0, 'color': rows[0]['color'], 'labels': ['start', 'b'], 'length': 1}]


def test_generate_report_html():
    """Test the rendered page contains the key content."""
    html = generate_report(perform_analysis(UNITS), ['A', 'B'], title='My Visual Novel')

    assert '<title>My Visual Novel</title>' in html
    assert 'Eileen' in html
    assert 'start → b' in html
    assert 'nowhere' in html


def test_generate_report_escapes_title():
    """Test that HTML in the title is escaped."""
    html = generate_report(perform_analysis(UNITS), ['A', 'B'], title='<b>x</b>')
    assert '&lt;b&gt;x&lt;/b&gt;' in html


def test_generate_report_empty():
    """Test rendering with no units."""
    html = generate_report(perform_analysis([]), [])
    assert 'No characters defined.' in html
    assert 'No routes found.' in html


if __name__ == '__main__':
    import pytest
    pytest.main([__file__, '-v'])
