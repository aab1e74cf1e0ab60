#!/usr/bin/env python3
"""
Analyze Module

Runs the analysis stages over a collection of script units and assembles
the full analysis result:

- Stage 1: extract_structure (labels, characters, variables, screens, images)
- Stage 2: build_unit_graph (transfers, unit links, classification)
- Stage 3: build_route_graph (label nodes, route edges, routes)

Every call is a full recomputation. NarrativeAnalyzer keeps the last result
and only recomputes when the units (or an explicit trigger) change.

Usage:
    python3 -m narrative_graph.analyze game/ analysis.json
    python3 -m narrative_graph.analyze units.json analysis.json
"""

import sys
import json
import logging
import argparse
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from narrative_graph.extract_structure import extract_structure
from narrative_graph.build_unit_graph import build_unit_graph
from narrative_graph.build_route_graph import build_route_graph, routes_to_json
from narrative_graph.load_units import load_units_from_path

logger = logging.getLogger(__name__)

# Result keys holding sets, serialized as sorted lists
SET_KEYS = [
    'root_unit_ids', 'leaf_unit_ids', 'branching_unit_ids', 'story_unit_ids',
    'screen_only_unit_ids', 'config_unit_ids', 'defined_images',
]


def perform_analysis(units: List[Dict]) -> Dict:
    """Analyse script units and return the full analysis result.

    Args:
        units: List of script unit dicts with 'id', 'text' and optional
            'file_path'

    Returns:
        Dict with keys: links, invalid_jumps, first_labels, labels,
        transfers, root_unit_ids, leaf_unit_ids, branching_unit_ids,
        story_unit_ids, screen_only_unit_ids, config_unit_ids, characters,
        dialogue_lines, character_usage, variables, variable_usages,
        screens, defined_images, unit_types, label_nodes, route_edges,
        routes
    """
    structure = extract_structure(units)
    unit_graph = build_unit_graph(units, structure)
    route_graph = build_route_graph(units, structure['labels'], unit_graph['transfers'])
    classification = unit_graph['classification']

    logger.info(f"Analysis complete for {len(units)} units")

    return {
        'links': unit_graph['links'],
        'invalid_jumps': unit_graph['invalid_jumps'],
        'first_labels': structure['first_labels'],
        'labels': structure['labels'],
        'transfers': unit_graph['transfers'],
        'root_unit_ids': classification['root'],
        'leaf_unit_ids': classification['leaf'],
        'branching_unit_ids': classification['branching'],
        'story_unit_ids': classification['story'],
        'screen_only_unit_ids': classification['screen_only'],
        'config_unit_ids': classification['config'],
        'characters': structure['characters'],
        'dialogue_lines': unit_graph['dialogue_lines'],
        'character_usage': unit_graph['character_usage'],
        'variables': structure['variables'],
        'variable_usages': unit_graph['variable_usages'],
        'screens': structure['screens'],
        'defined_images': structure['defined_images'],
        'unit_types': unit_graph['unit_types'],
        'label_nodes': route_graph['label_nodes'],
        'route_edges': route_graph['route_edges'],
        'routes': route_graph['routes'],
    }


def analysis_key(units: List[Dict]) -> str:
    """Return a key that changes whenever any unit's ID or text changes."""
    return '||'.join(f"{unit['id']}:{unit.get('text', '')}" for unit in units)


class NarrativeAnalyzer:
    """Memoizing front end for perform_analysis().

    The result is recomputed only when the unit key or the trigger differ
    from the previous call. If a recomputation raises, the previous result
    stays in place and the exception propagates to the caller.
    """

    def __init__(self) -> None:
        self._cache_key: Optional[Tuple[str, int]] = None
        self._result: Optional[Dict] = None

    @property
    def result(self) -> Optional[Dict]:
        return self._result

    def analyze(self, units: List[Dict], trigger: int = 0) -> Dict:
        key = (analysis_key(units), trigger)
        if self._result is not None and key == self._cache_key:
            return self._result

        result = perform_analysis(units)
        self._cache_key = key
        self._result = result
        return result


def serialize_analysis(result: Dict) -> Dict:
    """Return a JSON-serializable copy of an analysis result."""
    serialized = dict(result)
    for key in SET_KEYS:
        serialized[key] = sorted(result[key])
    serialized['unit_types'] = {
        unit_id: sorted(types) for unit_id, types in result['unit_types'].items()
    }
    serialized['routes'] = routes_to_json(result['routes'])
    return serialized


# =============================================================================
# CLI INTERFACE
# =============================================================================

def main():
    """Main entry point for command-line usage."""
    parser = argparse.ArgumentParser(
        description='Analyse Ren\'Py scripts into analysis.json'
    )
    parser.add_argument('source', type=Path, help='Directory of .rpy files or units.json')
    parser.add_argument('output_json', type=Path, help='Path to output analysis.json file')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s: %(message)s',
    )

    if not args.source.exists():
        print(f"Error: Input not found: {args.source}", file=sys.stderr)
        sys.exit(1)

    units = load_units_from_path(args.source)
    result = perform_analysis(units)

    args.output_json.parent.mkdir(parents=True, exist_ok=True)
    with open(args.output_json, 'w', encoding='utf-8') as f:
        json.dump(serialize_analysis(result), f, indent=2)

    print(f"✓ Analysed {len(units)} units", file=sys.stderr)
    print(f"✓ Found {len(result['labels'])} labels and {len(result['routes'])} routes", file=sys.stderr)
    print(f"✓ Output: {args.output_json}", file=sys.stderr)


if __name__ == '__main__':
    main()
