#!/usr/bin/env python3
"""
Compute Layout Module (Stage 4: Unit Graph Layout)

Lays the unit graph out left to right: units are split into layers with
Kahn's algorithm, each layer becomes a column, and units within a column are
stacked vertically around y = 0.

Input: units.json + unit_graph.json (for the unit links)
Output: units_layout.json (units with their 'position' replaced)

Usage:
    python3 -m narrative_graph.compute_layout units.json unit_graph.json units_layout.json
"""

import sys
import json
import logging
import argparse
from collections import deque
from pathlib import Path
from typing import Dict, List

logger = logging.getLogger(__name__)

PADDING_X = 100
PADDING_Y = 80
DEFAULT_WIDTH = 300
DEFAULT_HEIGHT = 150
# Sizes at or below this are treated as unset
MIN_SIZE = 50


def _size(unit: Dict, key: str, default: int) -> float:
    value = unit.get(key)
    return value if value and value > MIN_SIZE else default


# =============================================================================
# LAYERING
# =============================================================================

def compute_layers(unit_ids: List[str], links: List[Dict]) -> List[List[str]]:
    """Split units into layers with Kahn's algorithm.

    Each round takes every unit whose in-degree has dropped to zero as one
    layer. When no unit starts at in-degree zero (the graph is one big
    cycle), the unit with the smallest in-degree seeds the first layer.
    Units never reached are appended together as a final layer.

    Args:
        unit_ids: Unit IDs in input order
        links: Unit links ({"source_id", "target_id"}); links to unknown
            units are ignored

    Returns:
        List of layers, each a list of unit IDs
    """
    known = set(unit_ids)
    successors = {unit_id: [] for unit_id in unit_ids}
    in_degree = {unit_id: 0 for unit_id in unit_ids}

    for link in links:
        source, target = link['source_id'], link['target_id']
        if source in known and target in known:
            successors[source].append(target)
            in_degree[target] += 1

    queue = deque(unit_id for unit_id in unit_ids if in_degree[unit_id] == 0)
    if not queue and unit_ids:
        seed = min(unit_ids, key=lambda unit_id: in_degree[unit_id])
        logger.debug(f"No zero in-degree unit, seeding layout with {seed}")
        queue.append(seed)

    layers = []
    placed = set()
    while queue:
        layer = []
        for _ in range(len(queue)):
            unit_id = queue.popleft()
            if unit_id in placed:
                continue
            placed.add(unit_id)
            layer.append(unit_id)

            for target in successors[unit_id]:
                in_degree[target] -= 1
                if in_degree[target] <= 0 and target not in placed and target not in queue:
                    queue.append(target)
        if layer:
            layers.append(layer)

    remaining = [unit_id for unit_id in unit_ids if unit_id not in placed]
    if remaining:
        layers.append(remaining)

    return layers


# =============================================================================
# POSITIONING
# =============================================================================

def compute_layout(units: List[Dict], links: List[Dict]) -> List[Dict]:
    """Compute a left-to-right layered position for every unit.

    Args:
        units: Script unit dicts (optional 'width'/'height')
        links: Unit links from build_unit_graph()

    Returns:
        New unit dicts in input order, identical to the input except for
        'position' ({"x", "y"})
    """
    if not units:
        return []

    units_by_id = {unit['id']: unit for unit in units}
    layers = compute_layers(list(units_by_id), links)
    positions = {}

    layer_x = 0
    for layer in layers:
        max_width = max(_size(units_by_id[unit_id], 'width', DEFAULT_WIDTH) for unit_id in layer)
        total_height = sum(_size(units_by_id[unit_id], 'height', DEFAULT_HEIGHT) for unit_id in layer)
        total_height += (len(layer) - 1) * PADDING_Y

        current_y = -total_height / 2
        for unit_id in layer:
            unit = units_by_id[unit_id]
            width = _size(unit, 'width', DEFAULT_WIDTH)
            positions[unit_id] = {
                'x': layer_x + (max_width - width) / 2,
                'y': current_y,
            }
            current_y += _size(unit, 'height', DEFAULT_HEIGHT) + PADDING_Y

        layer_x += max_width + PADDING_X

    logger.info(f"Laid out {len(units_by_id)} units in {len(layers)} layers")

    return [dict(unit, position=positions[unit['id']]) for unit in units]


# =============================================================================
# CLI INTERFACE
# =============================================================================

def main():
    """Main entry point for command-line usage."""
    parser = argparse.ArgumentParser(
        description='Compute a layered layout for the unit graph'
    )
    parser.add_argument('units_json', type=Path, help='Path to units.json file')
    parser.add_argument('unit_graph_json', type=Path, help='Path to unit_graph.json file')
    parser.add_argument('output_json', type=Path, help='Path to output units_layout.json file')

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')

    for input_path in (args.units_json, args.unit_graph_json):
        if not input_path.exists():
            print(f"Error: Input file not found: {input_path}", file=sys.stderr)
            sys.exit(1)

    with open(args.units_json, 'r', encoding='utf-8') as f:
        units = json.load(f)
    with open(args.unit_graph_json, 'r', encoding='utf-8') as f:
        unit_graph = json.load(f)

    positioned = compute_layout(units, unit_graph.get('links', []))

    args.output_json.parent.mkdir(parents=True, exist_ok=True)
    with open(args.output_json, 'w', encoding='utf-8') as f:
        json.dump(positioned, f, indent=2)

    print(f"✓ Positioned {len(positioned)} units", file=sys.stderr)
    print(f"✓ Output: {args.output_json}", file=sys.stderr)


if __name__ == '__main__':
    main()
