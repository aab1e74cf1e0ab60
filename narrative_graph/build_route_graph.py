#!/usr/bin/env python3
"""
Build Route Graph Module (Stage 3: Label Graph & Route Enumeration)

Builds a graph whose nodes are individual labels rather than whole units,
connects them with explicit (jump/call) and implicit (fall-through) edges,
and enumerates every distinct route from an entry label to a terminal label.

Input: units.json + structure.json + unit_graph.json
Output: route_graph.json (label nodes, route edges, routes)

Usage:
    python3 -m narrative_graph.build_route_graph units.json structure.json unit_graph.json route_graph.json
"""

import re
import sys
import json
import logging
import argparse
from collections import deque
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from narrative_graph.extract_structure import PALETTE, is_skipped_unit

logger = logging.getLogger(__name__)

ENTRY_LABEL = 'start'

TERMINAL_STATEMENT_PATTERN = re.compile(r'\b(jump|call|return)\b')
RETURN_STATEMENT_PATTERN = re.compile(r'\breturn\b')

LABEL_NODE_WIDTH = 180
LABEL_NODE_HEIGHT = 40
LABEL_X_SPACING = 250
LABEL_Y_SPACING = 100
LABEL_MARGIN = 50


# =============================================================================
# LABEL SPANS & NODES
# =============================================================================

def node_id_for(unit_id: str, label: str) -> str:
    """Return the label node ID for a label defined in a unit."""
    return f"{unit_id}:{label}"


def collect_label_spans(unit: Dict, labels: Dict[str, Dict]) -> List[Dict]:
    """Compute the body span of every plain label in a unit.

    A label's body runs from the line after its header up to the line
    before the next label header (or the end of the unit).

    Args:
        unit: Script unit dict
        labels: Global label index from extract_structure()

    Returns:
        List of span dicts ordered by start line:
        [{"label", "start_line", "end_line", "has_terminal", "has_return"}]
    """
    lines = unit.get('text', '').split('\n')
    in_unit = sorted(
        (loc for loc in labels.values()
         if loc['unit_id'] == unit['id'] and loc['kind'] != 'menu'),
        key=lambda loc: loc['line'],
    )

    spans = []
    for i, loc in enumerate(in_unit):
        start_line = loc['line']
        end_line = in_unit[i + 1]['line'] - 1 if i + 1 < len(in_unit) else len(lines)
        body = '\n'.join(lines[start_line:end_line])
        spans.append({
            'label': loc['name'],
            'start_line': start_line,
            'end_line': end_line,
            'has_terminal': bool(TERMINAL_STATEMENT_PATTERN.search(body)),
            'has_return': bool(RETURN_STATEMENT_PATTERN.search(body)),
        })
    return spans


def _container_name(unit: Dict) -> str:
    if unit.get('title'):
        return unit['title']
    if unit.get('file_path'):
        return unit['file_path'].split('/')[-1]
    return 'Untitled'


def build_label_nodes(units: List[Dict], spans_by_unit: Dict[str, List[Dict]]) -> Dict[str, Dict]:
    """Create one label node per plain label, in unit then line order."""
    nodes = {}
    units_by_id = {unit['id']: unit for unit in units}

    for unit_id, spans in spans_by_unit.items():
        container = _container_name(units_by_id[unit_id])
        for span in spans:
            node_id = node_id_for(unit_id, span['label'])
            nodes[node_id] = {
                'id': node_id,
                'label': span['label'],
                'unit_id': unit_id,
                'container_name': container,
                'start_line': span['start_line'],
                'position': {'x': 0, 'y': 0},
                'width': LABEL_NODE_WIDTH,
                'height': LABEL_NODE_HEIGHT,
            }
    return nodes


# =============================================================================
# EDGES
# =============================================================================

def _source_span(spans: List[Dict], line: int) -> Optional[Dict]:
    for span in reversed(spans):
        if span['start_line'] <= line:
            return span
    return None


def build_route_edges(spans_by_unit: Dict[str, List[Dict]], labels: Dict[str, Dict],
                      transfers: Dict[str, List[Dict]]) -> List[Dict]:
    """Connect label nodes with explicit and implicit edges.

    Explicit edges run from the label a transfer sits under to the label it
    targets. Implicit edges connect a label to the next label in the same
    unit when its body contains no jump, call or return.

    Args:
        spans_by_unit: Unit ID -> label spans from collect_label_spans()
        labels: Global label index
        transfers: Unit ID -> transfer list

    Returns:
        List of edge dicts: [{"id", "source_id", "target_id", "kind"}]
    """
    edges = []

    def add_edge(source_id: str, target_id: str, kind: str) -> None:
        edges.append({
            'id': f"rlink-{len(edges)}",
            'source_id': source_id,
            'target_id': target_id,
            'kind': kind,
        })

    for unit_id, spans in spans_by_unit.items():
        for transfer in transfers.get(unit_id, []):
            source = _source_span(spans, transfer['line'])
            if not source:
                continue
            target = labels.get(transfer['target'])
            # Dynamic targets only count when they name a known label
            if not target or target['kind'] == 'menu':
                continue
            add_edge(node_id_for(unit_id, source['label']),
                     node_id_for(target['unit_id'], target['name']),
                     transfer['kind'])

        for current, following in zip(spans, spans[1:]):
            if not current['has_terminal']:
                add_edge(node_id_for(unit_id, current['label']),
                         node_id_for(unit_id, following['label']),
                         'implicit')

    return edges


def build_adjacency(nodes: Dict[str, Dict], edges: List[Dict]) -> Tuple[Dict[str, List[Tuple[str, str]]], Dict[str, List[str]]]:
    """Return (outgoing, incoming) adjacency keyed by node ID.

    Outgoing entries are (target_id, edge_id) pairs in edge order.
    """
    outgoing = {node_id: [] for node_id in nodes}
    incoming = {node_id: [] for node_id in nodes}
    for edge in edges:
        if edge['source_id'] in outgoing:
            outgoing[edge['source_id']].append((edge['target_id'], edge['id']))
        if edge['target_id'] in incoming:
            incoming[edge['target_id']].append(edge['source_id'])
    return outgoing, incoming


# =============================================================================
# ENTRY & TERMINAL NODES
# =============================================================================

def find_entry_nodes(nodes: Dict[str, Dict], labels: Dict[str, Dict],
                     incoming: Dict[str, List[str]]) -> List[str]:
    """Return the 'start' label node, or every node without incoming edges."""
    start = labels.get(ENTRY_LABEL)
    if start and start['kind'] != 'menu':
        start_id = node_id_for(start['unit_id'], ENTRY_LABEL)
        if start_id in nodes:
            return [start_id]
    return [node_id for node_id in nodes if not incoming.get(node_id)]


def find_terminal_nodes(outgoing: Dict[str, List[Tuple[str, str]]]) -> Set[str]:
    """Return every node without outgoing edges."""
    return {node_id for node_id, targets in outgoing.items() if not targets}


# =============================================================================
# ROUTE ENUMERATION - DFS TRAVERSAL
# =============================================================================

def enumerate_routes(outgoing: Dict[str, List[Tuple[str, str]]], entry_nodes: List[str],
                     terminal_nodes: Set[str]) -> List[Tuple[List[str], List[str]]]:
    """Enumerate every distinct simple path from the entry nodes.

    Depth-first search carrying the node sequence of the current path. A node
    already on the current path is skipped, so cycles terminate while the
    same node can still appear on several different routes. A path is
    recorded when it reaches a terminal node; paths that never leave their
    entry node are dropped.

    Args:
        outgoing: Node ID -> [(target_id, edge_id)]
        entry_nodes: Node IDs to start from
        terminal_nodes: Node IDs where a route ends

    Returns:
        List of (node_ids, edge_ids) tuples in discovery order, unique by
        node sequence
    """
    unique_paths = {}

    for entry in entry_nodes:
        if entry in terminal_nodes or not outgoing.get(entry):
            continue

        path_nodes = [entry]
        path_edges = []
        on_path = {entry}
        stack = [iter(outgoing[entry])]

        while stack:
            step = next(stack[-1], None)
            if step is None:
                stack.pop()
                on_path.discard(path_nodes.pop())
                if path_edges:
                    path_edges.pop()
                continue

            target, edge_id = step
            if target in on_path:
                continue

            path_nodes.append(target)
            path_edges.append(edge_id)
            if target in terminal_nodes or not outgoing.get(target):
                unique_paths.setdefault(tuple(path_nodes), list(path_edges))
                path_nodes.pop()
                path_edges.pop()
            else:
                on_path.add(target)
                stack.append(iter(outgoing[target]))

    return [(list(node_ids), edge_ids) for node_ids, edge_ids in unique_paths.items()]


def assign_route_colors(paths: List[Tuple[List[str], List[str]]]) -> List[Dict]:
    """Turn enumerated paths into routes colored by discovery order."""
    routes = []
    for index, (node_ids, edge_ids) in enumerate(paths):
        routes.append({
            'id': index,
            'color': PALETTE[index % len(PALETTE)],
            'edge_ids': set(edge_ids),
            'node_ids': node_ids,
        })
    return routes


# =============================================================================
# LABEL GRAPH LAYOUT
# =============================================================================

def layout_label_graph(nodes: Dict[str, Dict], edges: List[Dict]) -> None:
    """Assign grid positions to label nodes (modifies nodes in place).

    Nodes without incoming edges are laid out breadth-first from depth 0.
    Anything left over (islands, pure cycles) starts a new cluster two
    columns to the right of the deepest column so far.
    """
    if not nodes:
        return

    outgoing, incoming = build_adjacency(nodes, edges)
    visited = set()
    layers = {}

    def process_component(start_ids: List[str], base_depth: int) -> None:
        queue = deque((node_id, base_depth) for node_id in start_ids)
        visited.update(start_ids)
        while queue:
            node_id, depth = queue.popleft()
            layers.setdefault(depth, []).append(node_id)
            for target_id, _ in outgoing[node_id]:
                if target_id in nodes and target_id not in visited:
                    visited.add(target_id)
                    queue.append((target_id, depth + 1))

    roots = [node_id for node_id in nodes
             if not any(src in nodes for src in incoming[node_id])]
    process_component(roots, 0)

    max_depth = max(layers.keys(), default=-1)
    while len(visited) < len(nodes):
        unvisited = next(node_id for node_id in nodes if node_id not in visited)
        process_component([unvisited], max_depth + 2)
        max_depth = max(layers.keys(), default=-1)

    for depth, layer in layers.items():
        for index, node_id in enumerate(layer):
            nodes[node_id]['position'] = {
                'x': depth * LABEL_X_SPACING + LABEL_MARGIN,
                'y': index * LABEL_Y_SPACING + LABEL_MARGIN,
            }


# =============================================================================
# MAIN BUILD FUNCTION
# =============================================================================

def build_route_graph(units: List[Dict], labels: Dict[str, Dict],
                      transfers: Dict[str, List[Dict]]) -> Dict:
    """Build the label graph and enumerate its routes.

    Args:
        units: List of script unit dicts
        labels: Global label index from extract_structure()
        transfers: Unit ID -> transfer list from build_unit_graph()

    Returns:
        Dict with structure:
        {
            "label_nodes": [{"id", "label", "unit_id", "start_line", "position", ...}],
            "route_edges": [{"id", "source_id", "target_id", "kind"}],
            "routes": [{"id", "color", "edge_ids", "node_ids"}],
            "entry_nodes": ["unit:start"],
            "terminal_nodes": {"unit:end", ...}
        }
    """
    spans_by_unit = {
        unit['id']: collect_label_spans(unit, labels)
        for unit in units if not is_skipped_unit(unit)
    }

    nodes = build_label_nodes(units, spans_by_unit)
    edges = build_route_edges(spans_by_unit, labels, transfers)
    outgoing, incoming = build_adjacency(nodes, edges)

    entry_nodes = find_entry_nodes(nodes, labels, incoming)
    terminal_nodes = find_terminal_nodes(outgoing)
    routes = assign_route_colors(enumerate_routes(outgoing, entry_nodes, terminal_nodes))

    layout_label_graph(nodes, edges)

    logger.info(
        f"Built route graph: {len(nodes)} label nodes, {len(edges)} edges, {len(routes)} routes"
    )

    return {
        'label_nodes': list(nodes.values()),
        'route_edges': edges,
        'routes': routes,
        'entry_nodes': entry_nodes,
        'terminal_nodes': terminal_nodes,
    }


def routes_to_json(routes: List[Dict]) -> List[Dict]:
    """Return routes with their edge ID sets as lists in edge creation order."""
    return [
        dict(route, edge_ids=sorted(route['edge_ids'], key=lambda e: int(e.split('-')[1])))
        for route in routes
    ]


def route_graph_to_json(route_graph: Dict) -> Dict:
    """Return a JSON-serializable copy of a route graph dict."""
    result = dict(route_graph)
    result['routes'] = routes_to_json(route_graph['routes'])
    result['terminal_nodes'] = sorted(route_graph['terminal_nodes'])
    return result


# =============================================================================
# CLI INTERFACE
# =============================================================================

def main():
    """Main entry point for command-line usage."""
    parser = argparse.ArgumentParser(
        description='Build the label graph and enumerate routes'
    )
    parser.add_argument('units_json', type=Path, help='Path to units.json file')
    parser.add_argument('structure_json', type=Path, help='Path to structure.json file')
    parser.add_argument('unit_graph_json', type=Path, help='Path to unit_graph.json file')
    parser.add_argument('output_json', type=Path, help='Path to output route_graph.json file')

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')

    for input_path in (args.units_json, args.structure_json, args.unit_graph_json):
        if not input_path.exists():
            print(f"Error: Input file not found: {input_path}", file=sys.stderr)
            sys.exit(1)

    with open(args.units_json, 'r', encoding='utf-8') as f:
        units = json.load(f)
    with open(args.structure_json, 'r', encoding='utf-8') as f:
        structure = json.load(f)
    with open(args.unit_graph_json, 'r', encoding='utf-8') as f:
        unit_graph = json.load(f)

    route_graph = build_route_graph(units, structure['labels'], unit_graph['transfers'])

    args.output_json.parent.mkdir(parents=True, exist_ok=True)
    with open(args.output_json, 'w', encoding='utf-8') as f:
        json.dump(route_graph_to_json(route_graph), f, indent=2)

    print(f"✓ Found {len(route_graph['routes'])} routes", file=sys.stderr)
    print(f"✓ Output: {args.output_json}", file=sys.stderr)


if __name__ == '__main__':
    main()
