#!/usr/bin/env python3
"""
Report Module

Renders an analysis result as a single static HTML page using a Jinja2
template: summary statistics, unit classification, unresolved jumps,
characters and every enumerated route.

Usage:
    python3 -m narrative_graph.report game/ analysis.html --title "My Game"
"""

import sys
import logging
import argparse
from pathlib import Path
from datetime import datetime, timezone
from typing import Dict, List
from jinja2 import Environment, FileSystemLoader, select_autoescape

from narrative_graph.analyze import perform_analysis
from narrative_graph.load_units import load_units_from_path

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / 'templates'
TEMPLATE_NAME = 'analysis_report.html.jinja2'

CLASSIFICATION_KEYS = [
    ('root', 'root_unit_ids'),
    ('leaf', 'leaf_unit_ids'),
    ('branching', 'branching_unit_ids'),
    ('story', 'story_unit_ids'),
    ('screen-only', 'screen_only_unit_ids'),
    ('config', 'config_unit_ids'),
]


def build_unit_rows(result: Dict, unit_ids: List[str]) -> List[Dict]:
    """Build one table row per unit with its first label and roles."""
    rows = []
    for unit_id in unit_ids:
        roles = [name for name, key in CLASSIFICATION_KEYS if unit_id in result[key]]
        rows.append({
            'id': unit_id,
            'first_label': result['first_labels'].get(unit_id, ''),
            'roles': roles,
            'types': sorted(result['unit_types'].get(unit_id, [])),
            'invalid_jumps': result['invalid_jumps'].get(unit_id, []),
        })
    return rows


def build_route_rows(result: Dict) -> List[Dict]:
    """Describe each route as the label names it passes through."""
    labels_by_node = {node['id']: node['label'] for node in result['label_nodes']}
    return [
        {
            'id': route['id'],
            'color': route['color'],
            'labels': [labels_by_node.get(node_id, node_id) for node_id in route['node_ids']],
            'length': len(route['edge_ids']),
        }
        for route in result['routes']
    ]


def calculate_statistics(result: Dict, unit_count: int) -> Dict:
    """Summary counts shown at the top of the report."""
    return {
        'units': unit_count,
        'labels': len(result['labels']),
        'links': len(result['links']),
        'label_nodes': len(result['label_nodes']),
        'route_edges': len(result['route_edges']),
        'routes': len(result['routes']),
        'characters': len(result['characters']),
        'variables': len(result['variables']),
        'screens': len(result['screens']),
        'images': len(result['defined_images']),
        'invalid_jumps': sum(len(targets) for targets in result['invalid_jumps'].values()),
    }


def generate_report(result: Dict, unit_ids: List[str], title: str = 'Story Analysis') -> str:
    """Render an analysis result to HTML.

    Args:
        result: Dict from perform_analysis()
        unit_ids: IDs of the analysed units, in display order
        title: Page title

    Returns:
        Rendered HTML string
    """
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(['html', 'jinja2']),
    )
    template = env.get_template(TEMPLATE_NAME)

    characters = sorted(result['characters'].values(), key=lambda c: c['tag'])

    return template.render(
        title=title,
        generated_at=datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC'),
        statistics=calculate_statistics(result, len(unit_ids)),
        units=build_unit_rows(result, unit_ids),
        characters=characters,
        character_usage=result['character_usage'],
        routes=build_route_rows(result),
    )


def main():
    """Main entry point for command-line usage."""
    parser = argparse.ArgumentParser(
        description='Render an HTML analysis report for Ren\'Py scripts'
    )
    parser.add_argument('source', type=Path, help='Directory of .rpy files or units.json')
    parser.add_argument('output_html', type=Path, help='Path to output HTML file')
    parser.add_argument('--title', default='Story Analysis', help='Report title')

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')

    if not args.source.exists():
        print(f"Error: Input not found: {args.source}", file=sys.stderr)
        sys.exit(1)

    units = load_units_from_path(args.source)
    result = perform_analysis(units)
    html = generate_report(result, [unit['id'] for unit in units], args.title)

    args.output_html.parent.mkdir(parents=True, exist_ok=True)
    with open(args.output_html, 'w', encoding='utf-8') as f:
        f.write(html)

    print(f"✓ Report with {len(result['routes'])} routes", file=sys.stderr)
    print(f"✓ Output: {args.output_html}", file=sys.stderr)


if __name__ == '__main__':
    main()
