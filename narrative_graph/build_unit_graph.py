#!/usr/bin/env python3
"""
Build Unit Graph Module (Stage 2: Transfers & Unit Classification)

Scans every script unit line by line for control transfers (jump/call),
dialogue lines and variable usages, then turns cross-unit transfers into
deduplicated unit links and classifies each unit by its role in the graph.

Input: units.json + structure.json (from extract_structure)
Output: unit_graph.json (transfers, links, invalid jumps, dialogue,
        usages, unit types and classification sets)

Usage:
    python3 -m narrative_graph.build_unit_graph units.json structure.json unit_graph.json
"""

import re
import sys
import json
import logging
import argparse
from pathlib import Path
from typing import Dict, List, Set

from narrative_graph.extract_structure import LABEL_PATTERN, is_skipped_unit

logger = logging.getLogger(__name__)

JUMP_CALL_EXPRESSION_PATTERN = re.compile(r'\b(jump|call)\s+expression\s+([a-zA-Z0-9_.]+)')
JUMP_CALL_STATIC_PATTERN = re.compile(r'\b(jump|call)\s+([a-zA-Z0-9_]+)')
MENU_PATTERN = re.compile(r'^\s*menu(?:\s+[a-zA-Z0-9_]+)?\s*:')
DIALOGUE_PATTERN = re.compile(r'^\s*([a-zA-Z0-9_]+)\s+"')
NARRATION_PATTERN = re.compile(r'^\s*"(?!:)')
DOUBLE_QUOTED_PATTERN = re.compile(r'"[^"\\]*(?:\\.[^"\\]*)*"')
SINGLE_QUOTED_PATTERN = re.compile(r"'[^'\\]*(?:\\.[^'\\]*)*'")

# Files that count as story content even without any label
STORY_FILE_PATHS = ['game/variables.rpy', 'game/characters.rpy']


# =============================================================================
# LINE SCANNING
# =============================================================================

def sanitize_line(line: str) -> str:
    """Blank out string literal bodies and drop the trailing comment.

    ``e "jump away" # call later`` becomes ``e "" `` so words inside
    dialogue or comments are never mistaken for statements.
    """
    sanitized = DOUBLE_QUOTED_PATTERN.sub('""', line)
    sanitized = SINGLE_QUOTED_PATTERN.sub("''", sanitized)
    comment_index = sanitized.find('#')
    if comment_index != -1:
        sanitized = sanitized[:comment_index]
    return sanitized


def find_transfers(sanitized_line: str, unit_id: str, line_number: int) -> List[Dict]:
    """Find jump/call statements on one sanitized line.

    Dynamic ``jump expression <name>`` statements are looked for first. Only
    when a line has none is the static ``jump <label>`` pattern applied.

    Args:
        sanitized_line: Line passed through sanitize_line()
        unit_id: ID of the unit the line belongs to
        line_number: 1-based line number

    Returns:
        List of transfer dicts in order of appearance
    """
    transfers = []

    for match in JUMP_CALL_EXPRESSION_PATTERN.finditer(sanitized_line):
        transfers.append({
            'unit_id': unit_id,
            'target': match.group(2),
            'kind': match.group(1),
            'is_dynamic': True,
            'line': line_number,
            'column_start': match.start(2),
            'column_end': match.end(2),
        })

    if transfers:
        return transfers

    for match in JUMP_CALL_STATIC_PATTERN.finditer(sanitized_line):
        if match.group(2) == 'expression':
            continue
        transfers.append({
            'unit_id': unit_id,
            'target': match.group(2),
            'kind': match.group(1),
            'is_dynamic': False,
            'line': line_number,
            'column_start': match.start(2),
            'column_end': match.end(2),
        })

    return transfers


def _has_transfer_statement(sanitized_line: str) -> bool:
    return bool(JUMP_CALL_EXPRESSION_PATTERN.search(sanitized_line)
                or JUMP_CALL_STATIC_PATTERN.search(sanitized_line))


def _usage_patterns(variables: Dict[str, Dict]) -> Dict[str, re.Pattern]:
    return {
        name: re.compile(r'\b' + re.escape(name) + r'\b')
        for name in variables
    }


# =============================================================================
# LINKS & INVALID JUMPS
# =============================================================================

def add_unit_link(links: List[Dict], source_id: str, target_id: str, target_label: str) -> None:
    """Append a unit link unless one already joins the same two units."""
    if source_id == target_id:
        return
    for link in links:
        if link['source_id'] == source_id and link['target_id'] == target_id:
            return
    links.append({
        'source_id': source_id,
        'target_id': target_id,
        'target_label': target_label,
    })


def record_transfer(transfer: Dict, labels: Dict[str, Dict], links: List[Dict],
                    invalid_jumps: Dict[str, List[str]]) -> None:
    """Resolve one transfer against the label index.

    Resolved static transfers into another unit become links, unresolved
    static targets are recorded as invalid jumps. Dynamic targets are kept
    for decoration only.
    """
    if transfer['is_dynamic']:
        return

    unit_id = transfer['unit_id']
    target = labels.get(transfer['target'])
    if target:
        add_unit_link(links, unit_id, target['unit_id'], transfer['target'])
        return

    unit_invalid = invalid_jumps.setdefault(unit_id, [])
    if transfer['target'] not in unit_invalid:
        unit_invalid.append(transfer['target'])


# =============================================================================
# CLASSIFICATION
# =============================================================================

def classify_units(units: List[Dict], links: List[Dict], transfers: Dict[str, List[Dict]],
                   labels: Dict[str, Dict], screens: Dict[str, Dict]) -> Dict[str, Set[str]]:
    """Classify every unit by its role in the unit graph.

    Categories:
    - root: never the target of a unit link
    - leaf: produced no transfers at all
    - branching: contains a menu or transfers into more than one unit
    - story: defines a label, or lives in one of STORY_FILE_PATHS
    - screen_only: defines a screen but is not story
    - config: neither story nor screen-defining

    Args:
        units: All script units (placeholder units included)
        links: Deduplicated unit links
        transfers: Unit ID -> transfer list
        labels: Global label index
        screens: Screen name -> screen definition

    Returns:
        Dict mapping category name to a set of unit IDs
    """
    all_target_ids = {link['target_id'] for link in links}
    screen_unit_ids = {screen['unit_id'] for screen in screens.values()}
    story_unit_ids = {label['unit_id'] for label in labels.values()}

    classification = {
        'root': set(),
        'leaf': set(),
        'branching': set(),
        'story': story_unit_ids,
        'screen_only': set(),
        'config': set(),
    }

    for unit in units:
        unit_id = unit['id']
        unit_transfers = transfers.get(unit_id, [])

        if unit_id not in all_target_ids:
            classification['root'].add(unit_id)
        if not unit_transfers:
            classification['leaf'].add(unit_id)

        has_menu = any(MENU_PATTERN.match(line) for line in unit.get('text', '').split('\n'))
        distinct_targets = {
            labels[t['target']]['unit_id'] for t in unit_transfers if t['target'] in labels
        }
        if has_menu or len(distinct_targets) > 1:
            classification['branching'].add(unit_id)

        if unit.get('file_path') in STORY_FILE_PATHS:
            story_unit_ids.add(unit_id)

    classification['screen_only'] = screen_unit_ids - story_unit_ids
    classification['config'] = {
        unit['id'] for unit in units
        if unit['id'] not in story_unit_ids and unit['id'] not in screen_unit_ids
    }

    return classification


# =============================================================================
# MAIN BUILD FUNCTION
# =============================================================================

def build_unit_graph(units: List[Dict], structure: Dict) -> Dict:
    """Build the unit-level graph from script units and their structure.

    Args:
        units: List of script unit dicts
        structure: Dict from extract_structure()

    Returns:
        Dict with structure:
        {
            "transfers": {"unit_id": [transfer, ...]},
            "links": [{"source_id", "target_id", "target_label"}],
            "invalid_jumps": {"unit_id": ["missing_label"]},
            "dialogue_lines": {"unit_id": [{"line": 3, "tag": "e"}]},
            "character_usage": {"e": 2},
            "variable_usages": {"score": [{"unit_id", "line"}]},
            "unit_types": {"unit_id": {"label", "jump", "menu", ...}},
            "classification": {"root": {...}, "leaf": {...}, ...}
        }
    """
    labels = structure['labels']
    characters = structure['characters']
    variables = structure['variables']
    usage_patterns = _usage_patterns(variables)

    transfers = {}
    links = []
    invalid_jumps = {}
    dialogue_lines = {}
    variable_usages = {}
    unit_types = {}

    for unit in units:
        if is_skipped_unit(unit):
            continue

        unit_id = unit['id']
        text = unit.get('text', '')
        unit_transfers = []
        block_types = set()
        if 'python:' in text:
            block_types.add('python')

        for index, line in enumerate(text.split('\n')):
            line_number = index + 1
            sanitized = sanitize_line(line)

            if _has_transfer_statement(sanitized):
                block_types.add('jump')
            for transfer in find_transfers(sanitized, unit_id, line_number):
                unit_transfers.append(transfer)
                record_transfer(transfer, labels, links, invalid_jumps)

            if LABEL_PATTERN.match(line):
                block_types.add('label')
            if MENU_PATTERN.match(line):
                block_types.add('menu')

            dialogue_match = DIALOGUE_PATTERN.match(line)
            if dialogue_match and dialogue_match.group(1) in characters:
                block_types.add('dialogue')
                dialogue_lines.setdefault(unit_id, []).append({
                    'line': line_number,
                    'tag': dialogue_match.group(1),
                })
            elif NARRATION_PATTERN.match(line):
                block_types.add('dialogue')

            for name, pattern in usage_patterns.items():
                if not pattern.search(sanitized):
                    continue
                definition = variables[name]
                if definition['unit_id'] == unit_id and definition['line'] == line_number:
                    continue
                usages = variable_usages.setdefault(name, [])
                if not any(u['unit_id'] == unit_id and u['line'] == line_number for u in usages):
                    usages.append({'unit_id': unit_id, 'line': line_number})

        transfers[unit_id] = unit_transfers
        if block_types:
            unit_types[unit_id] = block_types

    character_usage = {tag: 0 for tag in characters}
    for unit_dialogue in dialogue_lines.values():
        for dialogue in unit_dialogue:
            character_usage[dialogue['tag']] = character_usage.get(dialogue['tag'], 0) + 1

    classification = classify_units(units, links, transfers, labels, structure['screens'])

    logger.info(
        f"Built unit graph: {len(links)} links, "
        f"{sum(len(v) for v in invalid_jumps.values())} invalid jumps"
    )

    return {
        'transfers': transfers,
        'links': links,
        'invalid_jumps': invalid_jumps,
        'dialogue_lines': dialogue_lines,
        'character_usage': character_usage,
        'variable_usages': variable_usages,
        'unit_types': unit_types,
        'classification': classification,
    }


def unit_graph_to_json(unit_graph: Dict) -> Dict:
    """Return a JSON-serializable copy of a unit graph dict."""
    result = dict(unit_graph)
    result['unit_types'] = {
        unit_id: sorted(types) for unit_id, types in unit_graph['unit_types'].items()
    }
    result['classification'] = {
        name: sorted(ids) for name, ids in unit_graph['classification'].items()
    }
    return result


# =============================================================================
# CLI INTERFACE
# =============================================================================

def main():
    """Main entry point for command-line usage."""
    parser = argparse.ArgumentParser(
        description='Build unit links and classification from units.json and structure.json'
    )
    parser.add_argument('units_json', type=Path, help='Path to units.json file')
    parser.add_argument('structure_json', type=Path, help='Path to structure.json file')
    parser.add_argument('output_json', type=Path, help='Path to output unit_graph.json file')

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')

    for input_path in (args.units_json, args.structure_json):
        if not input_path.exists():
            print(f"Error: Input file not found: {input_path}", file=sys.stderr)
            sys.exit(1)

    with open(args.units_json, 'r', encoding='utf-8') as f:
        units = json.load(f)
    with open(args.structure_json, 'r', encoding='utf-8') as f:
        structure = json.load(f)
    structure['defined_images'] = set(structure.get('defined_images', []))

    unit_graph = build_unit_graph(units, structure)

    args.output_json.parent.mkdir(parents=True, exist_ok=True)
    with open(args.output_json, 'w', encoding='utf-8') as f:
        json.dump(unit_graph_to_json(unit_graph), f, indent=2)

    print(f"✓ Built {len(unit_graph['links'])} unit links", file=sys.stderr)
    print(f"✓ Output: {args.output_json}", file=sys.stderr)


if __name__ == '__main__':
    main()
