#!/usr/bin/env python3
"""
Extract Structure Module (Stage 1: Structural Extraction)

Pattern-matches raw script text into structural facts. Every script unit is
scanned twice:

1. Whole-text scan for Character(...) constructors (they may span lines)
2. Line-by-line scan for labels, named menus, screens, define/default
   statements and image definitions

Input: units.json (list of script units from load_units)
Output: structure.json (labels, first labels, characters, variables,
        screens, defined images)

Usage:
    python3 -m narrative_graph.extract_structure units.json structure.json
"""

import re
import sys
import json
import logging
import argparse
from pathlib import Path
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Units stored at this path hold editor scaffolding, not story content
DEBUG_PLACEHOLDER_FILE = 'debug_placeholders.rpy'

PALETTE = [
    '#E57373', '#F06292', '#BA68C8', '#9575CD', '#7986CB', '#64B5F6',
    '#4FC3F7', '#4DD0E1', '#4DB6AC', '#81C784', '#AED581', '#DCE775',
    '#FFF176', '#FFD54F', '#FFB74D', '#FF8A65', '#A1887F', '#90A4AE',
]

LABEL_PATTERN = re.compile(r'^\s*label\s+([a-zA-Z0-9_]+):')
MENU_LABEL_PATTERN = re.compile(r'^\s*menu\s+([a-zA-Z0-9_]+):')
SCREEN_PATTERN = re.compile(r'^\s*screen\s+([a-zA-Z0-9_]+)\s*(\(.*\))?:')
DEFINE_DEFAULT_PATTERN = re.compile(
    r'^\s*(define|default)\s+([a-zA-Z0-9_.]+)\s*=(?!\s*Character\s*\()\s*(.+)'
)
IMAGE_DEF_PATTERN = re.compile(r'^\s*image\s+([a-zA-Z0-9_ ]+?)\s*=')
CHARACTER_HEADER_PATTERN = re.compile(
    r'^\s*define\s+([a-zA-Z0-9_]+)\s*=\s*Character\s*\(', re.MULTILINE
)
KEYWORD_ARG_PATTERN = re.compile(r'^\s*([a-zA-Z0-9_]+)\s*=\s*([\s\S]+?)\s*$')

PROFILE_PREFIX = '# profile:'

# Character(...) keyword arguments copied through as unquoted strings
STRING_STYLE_KWARGS = [
    'image', 'who_style', 'who_prefix', 'who_suffix',
    'what_color', 'what_style', 'what_prefix', 'what_suffix',
    'window_style', 'ctc', 'ctc_position',
]
BOOLEAN_STYLE_KWARGS = ['slow', 'slow_abortable', 'all_at_once', 'interact', 'afm']
RAW_STYLE_KWARGS = ['what_properties', 'window_properties']


# =============================================================================
# SMALL HELPERS
# =============================================================================

def is_skipped_unit(unit: Dict) -> bool:
    """Return True for units that analysis passes must ignore entirely."""
    file_path = unit.get('file_path') or ''
    return file_path.endswith(DEBUG_PLACEHOLDER_FILE)


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value >= 0x80000000 else value


def string_to_color(text: str) -> str:
    """Map a string to a palette color with a stable rolling hash.

    The hash is ``code + ((hash << 5) - hash)`` per character, with the shift
    done in signed 32-bit arithmetic, so the same tag gets the same color on
    every run.

    Args:
        text: String to color (usually a character tag)

    Returns:
        Hex color string from PALETTE
    """
    hash_value = 0
    for char in text:
        hash_value = ord(char) + (_to_int32(_to_int32(hash_value) << 5) - hash_value)
    return PALETTE[abs(hash_value) % len(PALETTE)]


def unquote(value: Optional[str]) -> Optional[str]:
    """Strip one pair of matching outer quotes from a value."""
    if not value:
        return None
    trimmed = value.strip()
    if len(trimmed) >= 2 and trimmed[0] == trimmed[-1] and trimmed[0] in ('"', "'"):
        return trimmed[1:-1]
    return trimmed


def _parse_bool(value: Optional[str]) -> Optional[bool]:
    if value == 'True':
        return True
    if value == 'False':
        return False
    return None


def _parse_int(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    match = re.match(r'\s*([+-]?\d+)', value)
    return int(match.group(1)) if match else None


# =============================================================================
# CHARACTER ARGUMENT SCANNING
# =============================================================================

def find_closing_paren(text: str, open_index: int) -> int:
    """Find the parenthesis closing the one at ``open_index``.

    Quoted strings are skipped (a quote preceded by a backslash does not end
    the string). When the parentheses never balance, ``len(text)`` is
    returned so the caller uses the rest of the text.

    Args:
        text: Full text being scanned
        open_index: Index of the opening '('

    Returns:
        Index of the matching ')' or len(text)
    """
    depth = 0
    in_string = None
    for i in range(open_index, len(text)):
        char = text[i]
        if in_string:
            if char == in_string and text[i - 1] != '\\':
                in_string = None
            continue
        if char in ('"', "'"):
            in_string = char
        elif char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
            if depth == 0:
                return i
    return len(text)


def split_arguments(args_text: str) -> List[str]:
    """Split a constructor argument list on top-level commas.

    Walks the string one character at a time, tracking whether it is inside
    a single- or double-quoted string and the current parenthesis depth.
    Only a comma at depth 0 outside a string separates arguments. An
    unterminated string simply runs to the end of the input.

    Args:
        args_text: Text between the constructor's parentheses

    Returns:
        List of stripped argument strings (may contain empty strings)
    """
    args = []
    depth = 0
    in_string = None
    current = []

    for i, char in enumerate(args_text):
        if in_string:
            if char == in_string and args_text[i - 1] != '\\':
                in_string = None
        else:
            if char in ('"', "'"):
                in_string = char
            elif char == '(':
                depth += 1
            elif char == ')':
                depth -= 1

        if char == ',' and depth == 0 and not in_string:
            args.append(''.join(current).strip())
            current = []
        else:
            current.append(char)

    args.append(''.join(current).strip())
    return args


def parse_character_args(args_text: str) -> Tuple[List[str], Dict[str, str]]:
    """Classify constructor arguments as positional or keyword.

    Args:
        args_text: Text between the constructor's parentheses

    Returns:
        Tuple of (positional values, keyword name -> raw value)
    """
    positional = []
    kwargs = {}

    for arg in split_arguments(args_text):
        if not arg:
            continue
        match = KEYWORD_ARG_PATTERN.match(arg)
        if match:
            kwargs[match.group(1)] = match.group(2)
        else:
            positional.append(arg)

    return positional, kwargs


def find_profile_note(text: str, offset: int) -> Optional[str]:
    """Return the ``# profile:`` note on the last non-blank line before offset."""
    if offset <= 0:
        return None

    preceding_lines = text[:offset].split('\n')
    # The last element is the partial line the match starts on
    preceding_lines.pop()
    while preceding_lines:
        line = preceding_lines.pop().strip()
        if not line:
            continue
        if line.startswith(PROFILE_PREFIX):
            return line[len(PROFILE_PREFIX):].strip()
        return None
    return None


def build_character(tag: str, args_text: str, unit_id: str,
                    profile: Optional[str] = None) -> Dict:
    """Build a character definition from a constructor's argument text.

    Args:
        tag: Variable name the character is bound to
        args_text: Raw argument list text
        unit_id: ID of the defining unit
        profile: Optional profile note

    Returns:
        Character dict with display name, color, profile and style kwargs
    """
    positional, kwargs = parse_character_args(args_text)

    raw_name = kwargs.get('name') or (positional[0] if positional else None)
    if raw_name and raw_name.strip().lower() != 'none':
        name = unquote(raw_name) or tag
    else:
        name = tag

    character = {
        'tag': tag,
        'name': name,
        'color': unquote(kwargs.get('color')) or string_to_color(tag),
        'profile': profile,
        'unit_id': unit_id,
    }
    for key in STRING_STYLE_KWARGS:
        character[key] = unquote(kwargs.get(key))
    for key in BOOLEAN_STYLE_KWARGS:
        character[key] = _parse_bool(kwargs.get(key))
    for key in RAW_STYLE_KWARGS:
        character[key] = kwargs.get(key)
    character['slow_speed'] = _parse_int(kwargs.get('slow_speed'))

    return character


# =============================================================================
# PASS 1: WHOLE-TEXT CHARACTER SCAN
# =============================================================================

def extract_characters(unit: Dict) -> List[Dict]:
    """Find every Character(...) definition in a unit's text."""
    text = unit.get('text', '')
    characters = []

    for match in CHARACTER_HEADER_PATTERN.finditer(text):
        open_index = match.end() - 1
        close_index = find_closing_paren(text, open_index)
        args_text = text[open_index + 1:close_index]

        # ^\s* may have consumed blank lines; the profile note sits above the define
        define_offset = text.index('define', match.start())
        profile = find_profile_note(text, define_offset)

        characters.append(build_character(match.group(1), args_text, unit['id'], profile))

    return characters


# =============================================================================
# PASS 2: LINE-BY-LINE DEFINITION SCAN
# =============================================================================

def scan_definitions(unit: Dict, structure: Dict) -> None:
    """Record labels, menus, screens, variables and images for one unit.

    Args:
        unit: Script unit dict
        structure: Structure dict being built (modified in place)
    """
    unit_id = unit['id']
    labels = structure['labels']
    first_label_seen = False

    for index, line in enumerate(unit.get('text', '').split('\n')):
        line_number = index + 1

        label_match = LABEL_PATTERN.match(line)
        if label_match:
            name = label_match.group(1)
            if name in labels:
                logger.debug(f"Label '{name}' redefined in {unit_id}:{line_number}")
            labels[name] = {
                'name': name,
                'unit_id': unit_id,
                'line': line_number,
                'column': label_match.start(1) + 1,
                'kind': 'label',
            }
            if not first_label_seen:
                structure['first_labels'][unit_id] = name
                first_label_seen = True

        menu_match = MENU_LABEL_PATTERN.match(line)
        if menu_match and menu_match.group(1) not in labels:
            name = menu_match.group(1)
            labels[name] = {
                'name': name,
                'unit_id': unit_id,
                'line': line_number,
                'column': menu_match.start(1) + 1,
                'kind': 'menu',
            }

        screen_match = SCREEN_PATTERN.match(line)
        if screen_match:
            structure['screens'][screen_match.group(1)] = {
                'name': screen_match.group(1),
                'parameters': screen_match.group(2).strip() if screen_match.group(2) else '',
                'unit_id': unit_id,
                'line': line_number,
            }

        var_match = DEFINE_DEFAULT_PATTERN.match(line)
        if var_match:
            structure['variables'][var_match.group(2)] = {
                'name': var_match.group(2),
                'kind': var_match.group(1),
                'initial_value': var_match.group(3).strip(),
                'unit_id': unit_id,
                'line': line_number,
            }

        image_match = IMAGE_DEF_PATTERN.match(line)
        if image_match:
            structure['defined_images'].add(image_match.group(1).strip())


# =============================================================================
# MAIN EXTRACTION FUNCTION
# =============================================================================

def extract_structure(units: List[Dict]) -> Dict:
    """Extract structural facts from every script unit.

    Args:
        units: List of script unit dicts with 'id', 'text' and optional
            'file_path'

    Returns:
        Dict with structure:
        {
            "labels": {"start": {"name", "unit_id", "line", "column", "kind"}},
            "first_labels": {"unit_id": "start"},
            "characters": {"e": {"tag", "name", "color", ...}},
            "variables": {"score": {"name", "kind", "initial_value", ...}},
            "screens": {"hud": {"name", "parameters", "unit_id", "line"}},
            "defined_images": {"bg park", ...}
        }
    """
    structure = {
        'labels': {},
        'first_labels': {},
        'characters': {},
        'variables': {},
        'screens': {},
        'defined_images': set(),
    }

    for unit in units:
        if is_skipped_unit(unit):
            logger.debug(f"Skipping placeholder unit {unit['id']}")
            continue

        for character in extract_characters(unit):
            structure['characters'][character['tag']] = character

        scan_definitions(unit, structure)

    # A character define can also satisfy the define/default pattern
    for tag in structure['characters']:
        structure['variables'].pop(tag, None)

    logger.info(
        f"Extracted {len(structure['labels'])} labels, "
        f"{len(structure['characters'])} characters, "
        f"{len(structure['variables'])} variables, "
        f"{len(structure['screens'])} screens"
    )
    return structure


def structure_to_json(structure: Dict) -> Dict:
    """Return a JSON-serializable copy of a structure dict."""
    result = dict(structure)
    result['defined_images'] = sorted(structure['defined_images'])
    return result


# =============================================================================
# CLI INTERFACE
# =============================================================================

def main():
    """Main entry point for command-line usage."""
    parser = argparse.ArgumentParser(
        description='Extract labels, characters, variables and screens from units.json'
    )
    parser.add_argument('input_json', type=Path, help='Path to units.json file')
    parser.add_argument('output_json', type=Path, help='Path to output structure.json file')

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')

    if not args.input_json.exists():
        print(f"Error: Input file not found: {args.input_json}", file=sys.stderr)
        sys.exit(1)

    with open(args.input_json, 'r', encoding='utf-8') as f:
        units = json.load(f)

    structure = extract_structure(units)

    args.output_json.parent.mkdir(parents=True, exist_ok=True)
    with open(args.output_json, 'w', encoding='utf-8') as f:
        json.dump(structure_to_json(structure), f, indent=2)

    print(f"✓ Extracted {len(structure['labels'])} labels", file=sys.stderr)
    print(f"✓ Output: {args.output_json}", file=sys.stderr)


if __name__ == '__main__':
    main()
