#!/usr/bin/env python3
"""
Load Units Module

Reads a tree of Ren'Py script files into the list of script units the
analysis stages consume. Each .rpy file becomes one unit.

Input: game/ directory containing .rpy files
Output: units.json ([{"id", "text", "file_path", "title"}])

Usage:
    python3 -m narrative_graph.load_units game/ units.json
"""

import sys
import json
import logging
import argparse
from pathlib import Path
from typing import Dict, List

logger = logging.getLogger(__name__)

SCRIPT_SUFFIX = '.rpy'


def read_unit(script_path: Path, root: Path) -> Dict:
    """Read one script file into a unit dict.

    Args:
        script_path: Path to the .rpy file
        root: Directory that unit paths are made relative to

    Returns:
        Unit dict; 'id' and 'file_path' are the POSIX path relative to root
    """
    with open(script_path, 'r', encoding='utf-8') as f:
        text = f.read()

    relative_path = script_path.relative_to(root).as_posix()
    return {
        'id': relative_path,
        'text': text,
        'file_path': relative_path,
        'title': script_path.name,
    }


def load_units(src_dir: Path) -> List[Dict]:
    """Load every .rpy file under a source directory.

    Paths are made relative to the parent of ``src_dir``, so a file at
    ``project/game/script.rpy`` loaded from ``project/game`` gets the ID
    ``game/script.rpy``. Unreadable files are logged and skipped.

    Args:
        src_dir: Directory to search recursively

    Returns:
        List of unit dicts sorted by path
    """
    src_dir = Path(src_dir)
    if not src_dir.exists():
        logger.warning(f"Source directory not found: {src_dir}")
        return []

    root = src_dir.resolve().parent
    units = []
    for script_path in sorted(src_dir.resolve().rglob(f'*{SCRIPT_SUFFIX}')):
        try:
            units.append(read_unit(script_path, root))
        except (IOError, UnicodeDecodeError) as e:
            logger.warning(f"Skipping unreadable script {script_path}: {e}")

    logger.info(f"Loaded {len(units)} script units from {src_dir}")
    return units


def load_units_from_path(source: Path) -> List[Dict]:
    """Load units from a directory of scripts or a units.json file."""
    source = Path(source)
    if source.is_dir():
        return load_units(source)
    with open(source, 'r', encoding='utf-8') as f:
        return json.load(f)


def main():
    """Main entry point for command-line usage."""
    parser = argparse.ArgumentParser(
        description='Load .rpy script files into units.json'
    )
    parser.add_argument('src_dir', type=Path, help='Directory containing .rpy files')
    parser.add_argument('output_json', type=Path, help='Path to output units.json file')

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')

    if not args.src_dir.is_dir():
        print(f"Error: Source directory not found: {args.src_dir}", file=sys.stderr)
        sys.exit(1)

    units = load_units(args.src_dir)

    args.output_json.parent.mkdir(parents=True, exist_ok=True)
    with open(args.output_json, 'w', encoding='utf-8') as f:
        json.dump(units, f, indent=2)

    print(f"✓ Loaded {len(units)} units", file=sys.stderr)
    print(f"✓ Output: {args.output_json}", file=sys.stderr)


if __name__ == '__main__':
    main()
