"""
Narrative Graph Engine

This package analyses Ren'Py-style script units and derives the structure of
the story they describe.

Modules:
- load_units: Read .rpy source trees into a list of script units (units.json)
- extract_structure: Stage 1, labels/characters/variables/screens/images
- build_unit_graph: Stage 2, transfers, unit links and unit classification
- build_route_graph: Stage 3, label-level graph and route enumeration
- compute_layout: Stage 4, layered left-to-right layout of the unit graph
- analyze: Runs stages 1-3 and produces the full analysis result
- report: Renders an analysis result as a static HTML report
"""

__version__ = "1.0.0"
