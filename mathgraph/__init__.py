"""
Math Knowledge Graph & Study-Path Planner
A dependency graph over mathematical concepts with curriculum and exam
overlays, per-user gap analysis, and time-estimated study paths.
"""

__version__ = "0.1.0"
