"""
Saga Manager quality engine.

Completeness/consistency analysis over the saga entity graph and
semantic search over embedded content fragments.
"""

__version__ = "0.4.0"
