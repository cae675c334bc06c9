"""
researchstamp query module.

Provides read-only queries over the registry.
"""

from researchstamp.query.engine import QueryEngine

__all__ = [
    "QueryEngine",
]
