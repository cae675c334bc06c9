"""
researchstamp export module.

Provides export of the registry to portable formats.
"""

from researchstamp.export.formats import RegistryExporter

__all__ = [
    "RegistryExporter",
]
