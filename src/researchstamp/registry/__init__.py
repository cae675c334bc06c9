"""
researchstamp registry module.

Provides the local cache of confirmed records and their statistics.
"""

from researchstamp.registry.cache import RegistryCache, PendingSubmission

__all__ = [
    "RegistryCache",
    "PendingSubmission",
]
