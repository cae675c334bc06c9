"""
researchstamp - Dataset fingerprinting and one-time ledger registration.

researchstamp computes deterministic fingerprints of research data, submits
them once per researcher to an append-only ledger, and keeps a local
registry of confirmed records with derived statistics and search.
"""

__version__ = "0.1.0"
__all__ = [
    "__version__",
    "ResearchRecord",
    "Statistics",
    "RegistryCache",
    "SubmissionPipeline",
    "Session",
]


def __getattr__(name: str):
    """Lazy import of main classes to avoid circular imports."""
    if name in ("ResearchRecord", "Statistics"):
        from researchstamp.core.record import ResearchRecord, Statistics
        return locals()[name]
    if name == "RegistryCache":
        from researchstamp.registry.cache import RegistryCache
        return RegistryCache
    if name == "SubmissionPipeline":
        from researchstamp.pipeline.submission import SubmissionPipeline
        return SubmissionPipeline
    if name == "Session":
        from researchstamp.session import Session
        return Session
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
