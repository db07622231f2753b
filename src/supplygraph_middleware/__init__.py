"""
Request middleware for the SupplyGraph backend.

This package provides an idempotency coordinator that runs mutating requests
at most once per key, and a response cache tagger that answers unchanged
reads with 304 Not Modified.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
