"""
Core helpers for the Millennium client.

This package contains the low-level pieces of a call: configuration,
authentication state, envelope encoding and decoding, cancellation
scopes and the retrying request executor.  Keeping them apart from the
client facade makes it easy to swap implementations or customise
behaviour for testing.
"""

__all__ = []
