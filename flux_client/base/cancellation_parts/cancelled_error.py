"""Cancellation error type.

Defines the public ``CancelledError`` raised when a caller-supplied
cancellation token fires or its deadline passes while a call is suspended.
"""

from __future__ import annotations


class CancelledError(RuntimeError):
    """Raised when an operation is cancelled cooperatively.

    Distinct from ``asyncio.CancelledError``: task cancellation still
    propagates unchanged, this type only reports token-driven cancellation so
    the retry executor can stop without treating it as a transport failure.
    """

__all__ = ["CancelledError"]
