"""Cooperative cancellation primitives (public API facade).

Purpose
-------
Expose stable cancellation constructs via the canonical
``flux_client.base.cancellation`` import path while the concrete
implementations live under ``cancellation_parts``.

Notes
-----
- ``CancellationToken`` carries an explicit cancel signal and an optional
  deadline. Every suspension point of the client (rate-limit wait, retry
  sleep, awaiting the next stream chunk) goes through ``token.wait`` or
  ``token.sleep`` so that either one unblocks the caller promptly.
- ``CancelledError`` is raised by operations that observe a cancellation request.
"""

from .cancellation_parts.cancelled_error import CancelledError
from .cancellation_parts.cancellation_token import CancellationToken

__all__ = ["CancellationToken", "CancelledError"]
