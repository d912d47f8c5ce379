"""Concrete cancellation types re-exported by ``flux_client.base.cancellation``."""
