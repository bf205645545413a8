from __future__ import annotations


class ProviderError(RuntimeError):
    """An embedding, vector search or completion call failed upstream."""
