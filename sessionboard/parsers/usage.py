"""Per-model token accounting with request-id deduplication."""
from __future__ import annotations

from typing import Any

from sessionboard.models import TokenUsage

_USAGE_FIELDS = {
    "inputTokens": "input_tokens",
    "outputTokens": "output_tokens",
    "cacheReadInputTokens": "cache_read_input_tokens",
    "cacheCreationInputTokens": "cache_creation_input_tokens",
}


def _coerce_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def usage_from_payload(usage: dict[str, Any] | None) -> TokenUsage:
    if not isinstance(usage, dict):
        return TokenUsage()
    return TokenUsage(**{field: _coerce_int(usage.get(key)) for field, key in _USAGE_FIELDS.items()})


def add_usage(target: TokenUsage, other: TokenUsage) -> None:
    target.inputTokens += other.inputTokens
    target.outputTokens += other.outputTokens
    target.cacheReadInputTokens += other.cacheReadInputTokens
    target.cacheCreationInputTokens += other.cacheCreationInputTokens


class TokenAccumulator:
    """A response streamed over several log lines repeats its requestId and
    usage block on every line; only the first occurrence is counted.
    """

    def __init__(self) -> None:
        self._seen_request_ids: set[str] = set()
        self._by_model: dict[str, TokenUsage] = {}
        self.duplicates_skipped = 0

    def add(self, model: str, usage: dict[str, Any] | None, request_id: str = "") -> bool:
        """Count ``usage`` for ``model``. Returns False when the request id was already counted."""
        if not isinstance(usage, dict):
            return False
        if request_id:
            if request_id in self._seen_request_ids:
                self.duplicates_skipped += 1
                return False
            self._seen_request_ids.add(request_id)
        bucket = self._by_model.setdefault(model or "unknown", TokenUsage())
        add_usage(bucket, usage_from_payload(usage))
        return True

    @property
    def has_usage(self) -> bool:
        return bool(self._by_model)

    def by_model(self) -> dict[str, TokenUsage]:
        return {model: usage.model_copy() for model, usage in self._by_model.items()}

    def total(self) -> TokenUsage:
        combined = TokenUsage()
        for usage in self._by_model.values():
            add_usage(combined, usage)
        return combined
