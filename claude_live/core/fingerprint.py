"""
Fingerprints for cache change detection.

config_fingerprint() is exact: any change to a field that affects the
rendered output produces a new value. FingerprintHasher.tolerant_hash()
ignores drift of the token counter below a threshold so monitoring noise
does not force recomputation, while accumulated drift still does.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, Optional, Tuple

from claude_live.clients.usage_client import UsageBlock
from claude_live.core.display_config import DisplayConfig

DEFAULT_TOKEN_TOLERANCE = 100
NULL_SNAPSHOT_FINGERPRINT = "null"


def canonical_digest(payload: Any) -> str:
    """sha256 of the sorted-key JSON form of payload (first 16 hex chars)."""
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()[:16]


def config_fingerprint(config: DisplayConfig) -> str:
    return canonical_digest({
        "token_limit": config.token_limit,
        "update_interval": config.update_interval,
        "usage_thresholds": list(config.usage_warning_thresholds),
        "time_thresholds": list(config.time_warning_thresholds),
        "formats": {
            "time": config.time_format,
            "cost": config.cost_format,
            "token": config.token_format,
        },
    })


class FingerprintHasher:
    """
    Produces config and snapshot fingerprints.

    The tolerant snapshot hash keeps an anchor for the token counter: while
    the counter stays within `tolerance` of the anchor the anchor is hashed,
    so small jitter maps to the same fingerprint. Once the counter moves
    `tolerance` or more away, it becomes the new anchor and the fingerprint
    changes. The anchor is tied to the block identity and resets when the
    block changes.
    """

    def __init__(self, tolerance: int = DEFAULT_TOKEN_TOLERANCE) -> None:
        self.tolerance = tolerance
        self._anchor: Optional[Tuple[Tuple[Any, ...], int]] = None

    def fingerprint(self, config: DisplayConfig) -> str:
        return config_fingerprint(config)

    def tolerant_hash(self, snapshot: Optional[UsageBlock]) -> str:
        if snapshot is None:
            return NULL_SNAPSHOT_FINGERPRINT

        identity = self._identity(snapshot)
        tokens = snapshot.total_tokens
        if self._anchor is not None and self._anchor[0] == identity:
            anchored = self._anchor[1]
            if abs(tokens - anchored) < self.tolerance:
                tokens = anchored
        self._anchor = (identity, tokens)

        identity_fields: Dict[str, Any] = dict(zip(("is_active", "limit", "start", "end"), identity))
        identity_fields["tokens"] = tokens
        return canonical_digest(identity_fields)

    def reset(self) -> None:
        self._anchor = None

    @staticmethod
    def _identity(snapshot: UsageBlock) -> Tuple[Any, ...]:
        limit = snapshot.token_limit_status.limit if snapshot.token_limit_status else None
        return (snapshot.is_active, limit, snapshot.start_time, snapshot.end_time)
