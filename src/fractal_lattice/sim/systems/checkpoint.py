from __future__ import annotations

import hashlib
import json
from typing import Any, Callable, Dict, Optional, Protocol


class CheckpointSink(Protocol):
    def __call__(self, record: Dict[str, Any]) -> str: ...


class Sha256CheckpointSink:
    """Hashes an observable-state record into a hex audit token.

    Without a ``clock`` the token depends only on the record, so identical runs
    produce identical tokens. With a clock the token becomes a time-stamped proof
    of state and is no longer reproducible.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock

    @property
    def timestamped(self) -> bool:
        return self._clock is not None

    def __call__(self, record: Dict[str, Any]) -> str:
        payload = dict(record)
        if self._clock is not None:
            payload["t"] = self._clock()
        encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()
