from __future__ import annotations

import math
import random
import zlib
from typing import Optional, Sequence

_MASK64 = 0xFFFFFFFFFFFFFFFF


def derive_stream_seed(seed: int, salt: int) -> int:
    return (int(seed) ^ int(salt)) & _MASK64


def node_stream_seed(seed: int, salt: int, tick: int, node_id: str) -> int:
    # crc32 keeps the stream stable across processes, unlike hash().
    mixed = derive_stream_seed(seed, salt) ^ ((int(tick) * 0x9E3779B97F4A7C15) & _MASK64)
    return (mixed ^ (zlib.crc32(str(node_id).encode("utf-8")) << 17)) & _MASK64


class DeterministicRng:
    def __init__(self, seed: int):
        self._seed = seed
        self._random = random.Random(seed)

    def reset(self) -> None:
        self._random.seed(self._seed)

    def next_float(self) -> float:
        return self._random.random()

    def next_range(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)

    def next_angle(self) -> float:
        return self._random.random() * 2 * math.pi

    def next_signed(self, amplitude: float) -> float:
        return (self._random.random() - 0.5) * 2.0 * amplitude

    def chance(self, probability: float) -> bool:
        if probability <= 0.0:
            return False
        return self._random.random() < probability

    def sample_weighted(self, items: Sequence[str], weights: Sequence[float]) -> Optional[str]:
        if not items or sum(weights) <= 0:
            return None
        return self._random.choices(list(items), weights=list(weights), k=1)[0]
