from __future__ import annotations

import math
from typing import TYPE_CHECKING, Dict, List, Tuple

from pygame.math import Vector3

if TYPE_CHECKING:
    from .node import Node


class SpatialGrid:
    """Uniform x/y bucketing of nodes; queries filter on the full 3-D distance."""

    def __init__(self, cell_size: float) -> None:
        if cell_size <= 0:
            raise ValueError(f"cell_size must be > 0, got {cell_size}")
        self._cell_size = cell_size
        self._cells: Dict[Tuple[int, int], List["Node"]] = {}
        self._active_keys: List[Tuple[int, int]] = []

    def clear(self) -> None:
        for key in self._active_keys:
            bucket = self._cells.get(key)
            if bucket:
                bucket.clear()
        self._active_keys.clear()

    def insert(self, node: "Node") -> None:
        key = self._cell_key(node.pos)
        bucket = self._cells.get(key)
        if bucket is None:
            bucket = []
            self._cells[key] = bucket
            self._active_keys.append(key)
        elif not bucket:
            # Bucket exists but was cleared at the start of this tick; mark it active again.
            self._active_keys.append(key)
        bucket.append(node)

    def collect_neighbors(
        self,
        position: Vector3,
        radius: float,
        out_nodes: List["Node"],
        exclude_id: str | None = None,
        out_dist_sq: List[float] | None = None,
    ) -> None:
        """
        Fill ``out_nodes`` with every node strictly closer than ``radius`` to ``position``.

        Callers own the buffers; they are cleared on entry.
        """

        out_nodes.clear()
        if out_dist_sq is not None:
            out_dist_sq.clear()
        base_key = self._cell_key(position)
        cell_range = int(math.ceil(radius / self._cell_size))
        radius_sq = radius * radius
        pos_x = position.x
        pos_y = position.y
        pos_z = position.z
        cells = self._cells

        for dx in range(-cell_range, cell_range + 1):
            for dy in range(-cell_range, cell_range + 1):
                bucket = cells.get((base_key[0] + dx, base_key[1] + dy))
                if not bucket:
                    continue
                for node in bucket:
                    if exclude_id is not None and node.id == exclude_id:
                        continue
                    pos = node.pos
                    offset_x = pos.x - pos_x
                    offset_y = pos.y - pos_y
                    offset_z = pos.z - pos_z
                    dist_sq = offset_x * offset_x + offset_y * offset_y + offset_z * offset_z
                    if dist_sq < radius_sq:
                        out_nodes.append(node)
                        if out_dist_sq is not None:
                            out_dist_sq.append(dist_sq)

    def _cell_key(self, position: Vector3) -> Tuple[int, int]:
        return (int(position.x // self._cell_size), int(position.y // self._cell_size))
