from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from .geometry import translate
from .models import Cell, Placement


class Board:
    """Mutable grid of cell ownership plus placement bookkeeping.

    ``piece_ids`` lists the pieces the board tracks availability for, in
    catalog order. Other ids may still be placed (a blocker, for instance)
    but they are never reported as available.
    """

    def __init__(self, rows: int, cols: int, piece_ids: Iterable[str] = ()) -> None:
        if rows <= 0 or cols <= 0:
            raise ValueError("Board dimensions must be positive")
        self.rows = rows
        self.cols = cols
        self.piece_ids: List[str] = list(piece_ids)
        self.grid: List[List[Optional[str]]] = [[None for _ in range(cols)] for _ in range(rows)]
        self._placements: Dict[str, Placement] = {}
        self._cells: Dict[str, List[Cell]] = {}
        self._filled = 0

    @property
    def total_cells(self) -> int:
        return self.rows * self.cols

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.rows and 0 <= col < self.cols

    def is_occupied(self, row: int, col: int) -> bool:
        if not self.in_bounds(row, col):
            return False
        return self.grid[row][col] is not None

    def occupant(self, row: int, col: int) -> Optional[str]:
        if not self.in_bounds(row, col):
            return None
        return self.grid[row][col]

    def fits(self, cells: Sequence[Cell], row: int, col: int) -> bool:
        for dr, dc in cells:
            r, c = row + dr, col + dc
            if not (0 <= r < self.rows and 0 <= c < self.cols):
                return False
            if self.grid[r][c] is not None:
                return False
        return True

    def try_place(
        self,
        piece_id: str,
        cells: Sequence[Cell],
        row: int,
        col: int,
        rotation: int = 0,
        flipped: bool = False,
    ) -> bool:
        if piece_id in self._placements or not cells:
            return False
        # Validate everything before the first write.
        if not self.fits(cells, row, col):
            return False
        absolute = translate(cells, row, col)
        for r, c in absolute:
            self.grid[r][c] = piece_id
        self._filled += len(absolute)
        self._cells[piece_id] = absolute
        self._placements[piece_id] = Placement(piece_id, row, col, rotation % 4, bool(flipped))
        return True

    def remove(self, piece_id: str) -> bool:
        if piece_id not in self._placements:
            return False
        for r, c in self._cells.pop(piece_id):
            if self.grid[r][c] == piece_id:
                self.grid[r][c] = None
                self._filled -= 1
        del self._placements[piece_id]
        return True

    def reset(self) -> None:
        for piece_id in list(self._placements):
            self.remove(piece_id)

    def is_complete(self) -> bool:
        return self._filled == self.total_cells

    def is_available(self, piece_id: str) -> bool:
        return piece_id in self.piece_ids and piece_id not in self._placements

    def is_placed(self, piece_id: str) -> bool:
        return piece_id in self._placements

    def available_pieces(self) -> List[str]:
        return [piece_id for piece_id in self.piece_ids if piece_id not in self._placements]

    def placements(self) -> List[Placement]:
        return list(self._placements.values())

    def placement_of(self, piece_id: str) -> Optional[Placement]:
        return self._placements.get(piece_id)

    def cells_of(self, piece_id: str) -> List[Cell]:
        return list(self._cells.get(piece_id, ()))

    def filled_cells(self) -> int:
        return self._filled

    def empty_cells(self) -> List[Cell]:
        return [
            (r, c)
            for r in range(self.rows)
            for c in range(self.cols)
            if self.grid[r][c] is None
        ]

    def snapshot(self) -> List[List[Optional[str]]]:
        return [list(row) for row in self.grid]

    def stats(self) -> Dict[str, object]:
        placed = sum(1 for piece_id in self._placements if piece_id in self.piece_ids)
        return {
            "total_pieces": len(self.piece_ids),
            "placed_pieces": placed,
            "available_pieces": len(self.piece_ids) - placed,
            "is_solved": self.is_complete(),
            "grid_filled": self._filled,
            "total_cells": self.total_cells,
        }

    def render(self, filled: str = "#", empty: str = ".") -> List[str]:
        return [
            "".join(filled if cell is not None else empty for cell in row)
            for row in self.grid
        ]
