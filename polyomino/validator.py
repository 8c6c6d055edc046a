from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from .board import Board
from .geometry import orient, translate
from .models import Cell, Cells, Piece


@dataclass(frozen=True)
class PlacementPreview:
    piece_id: str
    row: int
    col: int
    rotation: int
    flipped: bool
    cells: Tuple[Cell, ...]
    is_valid: bool

    def to_dict(self) -> Dict[str, object]:
        return {
            "pieceId": self.piece_id,
            "position": [self.row, self.col],
            "rotation": self.rotation,
            "flip": self.flipped,
            "cells": [list(cell) for cell in self.cells],
            "isValid": self.is_valid,
        }


class PlacementValidator:
    """Decides whether a piece/orientation/anchor combination fits a board.

    Invalid placements are ordinary ``False`` results; nothing here raises for
    an unknown piece, a piece that is already placed, or a clash.
    """

    def __init__(self, pieces: Mapping[str, Piece], board: Board) -> None:
        self.pieces = pieces
        self.board = board
        self._shape_cache: Dict[Tuple[str, int, bool], Cells] = {}

    def oriented_cells(self, piece_id: str, rotation: int = 0, flipped: bool = False) -> Cells:
        key = (piece_id, rotation % 4, bool(flipped))
        cached = self._shape_cache.get(key)
        if cached is not None:
            return cached
        piece = self.pieces.get(piece_id)
        if piece is None:
            return ()
        shape = orient(piece, rotation, flipped)
        self._shape_cache[key] = shape
        return shape

    def can_place(
        self,
        piece_id: str,
        row: int,
        col: int,
        rotation: int = 0,
        flipped: bool = False,
    ) -> bool:
        if piece_id not in self.pieces or not self.board.is_available(piece_id):
            return False
        return self.board.fits(self.oriented_cells(piece_id, rotation, flipped), row, col)

    def place(
        self,
        piece_id: str,
        row: int,
        col: int,
        rotation: int = 0,
        flipped: bool = False,
    ) -> bool:
        if not self.can_place(piece_id, row, col, rotation, flipped):
            return False
        cells = self.oriented_cells(piece_id, rotation, flipped)
        return self.board.try_place(piece_id, cells, row, col, rotation, flipped)

    def resolve_anchor(
        self,
        piece_id: str,
        target_row: int,
        target_col: int,
        rotation: int = 0,
        flipped: bool = False,
        grip: Cell = (0, 0),
    ) -> Optional[Cell]:
        """Translate a raw target cell into an anchor.

        ``grip`` is the cell offset, inside the bounding box of the final
        orientation, that the caller wants to land on the target. The
        orientation is always the absolute one the piece will be committed
        with.
        """
        cells = self.oriented_cells(piece_id, rotation, flipped)
        if not cells:
            return None
        min_row = min(r for r, _ in cells)
        min_col = min(c for _, c in cells)
        grip_row, grip_col = grip
        return target_row - grip_row - min_row, target_col - grip_col - min_col

    def preview(
        self,
        piece_id: str,
        row: int,
        col: int,
        rotation: int = 0,
        flipped: bool = False,
    ) -> PlacementPreview:
        cells = self.oriented_cells(piece_id, rotation, flipped)
        absolute: List[Cell] = [
            cell for cell in translate(cells, row, col) if self.board.in_bounds(*cell)
        ]
        return PlacementPreview(
            piece_id=piece_id,
            row=row,
            col=col,
            rotation=rotation % 4,
            flipped=bool(flipped),
            cells=tuple(absolute),
            is_valid=self.can_place(piece_id, row, col, rotation, flipped),
        )
