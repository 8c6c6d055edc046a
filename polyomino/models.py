from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .exceptions import InvalidGeometry

Cell = Tuple[int, int]
Cells = Tuple[Cell, ...]


def _normalized(cells) -> Cells:
    points = [(int(r), int(c)) for r, c in cells]
    min_row = min(r for r, _ in points)
    min_col = min(c for _, c in points)
    return tuple(sorted((r - min_row, c - min_col) for r, c in points))


@dataclass(frozen=True)
class Piece:
    id: str
    name: str
    color: str
    cells: Cells

    def __post_init__(self) -> None:
        if not self.cells:
            raise InvalidGeometry(f"Piece {self.id!r} has no cells")
        cells = _normalized(self.cells)
        if len(set(cells)) != len(cells):
            raise InvalidGeometry(f"Piece {self.id!r} repeats a cell")
        # Base cells are stored normalized so orientation 0 lines up with the anchor.
        object.__setattr__(self, "cells", cells)

    @property
    def size(self) -> int:
        return len(self.cells)

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "color": self.color,
            "coordinates": [list(cell) for cell in self.cells],
        }


@dataclass(frozen=True)
class Orientation:
    rotation: int = 0
    flipped: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "rotation", int(self.rotation) % 4)
        object.__setattr__(self, "flipped", bool(self.flipped))

    def rotated(self) -> "Orientation":
        return Orientation(self.rotation + 1, self.flipped)

    def toggled(self) -> "Orientation":
        return Orientation(self.rotation, not self.flipped)


@dataclass(frozen=True)
class Placement:
    piece_id: str
    row: int
    col: int
    rotation: int = 0
    flipped: bool = False

    @property
    def anchor(self) -> Cell:
        return self.row, self.col

    @property
    def orientation(self) -> Orientation:
        return Orientation(self.rotation, self.flipped)

    def to_dict(self) -> Dict[str, object]:
        return {
            "pieceId": self.piece_id,
            "position": [self.row, self.col],
            "rotation": self.rotation,
            "flip": self.flipped,
        }


@dataclass(frozen=True)
class Solution:
    placements: Tuple[Placement, ...]

    def __len__(self) -> int:
        return len(self.placements)

    def __iter__(self):
        return iter(self.placements)

    @property
    def piece_ids(self) -> List[str]:
        return [placement.piece_id for placement in self.placements]

    def to_list(self) -> List[Dict[str, object]]:
        return [placement.to_dict() for placement in self.placements]


class SearchStatus(str, Enum):
    SOLVED = "solved"
    EXHAUSTED = "exhausted"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class SolverStats:
    attempts: int = 0
    backtracks: int = 0
    pruned: int = 0
    solutions_found: int = 0
    elapsed: float = 0.0
    max_depth: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "attempts": self.attempts,
            "backtracks": self.backtracks,
            "pruned": self.pruned,
            "solutions_found": self.solutions_found,
            "elapsed": round(self.elapsed, 4),
            "max_depth": self.max_depth,
        }


@dataclass
class SolveResult:
    solutions: List[Solution]
    status: SearchStatus
    board_rows: int
    board_cols: int
    stats: SolverStats = field(default_factory=SolverStats)

    @property
    def solved(self) -> bool:
        return bool(self.solutions)

    @property
    def first(self) -> Optional[Solution]:
        return self.solutions[0] if self.solutions else None
