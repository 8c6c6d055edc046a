"""Pure coordinate transforms for polyomino pieces.

Cells are ``(row, col)`` pairs with rows growing downwards. Every function
returns a sorted tuple so that equal cell sets compare equal and results are
usable as dictionary keys.
"""

from __future__ import annotations

from typing import Iterable, List, Tuple, Union

from .models import Cell, Cells, Orientation, Piece

ORIENTATIONS: Tuple[Orientation, ...] = tuple(
    Orientation(rotation, flipped) for flipped in (False, True) for rotation in range(4)
)


def normalize(cells: Iterable[Cell]) -> Cells:
    points = list(cells)
    if not points:
        return ()
    min_row = min(r for r, _ in points)
    min_col = min(c for _, c in points)
    return tuple(sorted((r - min_row, c - min_col) for r, c in points))


def rotate(cells: Iterable[Cell], steps: int) -> Cells:
    """Rotate ``steps`` quarter turns clockwise and renormalize."""
    rotated = list(cells)
    for _ in range(steps % 4):
        rotated = [(c, -r) for r, c in rotated]
    return normalize(rotated)


def flip(cells: Iterable[Cell], do_flip: bool) -> Cells:
    """Mirror horizontally when ``do_flip`` is set.

    The mirror axis is the middle of the set's column span, which equals
    ``max_col - c`` for normalized input and keeps the transform
    self-inverse for any input.
    """
    points = list(cells)
    if not do_flip or not points:
        return tuple(sorted(points))
    min_col = min(c for _, c in points)
    max_col = max(c for _, c in points)
    return tuple(sorted((r, min_col + max_col - c) for r, c in points))


def orient(
    piece: Union[Piece, Iterable[Cell]],
    rotation: int = 0,
    flipped: bool = False,
) -> Cells:
    cells = piece.cells if isinstance(piece, Piece) else piece
    return flip(rotate(cells, rotation), flipped)


def orientations(
    piece: Union[Piece, Iterable[Cell]],
    unique: bool = False,
) -> List[Tuple[Orientation, Cells]]:
    """All eight orientations in enumeration order.

    With ``unique`` set, orientations producing an already seen cell set are
    dropped, keeping the first one.
    """
    cells = piece.cells if isinstance(piece, Piece) else tuple(piece)
    result: List[Tuple[Orientation, Cells]] = []
    seen = set()
    for orientation in ORIENTATIONS:
        shape = orient(cells, orientation.rotation, orientation.flipped)
        if unique:
            if shape in seen:
                continue
            seen.add(shape)
        result.append((orientation, shape))
    return result


def bounding_box(cells: Iterable[Cell]) -> Tuple[int, int]:
    """Return ``(height, width)`` of the cells' bounding box."""
    points = list(cells)
    if not points:
        return 0, 0
    rows = [r for r, _ in points]
    cols = [c for _, c in points]
    return max(rows) - min(rows) + 1, max(cols) - min(cols) + 1


def translate(cells: Iterable[Cell], row: int, col: int) -> List[Cell]:
    return [(row + dr, col + dc) for dr, dc in cells]
