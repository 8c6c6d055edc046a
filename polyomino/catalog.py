"""Piece catalog and stored solution files.

The catalog file is the shape the game ships with::

    {"pieces": {"greenSquare": {"name": "Green Square", "color": "#2ecc71",
                                "coordinates": [[0, 0], [0, 1], [1, 0], [1, 1]]}}}

A stored solution is an ordered list of
``{"pieceId", "position": [row, col], "rotation", "flip"}`` records, either
under a ``"solution"`` key or as the ``"pieces"`` of the first entry of a
generator ``"solutions"`` list.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

from .board import Board
from .exceptions import CatalogError, InvalidGeometry, SolutionFormatError
from .models import Cell, Piece, Placement, Solution, SolveResult
from .projector import SolutionProjector

PathLike = Union[str, Path]


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class AreaReport:
    piece_areas: Dict[str, int]
    total_area: int
    board_cells: int

    @property
    def difference(self) -> int:
        return self.board_cells - self.total_area

    @property
    def balanced(self) -> bool:
        return self.difference == 0

    def lines(self, catalog: "PieceCatalog") -> List[str]:
        lines = ["Piece analysis:"]
        for piece_id, area in self.piece_areas.items():
            piece = catalog[piece_id]
            lines.append(f"  {piece.name}: {area} cells ({piece.color})")
        lines.append(f"Total pieces: {len(self.piece_areas)}")
        lines.append(f"Total area: {self.total_area} cells")
        lines.append(f"Grid size: {self.board_cells} cells")
        lines.append(f"Difference: {self.difference} cells")
        if self.balanced:
            lines.append("Total piece area equals grid size.")
        elif self.difference > 0:
            lines.append("Total piece area is LESS than grid size; the puzzle cannot be solved.")
        else:
            lines.append("Total piece area is MORE than grid size; the puzzle cannot be solved.")
        return lines


class PieceCatalog(Mapping[str, Piece]):
    """Ordered, read-only mapping of piece id to :class:`Piece`."""

    def __init__(self, pieces: Iterable[Piece]) -> None:
        self._pieces: Dict[str, Piece] = {}
        for piece in pieces:
            if piece.id in self._pieces:
                raise CatalogError(f"Duplicate piece id: {piece.id}")
            self._pieces[piece.id] = piece

    def __getitem__(self, piece_id: str) -> Piece:
        return self._pieces[piece_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._pieces)

    def __len__(self) -> int:
        return len(self._pieces)

    def ids(self) -> List[str]:
        return list(self._pieces)

    @property
    def total_area(self) -> int:
        return sum(piece.size for piece in self._pieces.values())

    @property
    def largest_size(self) -> int:
        return max((piece.size for piece in self._pieces.values()), default=0)

    def subset(self, piece_ids: Iterable[str]) -> "PieceCatalog":
        wanted = set(piece_ids)
        unknown = wanted - set(self._pieces)
        if unknown:
            raise CatalogError(f"Unknown piece ids: {', '.join(sorted(unknown))}")
        return PieceCatalog(piece for piece in self._pieces.values() if piece.id in wanted)

    def area_report(self, rows: int, cols: int) -> AreaReport:
        return AreaReport(
            piece_areas={piece_id: piece.size for piece_id, piece in self._pieces.items()},
            total_area=self.total_area,
            board_cells=rows * cols,
        )

    def to_dict(self) -> Dict[str, object]:
        return {"pieces": {piece_id: piece.to_dict() for piece_id, piece in self._pieces.items()}}


def _parse_coordinates(piece_id: str, raw: object) -> List[Cell]:
    if not isinstance(raw, list) or not raw:
        raise InvalidGeometry(f"Piece {piece_id!r} must define a non-empty coordinate list")
    cells: List[Cell] = []
    for entry in raw:
        if (
            not isinstance(entry, (list, tuple))
            or len(entry) != 2
            or not all(_is_int(value) for value in entry)
        ):
            raise InvalidGeometry(f"Piece {piece_id!r} has a malformed coordinate: {entry!r}")
        cells.append((int(entry[0]), int(entry[1])))
    return cells


def catalog_from_dict(data: Mapping[str, object]) -> PieceCatalog:
    pieces_data = data.get("pieces") if isinstance(data, Mapping) else None
    if not isinstance(pieces_data, Mapping) or not pieces_data:
        raise CatalogError("Catalog must contain a non-empty 'pieces' mapping")
    pieces: List[Piece] = []
    for piece_id, entry in pieces_data.items():
        if not isinstance(entry, Mapping):
            raise CatalogError(f"Piece {piece_id!r} must be an object")
        cells = _parse_coordinates(piece_id, entry.get("coordinates"))
        pieces.append(
            Piece(
                id=str(piece_id),
                name=str(entry.get("name") or piece_id),
                color=str(entry.get("color") or ""),
                cells=tuple(cells),
            )
        )
    return PieceCatalog(pieces)


def load_catalog(path: PathLike) -> PieceCatalog:
    return catalog_from_dict(_read_json(Path(path), CatalogError))


def placement_from_dict(record: Mapping[str, object]) -> Placement:
    if not isinstance(record, Mapping):
        raise SolutionFormatError(f"Solution step must be an object, got {record!r}")
    piece_id = record.get("pieceId", record.get("pieceKey"))
    if not isinstance(piece_id, str) or not piece_id:
        raise SolutionFormatError(f"Solution step is missing a piece id: {record!r}")
    position = record.get("position")
    if isinstance(position, Mapping):
        position = [position.get("row"), position.get("col")]
    if (
        not isinstance(position, (list, tuple))
        or len(position) != 2
        or not all(_is_int(value) for value in position)
    ):
        raise SolutionFormatError(f"Step for {piece_id!r} has an invalid position: {position!r}")
    rotation = record.get("rotation", 0)
    if not _is_int(rotation) or not 0 <= int(rotation) <= 3:
        raise SolutionFormatError(f"Step for {piece_id!r} has an invalid rotation: {rotation!r}")
    flipped = record.get("flip", False)
    if not isinstance(flipped, bool):
        raise SolutionFormatError(f"Step for {piece_id!r} has an invalid flip flag: {flipped!r}")
    return Placement(piece_id, int(position[0]), int(position[1]), int(rotation), flipped)


def solution_from_dict(records: Sequence[Mapping[str, object]]) -> Solution:
    if not isinstance(records, (list, tuple)):
        raise SolutionFormatError("Solution must be a list of steps")
    placements = tuple(placement_from_dict(record) for record in records)
    seen = set()
    for placement in placements:
        if placement.piece_id in seen:
            raise SolutionFormatError(f"Piece {placement.piece_id!r} appears twice in the solution")
        seen.add(placement.piece_id)
    return Solution(placements)


def solution_to_dict(solution: Solution) -> List[Dict[str, object]]:
    return solution.to_list()


def load_solution(path: PathLike) -> Solution:
    data = _read_json(Path(path), SolutionFormatError)
    if isinstance(data, Mapping) and "solution" in data:
        return solution_from_dict(data["solution"])
    if isinstance(data, Mapping) and isinstance(data.get("solutions"), list):
        entries = data["solutions"]
        if not entries:
            raise SolutionFormatError(f"{path} contains no solutions")
        first = entries[0]
        steps = first.get("pieces") if isinstance(first, Mapping) else first
        return solution_from_dict(steps)
    if isinstance(data, list):
        return solution_from_dict(data)
    raise SolutionFormatError(f"{path} does not contain a solution")


def dump_solution(path: PathLike, solution: Solution) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(
        json.dumps({"solution": solution_to_dict(solution)}, indent=2),
        encoding="utf-8",
    )


def _read_json(path: Path, error: type) -> object:
    try:
        raw_content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise error(f"Cannot read {path}: {exc}") from exc
    try:
        return json.loads(raw_content)
    except json.JSONDecodeError as exc:
        raise error(f"{path} is not valid JSON: {exc}") from exc


def optional_solution(path: Optional[PathLike]) -> Optional[Solution]:
    """Load a stored solution if the file exists, otherwise ``None``."""
    if path is None or not Path(path).exists():
        return None
    return load_solution(path)


def solution_grid(solution: Solution, catalog: PieceCatalog, rows: int, cols: int):
    """Replay ``solution`` on an empty board and return the occupancy grid."""
    board = Board(rows, cols, catalog.ids())
    SolutionProjector(solution, catalog, rows).apply_all(board).raise_for_failure()
    return board.snapshot()


def solutions_payload(
    result: SolveResult,
    catalog: PieceCatalog,
    max_solutions: Optional[int] = None,
) -> Dict[str, object]:
    rows, cols = result.board_rows, result.board_cols
    solutions: List[Dict[str, object]] = []
    guides: List[Dict[str, object]] = []
    for index, solution in enumerate(result.solutions, start=1):
        solutions.append(
            {
                "id": index,
                "pieces": solution.to_list(),
                "grid": solution_grid(solution, catalog, rows, cols),
            }
        )
        projector = SolutionProjector(solution, catalog, rows)
        guides.append({"solutionId": index, **projector.guide()})
    return {
        "solutions": solutions,
        "stepByStepGuides": guides,
        "metadata": {
            "totalSolutions": len(result.solutions),
            "status": result.status.value,
            "attempts": result.stats.attempts,
            "backtracks": result.stats.backtracks,
            "elapsedSec": round(result.stats.elapsed, 3),
            "gridSize": {"rows": rows, "cols": cols},
            "totalPieces": len(catalog),
            "totalCells": rows * cols,
            "maxSolutions": max_solutions,
            "generatedAt": datetime.now().astimezone().isoformat(timespec="seconds"),
        },
    }


def write_solutions(
    path: PathLike,
    result: SolveResult,
    catalog: PieceCatalog,
    max_solutions: Optional[int] = None,
) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = solutions_payload(result, catalog, max_solutions)
    target.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return target
