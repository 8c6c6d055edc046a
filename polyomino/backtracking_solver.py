from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .board import Board
from .exceptions import AreaMismatch
from .geometry import bounding_box, orientations
from .logger import get_logger
from .models import Cells, Orientation, Piece, SearchStatus, Solution, SolveResult, SolverStats
from .validator import PlacementValidator

LOGGER = get_logger(__name__)

PIECE_ORDERINGS = ("constraint", "catalog")


@dataclass
class SolverOptions:
    """Knobs for a single search.

    Attributes:
        max_solutions: Stop after this many solutions. ``None`` searches the
            whole space.
        time_limit_sec: Wall clock budget, checked cooperatively.
        piece_ordering: ``"constraint"`` places the most constrained piece
            first, ``"catalog"`` keeps catalog order.
        prune_dead_regions: Abandon a branch as soon as an empty region can
            no longer be filled by the remaining piece sizes.
        skip_equivalent_orientations: Only try one of several orientations
            that produce the same cell set.
    """
    max_solutions: Optional[int] = 1
    time_limit_sec: Optional[float] = None
    piece_ordering: str = "constraint"
    prune_dead_regions: bool = True
    skip_equivalent_orientations: bool = True
    progress_interval_sec: float = 0.25

    def __post_init__(self) -> None:
        if self.piece_ordering not in PIECE_ORDERINGS:
            raise ValueError(f"Unknown piece ordering: {self.piece_ordering}")
        if self.max_solutions is not None:
            if not isinstance(self.max_solutions, int) or isinstance(self.max_solutions, bool):
                raise ValueError("max_solutions must be an integer or None")
            if self.max_solutions < 1:
                raise ValueError("max_solutions must be positive or None")
        if self.time_limit_sec is not None:
            if not isinstance(self.time_limit_sec, (int, float)) or isinstance(self.time_limit_sec, bool):
                raise ValueError("time_limit_sec must be a number or None")
            if self.time_limit_sec < 0:
                raise ValueError("time_limit_sec must not be negative")


ProgressCallback = Callable[["BacktrackingSolver"], None]
StopPredicate = Callable[[], bool]
Candidate = Tuple[Orientation, Cells, int, int]


def constraint_score(piece: Piece, rows: int, cols: int, largest_size: int) -> int:
    """Higher scores mean harder to place later.

    Base cells that would sit on a board corner count 3, on a border 1, and
    every cell a piece is smaller than the largest piece counts 2.
    """
    score = 0
    for r, c in piece.cells:
        on_row_edge = r == 0 or r == rows - 1
        on_col_edge = c == 0 or c == cols - 1
        if on_row_edge and on_col_edge:
            score += 3
        elif on_row_edge or on_col_edge:
            score += 1
    score += (largest_size - piece.size) * 2
    return score


def order_pieces(
    pieces: Mapping[str, Piece],
    rows: int,
    cols: int,
    strategy: str = "constraint",
) -> List[str]:
    ids = list(pieces)
    if strategy == "catalog":
        return ids
    largest = max((piece.size for piece in pieces.values()), default=0)
    position = {piece_id: index for index, piece_id in enumerate(ids)}
    return sorted(
        ids,
        key=lambda piece_id: (
            -constraint_score(pieces[piece_id], rows, cols, largest),
            -pieces[piece_id].size,
            position[piece_id],
        ),
    )


class BacktrackingSolver:
    def __init__(
        self,
        pieces: Mapping[str, Piece],
        rows: Optional[int] = None,
        cols: Optional[int] = None,
        options: Optional[SolverOptions] = None,
        board: Optional[Board] = None,
        progress_callback: Optional[ProgressCallback] = None,
        should_stop: Optional[StopPredicate] = None,
    ) -> None:
        if board is None:
            if rows is None or cols is None:
                raise ValueError("Board dimensions are required when no board is given")
            board = Board(rows, cols, pieces.keys())
        missing = [piece_id for piece_id in pieces if piece_id not in board.piece_ids]
        if missing:
            raise ValueError(f"Board does not track pieces: {', '.join(missing)}")
        self.pieces = pieces
        self.board = board
        self.rows = board.rows
        self.cols = board.cols
        self.options = options or SolverOptions()
        self.validator = PlacementValidator(pieces, board)
        self.stats = SolverStats()
        self.solutions: List[Solution] = []
        self._progress_callback = progress_callback
        self._should_stop = should_stop
        self._start_time = 0.0
        self._last_progress_report = 0.0
        self._timed_out = False
        self._cancelled = False
        self._fill_cache: Dict[Tuple[Tuple[int, ...], int], bool] = {}
        self._piece_order = order_pieces(pieces, self.rows, self.cols, self.options.piece_ordering)
        self._candidates = self._build_candidates()

    def _build_candidates(self) -> Dict[str, List[Candidate]]:
        candidates: Dict[str, List[Candidate]] = {}
        for piece_id, piece in self.pieces.items():
            entries: List[Candidate] = []
            for orientation, cells in orientations(
                piece, unique=self.options.skip_equivalent_orientations
            ):
                height, width = bounding_box(cells)
                entries.append((orientation, cells, height, width))
            candidates[piece_id] = entries
        return candidates

    @property
    def piece_order(self) -> List[str]:
        return list(self._piece_order)

    def solve(self) -> SolveResult:
        piece_area = sum(piece.size for piece in self.pieces.values())
        if piece_area != self.board.total_cells:
            raise AreaMismatch(piece_area, self.board.total_cells)
        self.solutions = []
        self.stats = SolverStats()
        self._timed_out = False
        self._cancelled = False
        self._start_time = time.time()
        self._last_progress_report = self._start_time
        LOGGER.info(
            "Search started: %dx%d board, %d pieces, ordering=%s",
            self.rows,
            self.cols,
            len(self.pieces),
            self.options.piece_ordering,
        )
        remaining_area = sum(self.pieces[piece_id].size for piece_id in self._remaining())
        free_cells = self.board.total_cells - self.board.filled_cells()
        if remaining_area != free_cells:
            LOGGER.info(
                "Remaining pieces cover %d cells but %d are free; nothing to search",
                remaining_area,
                free_cells,
            )
        else:
            self._search(0)
        self.stats.elapsed = time.time() - self._start_time
        status = self._final_status()
        LOGGER.info(
            "Search finished (%s): %d solution(s), %d attempts, %d backtracks in %.2fs",
            status.value,
            len(self.solutions),
            self.stats.attempts,
            self.stats.backtracks,
            self.stats.elapsed,
        )
        return SolveResult(
            solutions=list(self.solutions),
            status=status,
            board_rows=self.rows,
            board_cols=self.cols,
            stats=self.stats,
        )

    def _final_status(self) -> SearchStatus:
        if self.solutions:
            return SearchStatus.SOLVED
        if self._cancelled:
            return SearchStatus.CANCELLED
        if self._timed_out:
            return SearchStatus.TIMED_OUT
        return SearchStatus.EXHAUSTED

    def _report_progress(self) -> None:
        if not self._progress_callback:
            return
        now = time.time()
        if now - self._last_progress_report < self.options.progress_interval_sec:
            return
        self._last_progress_report = now
        self._progress_callback(self)

    def _time_remaining(self) -> bool:
        elapsed = time.time() - self._start_time
        self.stats.elapsed = elapsed
        self._report_progress()
        limit = self.options.time_limit_sec
        if limit is None:
            return True
        if elapsed > limit:
            self._timed_out = True
            return False
        return True

    def _stop_requested(self) -> bool:
        limit = self.options.max_solutions
        if limit is not None and len(self.solutions) >= limit:
            return True
        if self._timed_out or self._cancelled:
            return True
        if not self._time_remaining():
            return True
        if self._should_stop is not None and self._should_stop():
            self._cancelled = True
            return True
        return False

    def _search(self, depth: int) -> None:
        if self._stop_requested():
            return
        if self.board.is_complete():
            self._record_solution()
            return
        piece_id = self._next_piece()
        if piece_id is None:
            self.stats.backtracks += 1
            return
        self.stats.max_depth = max(self.stats.max_depth, depth + 1)
        for orientation, cells, height, width in self._candidates[piece_id]:
            for row in range(self.rows - height + 1):
                for col in range(self.cols - width + 1):
                    if self._stop_requested():
                        return
                    if not self.validator.can_place(
                        piece_id, row, col, orientation.rotation, orientation.flipped
                    ):
                        continue
                    self.stats.attempts += 1
                    self.board.try_place(
                        piece_id, cells, row, col, orientation.rotation, orientation.flipped
                    )
                    try:
                        if self.options.prune_dead_regions and self._creates_dead_region():
                            self.stats.pruned += 1
                            continue
                        self._search(depth + 1)
                    finally:
                        self.board.remove(piece_id)
        self.stats.backtracks += 1

    def _record_solution(self) -> None:
        placements = tuple(
            placement for placement in self.board.placements() if placement.piece_id in self.pieces
        )
        self.solutions.append(Solution(placements))
        self.stats.solutions_found = len(self.solutions)
        LOGGER.info(
            "Solution %d found after %d attempts",
            len(self.solutions),
            self.stats.attempts,
        )

    def _remaining(self) -> List[str]:
        return [piece_id for piece_id in self._piece_order if self.board.is_available(piece_id)]

    def _next_piece(self) -> Optional[str]:
        for piece_id in self._piece_order:
            if self.board.is_available(piece_id):
                return piece_id
        return None

    def _creates_dead_region(self) -> bool:
        sizes = tuple(sorted(self.pieces[piece_id].size for piece_id in self._remaining()))
        if not sizes:
            return False
        grid = self.board.grid
        visited = [[False for _ in range(self.cols)] for _ in range(self.rows)]
        for y in range(self.rows):
            for x in range(self.cols):
                if grid[y][x] is not None or visited[y][x]:
                    continue
                stack = [(y, x)]
                visited[y][x] = True
                area = 0
                while stack:
                    cy, cx = stack.pop()
                    area += 1
                    for ny, nx in ((cy - 1, cx), (cy + 1, cx), (cy, cx - 1), (cy, cx + 1)):
                        if 0 <= ny < self.rows and 0 <= nx < self.cols:
                            if not visited[ny][nx] and grid[ny][nx] is None:
                                visited[ny][nx] = True
                                stack.append((ny, nx))
                if not self._area_fillable(area, sizes):
                    return True
        return False

    def _area_fillable(self, area: int, sizes: Tuple[int, ...]) -> bool:
        if area < sizes[0]:
            return False
        key = (sizes, area)
        cached = self._fill_cache.get(key)
        if cached is not None:
            return cached
        # Each remaining piece is used at most once, so this is a 0/1 subset sum.
        reachable = [False] * (area + 1)
        reachable[0] = True
        for size in sizes:
            for value in range(area, size - 1, -1):
                if reachable[value - size]:
                    reachable[value] = True
        self._fill_cache[key] = reachable[area]
        return reachable[area]


def solve_puzzle(
    pieces: Mapping[str, Piece],
    rows: int,
    cols: int,
    **option_values: object,
) -> SolveResult:
    """Run a fresh search on an empty ``rows`` x ``cols`` board."""
    options = SolverOptions(**option_values)  # type: ignore[arg-type]
    return BacktrackingSolver(pieces, rows, cols, options).solve()
