"""Replay of stored solutions and step-by-step hints.

The projector never decides orientations itself: every step is applied with
the exact rotation and flip recorded in the solution, so a hint always
matches what was stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from .board import Board
from .exceptions import HintInconsistency
from .geometry import orient
from .logger import get_logger
from .models import Piece, Placement, Solution

LOGGER = get_logger(__name__)

ROTATION_PHRASES = ("normal", "turned right", "upside down", "turned left")
FIVE_ROW_NAMES = ("top", "second", "third", "fourth", "bottom")


def _ordinal(value: int) -> str:
    if 10 <= value % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(value % 10, "th")
    return f"{value}{suffix}"


def describe_position(row: int, col: int, rows: int) -> str:
    if row == 0:
        row_name = "top"
    elif row == rows - 1:
        row_name = "bottom"
    elif rows == len(FIVE_ROW_NAMES):
        row_name = FIVE_ROW_NAMES[row]
    else:
        row_name = _ordinal(row + 1)
    return f"{row_name} row, {_ordinal(col + 1)} column"


@dataclass(frozen=True)
class Hint:
    step_number: int
    total_steps: int
    placement: Placement
    description: str
    is_completed: bool = False

    @property
    def progress(self) -> str:
        return f"{self.step_number}/{self.total_steps}"

    def to_dict(self) -> Dict[str, object]:
        return {
            "stepNumber": self.step_number,
            "piece": self.placement.to_dict(),
            "description": self.description,
            "progress": self.progress,
            "isCompleted": self.is_completed,
        }


@dataclass
class ReplayReport:
    total_steps: int
    applied_steps: int = 0
    failed_step: Optional[int] = None
    piece_id: Optional[str] = None
    messages: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed_step is None and self.applied_steps == self.total_steps

    def raise_for_failure(self) -> None:
        if not self.success:
            raise HintInconsistency(
                f"Step {self.failed_step} ({self.piece_id}) could not be applied"
                if self.failed_step is not None
                else "Solution was not fully applied"
            )


class SolutionProjector:
    def __init__(
        self,
        solution: Solution,
        pieces: Mapping[str, Piece],
        board_rows: int = 5,
    ) -> None:
        self.solution = solution
        self.pieces = pieces
        self.board_rows = board_rows
        self.current_step = 0

    @property
    def step_count(self) -> int:
        return len(self.solution.placements)

    @property
    def is_finished(self) -> bool:
        return self.current_step >= self.step_count

    def step_at(self, index: int) -> Placement:
        if not 0 <= index < self.step_count:
            raise IndexError(f"Step {index} out of range (0..{self.step_count - 1})")
        return self.solution.placements[index]

    def apply_step(self, board: Board, index: int) -> bool:
        if not 0 <= index < self.step_count:
            return False
        placement = self.solution.placements[index]
        piece = self.pieces.get(placement.piece_id)
        if piece is None or board.is_placed(placement.piece_id):
            return False
        cells = orient(piece, placement.rotation, placement.flipped)
        return board.try_place(
            placement.piece_id,
            cells,
            placement.row,
            placement.col,
            placement.rotation,
            placement.flipped,
        )

    def advance(self) -> int:
        if self.current_step < self.step_count:
            self.current_step += 1
        return self.current_step

    def reset(self) -> None:
        self.current_step = 0

    def next_hint(self) -> Optional[Hint]:
        if self.is_finished:
            return None
        return self._hint(self.current_step)

    def apply_hint(self, board: Board) -> bool:
        """Apply the step under the cursor and advance only if it was committed."""
        if self.is_finished:
            return False
        if not self.apply_step(board, self.current_step):
            LOGGER.warning(
                "Hint step %d (%s) could not be applied",
                self.current_step + 1,
                self.solution.placements[self.current_step].piece_id,
            )
            return False
        self.advance()
        return True

    def apply_all(self, board: Board) -> ReplayReport:
        report = ReplayReport(total_steps=self.step_count)
        for index, placement in enumerate(self.solution.placements):
            if not self.apply_step(board, index):
                report.failed_step = index + 1
                report.piece_id = placement.piece_id
                report.messages.append(f"Failed to place piece: {placement.piece_id}")
                LOGGER.error("Failed to place piece %s at step %d", placement.piece_id, index + 1)
                return report
            report.applied_steps += 1
        return report

    def describe(self, placement: Placement) -> str:
        piece = self.pieces.get(placement.piece_id)
        piece_name = piece.name.lower() if piece is not None else placement.piece_id
        position = describe_position(placement.row, placement.col, self.board_rows)
        flip_text = " and flipped" if placement.flipped else ""
        return (
            f"Put the {piece_name} in the {position} "
            f"{ROTATION_PHRASES[placement.rotation]}{flip_text}"
        )

    def hints(self) -> List[Hint]:
        return [self._hint(index) for index in range(self.step_count)]

    def guide(self) -> Dict[str, object]:
        return {
            "steps": [hint.to_dict() for hint in self.hints()],
            "totalSteps": self.step_count,
            "currentStep": self.current_step,
        }

    def _hint(self, index: int) -> Hint:
        placement = self.solution.placements[index]
        return Hint(
            step_number=index + 1,
            total_steps=self.step_count,
            placement=placement,
            description=self.describe(placement),
            is_completed=index < self.current_step,
        )
