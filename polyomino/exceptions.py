"""Exception hierarchy for the packing solver."""


class PackingError(Exception):
    """Base exception for solver failures."""


class CatalogError(PackingError):
    """Raised when the piece catalog cannot be read or parsed."""


class InvalidGeometry(CatalogError):
    """Raised when a piece has no cells or a degenerate cell set."""


class AreaMismatch(PackingError):
    """Raised when the piece area does not match the board area."""

    def __init__(self, piece_area: int, board_cells: int) -> None:
        super().__init__(
            f"Total piece area {piece_area} does not match board size {board_cells}"
        )
        self.piece_area = piece_area
        self.board_cells = board_cells


class SolutionFormatError(PackingError):
    """Raised when a stored solution is malformed."""


class HintInconsistency(PackingError):
    """Raised when a stored solution step cannot be applied to a board."""
