from pathlib import Path

import pytest

from app import RunLogWriter
from polyomino.backtracking_solver import solve_puzzle
from polyomino.catalog import PieceCatalog
from polyomino.models import Piece, SearchStatus, SolveResult, SolverStats


@pytest.fixture
def log_path(tmp_path: Path) -> Path:
    return tmp_path / "run.log"


@pytest.fixture
def catalog() -> PieceCatalog:
    return PieceCatalog(
        [
            Piece("a", "Corner A", "#fff", ((0, 0), (1, 0), (1, 1))),
            Piece("b", "Corner B", "#000", ((0, 0), (1, 0), (1, 1))),
        ]
    )


def test_header_includes_timestamp_and_selection(log_path: Path, catalog: PieceCatalog) -> None:
    RunLogWriter(log_path, catalog, 2, 3)

    content = log_path.read_text(encoding="utf-8")
    assert "Generated at:" in content
    assert "Board: 2 x 3 (6 cells)" in content
    assert "- a: Corner A, 3 cells" in content
    assert "Total area: 6 cells" in content


def test_header_without_selection(log_path: Path) -> None:
    RunLogWriter(log_path)

    assert "Pieces: none selected" in log_path.read_text(encoding="utf-8")


def test_summary_lists_solution_layout(log_path: Path, catalog: PieceCatalog) -> None:
    writer = RunLogWriter(log_path, catalog, 2, 3)
    result = solve_puzzle(catalog, 2, 3)

    writer.append_summary(result, None, catalog)

    content = log_path.read_text(encoding="utf-8")
    assert "Status: solved" in content
    assert "Solution 1:" in content
    assert "Layout:" in content
    assert "Run ended with a successful solution." in content


def test_summary_includes_total_backtracks(log_path: Path) -> None:
    writer = RunLogWriter(log_path)
    result = SolveResult(
        solutions=[],
        status=SearchStatus.EXHAUSTED,
        board_rows=2,
        board_cols=2,
        stats=SolverStats(attempts=12345, backtracks=5555, elapsed=2.5),
    )

    writer.append_summary(result)
    writer.append_summary(result)

    content = log_path.read_text(encoding="utf-8")
    assert "Total backtracks performed: 5,555" in content
    assert "Total attempts: 12,345" in content
    assert content.count("Summary:") == 1
    assert "Run completed without a solution." in content


def test_events_are_appended(log_path: Path) -> None:
    writer = RunLogWriter(log_path)
    writer.handle_event(
        {"type": "run_started", "piece_ordering": "constraint", "time_limit_sec": None, "max_solutions": 1}
    )
    writer.handle_event(
        {"type": "progress", "elapsed": 1.5, "attempts": 10, "backtracks": 4, "solutions_found": 0}
    )
    writer.handle_event({"type": "run_completed", "elapsed": 2.0, "status": "solved", "success": True})
    writer.handle_event({"type": "unknown"})
    writer.log_error("boom")

    content = log_path.read_text(encoding="utf-8")
    assert "Run started (ordering: constraint, time limit: no limit, max solutions: 1)." in content
    assert "Progress at 1.50s: attempts=10, backtracks=4, solutions=0." in content
    assert "Run completed in 2.00s (status: solved, success: yes)." in content
    assert "Error: boom" in content
