"""CLI entrypoint that searches for board solutions and writes them as JSON."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from config import SETTINGS
from polyomino.backtracking_solver import PIECE_ORDERINGS, BacktrackingSolver, SolverOptions
from polyomino.catalog import PieceCatalog, load_catalog, write_solutions
from polyomino.exceptions import PackingError
from polyomino.logger import configure_logging, get_logger

LOGGER = get_logger("polyomino.generate")

EXIT_SOLVED = 0
EXIT_NO_SOLUTION = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    defaults = SETTINGS.GENERATOR
    parser = argparse.ArgumentParser(
        description="Search for complete packings of the piece catalog",
    )
    parser.add_argument("--rows", type=int, default=SETTINGS.BOARD_ROWS, help="Board height in cells")
    parser.add_argument("--cols", type=int, default=SETTINGS.BOARD_COLS, help="Board width in cells")
    parser.add_argument(
        "--catalog",
        type=Path,
        default=SETTINGS.CATALOG_FILE,
        help="Path to the piece catalog JSON",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=SETTINGS.OUTPUT_DIR / "solutions.json",
        help="Where to write the solutions JSON",
    )
    parser.add_argument(
        "--max-solutions",
        type=int,
        default=defaults.max_solutions,
        help="Stop after this many solutions (0 enumerates all of them)",
    )
    parser.add_argument(
        "--time-limit",
        type=float,
        default=defaults.time_limit_sec,
        help="Search time limit in seconds",
    )
    parser.add_argument(
        "--ordering",
        type=str,
        choices=PIECE_ORDERINGS,
        default=defaults.piece_ordering,
        help="Order in which pieces are placed",
    )
    parser.add_argument(
        "--no-prune",
        action="store_true",
        help="Disable dead-region pruning",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Only report piece areas against the board size",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


def validate_catalog(catalog: PieceCatalog, rows: int, cols: int) -> int:
    report = catalog.area_report(rows, cols)
    for line in report.lines(catalog):
        LOGGER.info(line)
    return EXIT_SOLVED if report.balanced else EXIT_CONFIG_ERROR


class ProgressLogger:
    """Solver progress callback that reports at INFO."""

    def __init__(self) -> None:
        self.reports = 0

    def __call__(self, solver: BacktrackingSolver) -> None:
        self.reports += 1
        stats = solver.stats
        LOGGER.info(
            "Progress: %d attempts, %d backtracks, %d solution(s), depth %d, %.1fs elapsed",
            stats.attempts,
            stats.backtracks,
            stats.solutions_found,
            stats.max_depth,
            stats.elapsed,
        )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    level = getattr(logging, args.log_level.upper(), logging.INFO)
    configure_logging(level)

    try:
        catalog = load_catalog(args.catalog)
    except PackingError as exc:
        LOGGER.error("Could not load catalog: %s", exc)
        return EXIT_CONFIG_ERROR
    LOGGER.info("Loaded %d pieces from %s", len(catalog), args.catalog)

    if args.validate:
        return validate_catalog(catalog, args.rows, args.cols)

    max_solutions = args.max_solutions if args.max_solutions else None
    try:
        options = SolverOptions(
            max_solutions=max_solutions,
            time_limit_sec=args.time_limit,
            piece_ordering=args.ordering,
            prune_dead_regions=not args.no_prune,
            progress_interval_sec=SETTINGS.PROGRESS_LOG_INTERVAL_SEC,
        )
        solver = BacktrackingSolver(
            catalog,
            args.rows,
            args.cols,
            options=options,
            progress_callback=ProgressLogger(),
        )
        result = solver.solve()
    except (PackingError, ValueError) as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return EXIT_CONFIG_ERROR

    LOGGER.info("Piece order: %s", ", ".join(solver.piece_order))
    if not result.solved:
        LOGGER.warning("No solution found (%s)", result.status.value)
        return EXIT_NO_SOLUTION

    target = write_solutions(args.output, result, catalog, max_solutions)
    LOGGER.info("Wrote %d solution(s) to %s", len(result.solutions), target)
    return EXIT_SOLVED


if __name__ == "__main__":
    raise SystemExit(main())
