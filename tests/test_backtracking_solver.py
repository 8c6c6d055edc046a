import itertools
import unittest
from unittest import mock

from config import SETTINGS
from polyomino.backtracking_solver import (
    BacktrackingSolver,
    SolverOptions,
    order_pieces,
    solve_puzzle,
)
from polyomino.board import Board
from polyomino.catalog import PieceCatalog, load_catalog
from polyomino.exceptions import AreaMismatch
from polyomino.geometry import orient
from polyomino.models import Piece, SearchStatus

V3 = ((0, 0), (1, 0), (1, 1))


def two_trominoes() -> PieceCatalog:
    return PieceCatalog([Piece("a", "A", "", V3), Piece("b", "B", "", V3)])


def replay(catalog, solution, rows, cols) -> Board:
    board = Board(rows, cols, catalog.ids())
    for placement in solution:
        cells = orient(catalog[placement.piece_id], placement.rotation, placement.flipped)
        assert board.try_place(
            placement.piece_id, cells, placement.row, placement.col,
            placement.rotation, placement.flipped,
        )
    return board


class SmallBoardSearchTests(unittest.TestCase):
    def test_finds_first_solution(self):
        result = solve_puzzle(two_trominoes(), 2, 3)
        self.assertEqual(SearchStatus.SOLVED, result.status)
        self.assertEqual(1, len(result.solutions))
        self.assertTrue(replay(two_trominoes(), result.first, 2, 3).is_complete())

    def test_enumerates_every_labelled_tiling(self):
        result = solve_puzzle(two_trominoes(), 2, 3, max_solutions=None)
        self.assertEqual(4, len(result.solutions))
        layouts = {
            tuple(tuple(row) for row in replay(two_trominoes(), s, 2, 3).snapshot())
            for s in result.solutions
        }
        self.assertEqual(4, len(layouts))
        self.assertEqual(4, result.stats.solutions_found)

    def test_solutions_list_every_piece_once(self):
        result = solve_puzzle(two_trominoes(), 2, 3, max_solutions=None)
        for solution in result.solutions:
            self.assertEqual(["a", "b"], solution.piece_ids)

    def test_two_runs_give_the_same_first_solution(self):
        first = solve_puzzle(two_trominoes(), 2, 3).first
        second = solve_puzzle(two_trominoes(), 2, 3).first
        self.assertEqual(first, second)

    def test_search_without_pruning_matches(self):
        pruned = solve_puzzle(two_trominoes(), 2, 3, max_solutions=None)
        plain = solve_puzzle(two_trominoes(), 2, 3, max_solutions=None, prune_dead_regions=False)
        self.assertEqual(pruned.solutions, plain.solutions)
        self.assertEqual(0, plain.stats.pruned)

    def test_board_is_left_empty_after_search(self):
        solver = BacktrackingSolver(two_trominoes(), 2, 3, SolverOptions(max_solutions=None))
        solver.solve()
        self.assertEqual(0, solver.board.filled_cells())


class ReferenceBlockTests(unittest.TestCase):
    def setUp(self):
        self.catalog = load_catalog(SETTINGS.CATALOG_FILE).subset(
            ["lightBlueL", "darkPinkL", "greenU"]
        )

    def test_left_block_of_reference_board_is_solvable(self):
        result = solve_puzzle(self.catalog, 5, 3)
        self.assertTrue(result.solved)
        board = replay(self.catalog, result.first, 5, 3)
        self.assertTrue(board.is_complete())
        self.assertEqual(15, board.filled_cells())
        self.assertGreater(result.stats.attempts, 0)
        self.assertEqual(3, result.stats.max_depth)

    def test_catalog_ordering_also_solves(self):
        result = solve_puzzle(self.catalog, 5, 3, piece_ordering="catalog")
        self.assertTrue(result.solved)

    def test_repeated_runs_agree_on_first_solution(self):
        first = solve_puzzle(self.catalog, 5, 3).first
        second = BacktrackingSolver(self.catalog, 5, 3).solve().first
        self.assertEqual(first, second)
        self.assertEqual(["greenU", "lightBlueL", "darkPinkL"], first.piece_ids)


class FailureModeTests(unittest.TestCase):
    def test_area_mismatch_raises_before_any_attempt(self):
        solver = BacktrackingSolver(two_trominoes(), 2, 4)
        with self.assertRaises(AreaMismatch) as ctx:
            solver.solve()
        self.assertEqual(6, ctx.exception.piece_area)
        self.assertEqual(8, ctx.exception.board_cells)
        self.assertEqual(0, solver.stats.attempts)

    def test_blocked_board_is_exhausted(self):
        catalog = two_trominoes()
        board = Board(2, 3, catalog.ids())
        self.assertTrue(board.try_place("blocker", [(0, 0)], 0, 2))
        solver = BacktrackingSolver(catalog, board=board, options=SolverOptions(max_solutions=None))

        result = solver.solve()

        self.assertEqual(SearchStatus.EXHAUSTED, result.status)
        self.assertEqual([], result.solutions)
        self.assertEqual(["blocker"], [p.piece_id for p in board.placements()])
        self.assertEqual(1, board.filled_cells())

    def test_blocked_reference_board_stops_before_searching(self):
        catalog = load_catalog(SETTINGS.CATALOG_FILE)
        board = Board(SETTINGS.BOARD_ROWS, SETTINGS.BOARD_COLS, catalog.ids())
        board.try_place("blocker", [(0, 0)], 2, 5)
        solver = BacktrackingSolver(
            catalog,
            board=board,
            options=SolverOptions(prune_dead_regions=False, time_limit_sec=10),
        )

        result = solver.solve()

        self.assertEqual(SearchStatus.EXHAUSTED, result.status)
        self.assertEqual([], result.solutions)
        self.assertEqual(0, result.stats.attempts)

    def test_board_must_track_every_catalog_piece(self):
        with self.assertRaises(ValueError):
            BacktrackingSolver(two_trominoes(), board=Board(2, 3))
        with self.assertRaises(ValueError):
            BacktrackingSolver(two_trominoes(), board=Board(2, 3, ["a"]))

    def test_stop_predicate_cancels(self):
        solver = BacktrackingSolver(two_trominoes(), 2, 3, should_stop=lambda: True)
        result = solver.solve()
        self.assertEqual(SearchStatus.CANCELLED, result.status)
        self.assertEqual(0, result.stats.attempts)

    def test_time_limit_stops_search(self):
        clock = itertools.count(0, 10)
        with mock.patch("polyomino.backtracking_solver.time") as fake_time:
            fake_time.time.side_effect = lambda: next(clock)
            result = solve_puzzle(two_trominoes(), 2, 3, time_limit_sec=5)
        self.assertEqual(SearchStatus.TIMED_OUT, result.status)
        self.assertFalse(result.solved)

    def test_missing_dimensions(self):
        with self.assertRaises(ValueError):
            BacktrackingSolver(two_trominoes())

    def test_invalid_options(self):
        with self.assertRaises(ValueError):
            SolverOptions(piece_ordering="random")
        with self.assertRaises(ValueError):
            SolverOptions(max_solutions=0)
        for bad in ({"time_limit_sec": "5"}, {"time_limit_sec": -1}, {"max_solutions": 1.5}, {"max_solutions": True}):
            with self.subTest(options=bad):
                with self.assertRaises(ValueError):
                    SolverOptions(**bad)


class HeuristicTests(unittest.TestCase):
    def test_constraint_order_of_reference_catalog(self):
        catalog = load_catalog(SETTINGS.CATALOG_FILE)
        self.assertEqual(
            [
                "purpleLine",
                "whiteL",
                "greenSquare",
                "orangeL",
                "darkBlueL",
                "lightPinkT",
                "greenU",
                "darkPinkL",
                "yellowT",
                "lightBlueL",
                "redZigzag",
                "greyCross",
            ],
            order_pieces(catalog, 5, 11),
        )
        self.assertEqual(catalog.ids(), order_pieces(catalog, 5, 11, "catalog"))

    def test_area_fillable_is_subset_sum(self):
        solver = BacktrackingSolver(two_trominoes(), 2, 3)
        self.assertTrue(solver._area_fillable(3, (3, 4)))
        self.assertTrue(solver._area_fillable(7, (3, 4)))
        self.assertFalse(solver._area_fillable(5, (3, 4)))
        self.assertFalse(solver._area_fillable(2, (3,)))

    def test_progress_callback_receives_solver(self):
        seen = []
        solver = BacktrackingSolver(
            two_trominoes(),
            2,
            3,
            SolverOptions(max_solutions=None, progress_interval_sec=0.0),
            progress_callback=seen.append,
        )
        solver.solve()
        self.assertTrue(seen)
        self.assertIs(solver, seen[0])


if __name__ == "__main__":
    unittest.main()
