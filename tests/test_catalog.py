import json
from pathlib import Path

import pytest

from config import SETTINGS
from polyomino.backtracking_solver import solve_puzzle
from polyomino.catalog import (
    PieceCatalog,
    catalog_from_dict,
    dump_solution,
    load_catalog,
    load_solution,
    optional_solution,
    placement_from_dict,
    solution_from_dict,
    solution_to_dict,
    write_solutions,
)
from polyomino.exceptions import CatalogError, InvalidGeometry, SolutionFormatError
from polyomino.models import Piece, Placement


@pytest.fixture
def catalog() -> PieceCatalog:
    return load_catalog(SETTINGS.CATALOG_FILE)


def test_reference_catalog_covers_the_board(catalog: PieceCatalog) -> None:
    assert len(catalog) == 12
    assert catalog.total_area == 55
    assert catalog.largest_size == 5
    assert catalog["greenSquare"].name == "Green Square"
    report = catalog.area_report(SETTINGS.BOARD_ROWS, SETTINGS.BOARD_COLS)
    assert report.balanced
    assert report.piece_areas["whiteL"] == 3
    assert "Total piece area equals grid size." in report.lines(catalog)


def test_area_report_flags_a_shortfall(catalog: PieceCatalog) -> None:
    report = catalog.area_report(6, 10)
    assert report.difference == 5
    assert not report.balanced
    assert any("LESS than grid size" in line for line in report.lines(catalog))


def test_piece_cells_are_normalized_on_load() -> None:
    loaded = catalog_from_dict(
        {"pieces": {"bar": {"name": "Bar", "color": "#000", "coordinates": [[3, 5], [3, 6]]}}}
    )
    assert loaded["bar"].cells == ((0, 0), (0, 1))


@pytest.mark.parametrize(
    "coordinates",
    [[], [[0, 0], [0, 0]], [[0]], [["a", 1]], [[True, 0]]],
)
def test_malformed_coordinates_are_rejected(coordinates) -> None:
    with pytest.raises(InvalidGeometry):
        catalog_from_dict({"pieces": {"bad": {"coordinates": coordinates}}})


def test_missing_pieces_mapping() -> None:
    with pytest.raises(CatalogError):
        catalog_from_dict({"shapes": []})


def test_duplicate_ids_rejected() -> None:
    piece = Piece("dup", "Dup", "", ((0, 0),))
    with pytest.raises(CatalogError):
        PieceCatalog([piece, piece])


def test_subset_keeps_catalog_order(catalog: PieceCatalog) -> None:
    subset = catalog.subset(["greenU", "whiteL"])
    assert subset.ids() == ["whiteL", "greenU"]
    with pytest.raises(CatalogError):
        catalog.subset(["nope"])


def test_unreadable_catalog(tmp_path: Path) -> None:
    with pytest.raises(CatalogError):
        load_catalog(tmp_path / "missing.json")
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(CatalogError):
        load_catalog(broken)


def test_reference_solution_loads() -> None:
    solution = load_solution(SETTINGS.SOLUTION_FILE)
    assert len(solution) == 12
    assert solution.placements[1] == Placement("darkPinkL", 1, 1, 0, True)


def test_solution_round_trip(tmp_path: Path) -> None:
    solution = load_solution(SETTINGS.SOLUTION_FILE)
    assert solution_from_dict(solution_to_dict(solution)) == solution
    target = tmp_path / "out" / "solution.json"
    dump_solution(target, solution)
    assert load_solution(target) == solution


def test_generator_output_shape_is_accepted(tmp_path: Path) -> None:
    path = tmp_path / "solutions.json"
    path.write_text(
        json.dumps(
            {
                "solutions": [
                    {"id": 1, "pieces": [{"pieceId": "a", "position": [0, 0], "rotation": 0, "flip": False}]}
                ]
            }
        ),
        encoding="utf-8",
    )
    assert load_solution(path).piece_ids == ["a"]


def test_placement_accepts_object_position_and_piece_key() -> None:
    placement = placement_from_dict(
        {"pieceKey": "a", "position": {"row": 2, "col": 3}, "rotation": 3, "flip": True}
    )
    assert placement == Placement("a", 2, 3, 3, True)


@pytest.mark.parametrize(
    "record",
    [
        {"position": [0, 0]},
        {"pieceId": "a", "position": [0]},
        {"pieceId": "a", "position": [0, 0], "rotation": 4},
        {"pieceId": "a", "position": [0, 0], "flip": "yes"},
        "a",
    ],
)
def test_malformed_steps_are_rejected(record) -> None:
    with pytest.raises(SolutionFormatError):
        placement_from_dict(record)


def test_duplicate_piece_in_solution() -> None:
    step = {"pieceId": "a", "position": [0, 0]}
    with pytest.raises(SolutionFormatError):
        solution_from_dict([step, step])


def test_optional_solution(tmp_path: Path) -> None:
    assert optional_solution(None) is None
    assert optional_solution(tmp_path / "absent.json") is None


def test_write_solutions_includes_grid_guides_and_metadata(tmp_path: Path) -> None:
    pieces = PieceCatalog(
        [Piece("a", "A", "", ((0, 0), (1, 0), (1, 1))), Piece("b", "B", "", ((0, 0), (1, 0), (1, 1)))]
    )
    result = solve_puzzle(pieces, 2, 3)

    target = write_solutions(tmp_path / "solutions.json", result, pieces, max_solutions=1)

    data = json.loads(target.read_text(encoding="utf-8"))
    assert len(data["solutions"]) == 1
    grid = data["solutions"][0]["grid"]
    assert sorted(cell for row in grid for cell in row) == ["a", "a", "a", "b", "b", "b"]
    assert data["stepByStepGuides"][0]["totalSteps"] == 2
    metadata = data["metadata"]
    assert metadata["totalSolutions"] == 1
    assert metadata["status"] == "solved"
    assert metadata["gridSize"] == {"rows": 2, "cols": 3}
    assert metadata["totalCells"] == 6
    assert metadata["maxSolutions"] == 1
    assert load_solution(target) == result.first
