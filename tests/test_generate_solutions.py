import json
from pathlib import Path

import pytest

import generate_solutions
from config import SETTINGS


def _write_catalog(path: Path, pieces) -> Path:
    path.write_text(
        json.dumps(
            {
                "pieces": {
                    piece_id: {"name": piece_id.title(), "color": "#123456", "coordinates": cells}
                    for piece_id, cells in pieces.items()
                }
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def tromino_catalog(tmp_path: Path) -> Path:
    corner = [[0, 0], [1, 0], [1, 1]]
    return _write_catalog(tmp_path / "pieces.json", {"a": corner, "b": corner})


def test_parser_defaults_follow_settings() -> None:
    args = generate_solutions.build_parser().parse_args([])
    assert (args.rows, args.cols) == (SETTINGS.BOARD_ROWS, SETTINGS.BOARD_COLS)
    assert args.catalog == SETTINGS.CATALOG_FILE
    assert args.max_solutions == SETTINGS.GENERATOR.max_solutions
    assert args.ordering == "constraint"
    assert not args.no_prune


def test_validate_reference_catalog() -> None:
    assert generate_solutions.main(["--validate"]) == generate_solutions.EXIT_SOLVED


def test_validate_reports_area_mismatch() -> None:
    assert generate_solutions.main(["--validate", "--rows", "6", "--cols", "10"]) == 2


def test_missing_catalog_is_a_configuration_error(tmp_path: Path) -> None:
    assert generate_solutions.main(["--catalog", str(tmp_path / "nope.json")]) == 2


def test_writes_first_solution(tmp_path: Path, tromino_catalog: Path) -> None:
    output = tmp_path / "out" / "solutions.json"
    code = generate_solutions.main(
        ["--catalog", str(tromino_catalog), "--rows", "2", "--cols", "3", "--output", str(output)]
    )
    assert code == 0
    data = json.loads(output.read_text(encoding="utf-8"))
    assert data["metadata"]["totalSolutions"] == 1
    assert data["metadata"]["maxSolutions"] == 1
    assert len(data["stepByStepGuides"][0]["steps"]) == 2


def test_zero_max_solutions_enumerates_all(tmp_path: Path, tromino_catalog: Path) -> None:
    output = tmp_path / "solutions.json"
    code = generate_solutions.main(
        [
            "--catalog", str(tromino_catalog),
            "--rows", "2",
            "--cols", "3",
            "--max-solutions", "0",
            "--no-prune",
            "--ordering", "catalog",
            "--output", str(output),
        ]
    )
    assert code == 0
    data = json.loads(output.read_text(encoding="utf-8"))
    assert data["metadata"]["totalSolutions"] == 4
    assert data["metadata"]["maxSolutions"] is None


def test_area_mismatch_exit_code(tmp_path: Path, tromino_catalog: Path) -> None:
    output = tmp_path / "solutions.json"
    code = generate_solutions.main(
        ["--catalog", str(tromino_catalog), "--rows", "2", "--cols", "4", "--output", str(output)]
    )
    assert code == 2
    assert not output.exists()


def test_unsolvable_board_exit_code(tmp_path: Path) -> None:
    catalog = _write_catalog(
        tmp_path / "pieces.json",
        {"bar": [[0, 0], [0, 1], [0, 2]], "dot": [[0, 0]]},
    )
    output = tmp_path / "solutions.json"
    code = generate_solutions.main(
        ["--catalog", str(catalog), "--rows", "2", "--cols", "2", "--output", str(output)]
    )
    assert code == generate_solutions.EXIT_NO_SOLUTION
    assert not output.exists()
