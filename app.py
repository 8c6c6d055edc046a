from __future__ import annotations

import json
import queue
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from flask import (
    Flask,
    Response,
    abort,
    jsonify,
    request,
    send_from_directory,
    stream_with_context,
)
from werkzeug.exceptions import HTTPException

from config import SETTINGS
from polyomino.backtracking_solver import BacktrackingSolver, SolverOptions
from polyomino.board import Board
from polyomino.catalog import PieceCatalog, load_catalog, optional_solution, solution_grid
from polyomino.exceptions import PackingError
from polyomino.logger import get_logger
from polyomino.models import Orientation, Solution, SolveResult
from polyomino.projector import SolutionProjector
from polyomino.validator import PlacementValidator

LOGGER = get_logger("polyomino.app")

app = Flask(__name__)
app.secret_key = "polyomino-secret"

CATALOG = load_catalog(SETTINGS.CATALOG_FILE)
STORED_SOLUTION = optional_solution(SETTINGS.SOLUTION_FILE)


class RunLogWriter:
    def __init__(
        self,
        path: Path,
        catalog: Optional[PieceCatalog] = None,
        rows: Optional[int] = None,
        cols: Optional[int] = None,
    ):
        self.path = path
        self._lock = threading.Lock()
        self._summary_written = False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        header = self._build_header(catalog, rows, cols)
        with self._lock:
            with self.path.open("w", encoding="utf-8") as fh:
                for line in header:
                    fh.write(f"{line}\n")

    def _build_header(
        self,
        catalog: Optional[PieceCatalog],
        rows: Optional[int],
        cols: Optional[int],
    ) -> List[str]:
        timestamp = datetime.now().astimezone().isoformat(timespec="seconds")
        header: List[str] = [
            "POLYOMINO SOLVER RUN LOG",
            f"Generated at: {timestamp}",
        ]
        if rows is not None and cols is not None:
            header.append(f"Board: {rows} x {cols} ({rows * cols} cells)")
        header.extend(self._selection_lines(catalog))
        header.extend(["", "Events:"])
        return header

    def _selection_lines(self, catalog: Optional[PieceCatalog]) -> List[str]:
        if not catalog:
            return ["Pieces: none selected"]

        lines: List[str] = ["Pieces:"]
        for piece in catalog.values():
            lines.append(f"  - {piece.id}: {piece.name}, {piece.size} cells")
        lines.append(f"  Total pieces: {len(catalog)}")
        lines.append(f"  Total area: {catalog.total_area} cells")
        return lines

    def handle_event(self, event: Dict[str, object]) -> None:
        event_type = event.get("type")
        lines: List[str] = []
        if event_type == "run_started":
            limit = event.get("time_limit_sec")
            limit_text = f"{limit:.2f}s" if isinstance(limit, (int, float)) else "no limit"
            max_solutions = event.get("max_solutions")
            lines.append(
                "Run started (ordering: {ordering}, time limit: {limit}, max solutions: {count}).".format(
                    ordering=event.get("piece_ordering", "unknown"),
                    limit=limit_text,
                    count=max_solutions if max_solutions is not None else "all",
                )
            )
        elif event_type == "progress":
            elapsed = event.get("elapsed")
            elapsed_text = f"{elapsed:.2f}s" if isinstance(elapsed, (int, float)) else "unknown"
            lines.append(
                "Progress at {elapsed}: attempts={attempts}, backtracks={backtracks}, solutions={solutions}.".format(
                    elapsed=elapsed_text,
                    attempts=event.get("attempts"),
                    backtracks=event.get("backtracks"),
                    solutions=event.get("solutions_found"),
                )
            )
        elif event_type == "run_completed":
            elapsed = event.get("elapsed")
            elapsed_text = f"{elapsed:.2f}s" if isinstance(elapsed, (int, float)) else "unknown"
            success = "yes" if event.get("success") else "no"
            lines.append(
                f"Run completed in {elapsed_text} (status: {event.get('status')}, success: {success})."
            )
        elif event_type == "error":
            message = event.get("message")
            if message:
                lines.append(f"Error: {message}")

        if lines:
            self._append_lines(lines)

    def log_error(self, message: str) -> None:
        self._append_lines([f"Error: {message}"])

    def append_summary(
        self,
        result: Optional[SolveResult],
        error: Optional[str] = None,
        catalog: Optional[PieceCatalog] = None,
    ) -> None:
        if self._summary_written:
            return
        lines: List[str] = ["", "Summary:"]
        if result is not None:
            stats = result.stats
            lines.append(f"  Status: {result.status.value}")
            lines.append(f"  Elapsed: {stats.elapsed:.2f}s")
            lines.append(f"  Total attempts: {stats.attempts:,}")
            lines.append(f"  Total backtracks performed: {stats.backtracks:,}")
            lines.append(f"  Branches pruned: {stats.pruned:,}")
            for index, solution in enumerate(result.solutions, start=1):
                lines.append(f"  Solution {index}:")
                for placement in solution:
                    lines.append(
                        "    - {piece} at ({row}, {col}) rotation={rotation} flip={flip}".format(
                            piece=placement.piece_id,
                            row=placement.row,
                            col=placement.col,
                            rotation=placement.rotation,
                            flip="yes" if placement.flipped else "no",
                        )
                    )
                if catalog is not None:
                    grid = solution_grid(solution, catalog, result.board_rows, result.board_cols)
                    lines.append("    Layout:")
                    for row in _layout_rows(grid):
                        lines.append(f"      {row}")
            lines.append("")
        if error:
            lines.append(f"Run ended with error: {error}")
        elif result and result.solved:
            lines.append("Run ended with a successful solution.")
        else:
            lines.append("Run completed without a solution.")
        self._append_lines(lines)
        self._summary_written = True

    def _append_lines(self, lines: List[str]) -> None:
        if not lines:
            return
        with self._lock:
            with self.path.open("a", encoding="utf-8") as fh:
                for line in lines:
                    fh.write(f"{line}\n")


def _layout_rows(grid: List[List[Optional[str]]]) -> List[str]:
    width = max((len(cell) for row in grid for cell in row if cell), default=1)
    return [
        " ".join((cell or ".").ljust(width) for cell in row).rstrip()
        for row in grid
    ]


@dataclass
class RunState:
    queue: "queue.Queue[Dict[str, object]]"
    catalog: PieceCatalog
    rows: int
    cols: int
    options: SolverOptions
    result: Optional[SolveResult] = None
    error: Optional[str] = None
    done: bool = False
    thread: Optional[threading.Thread] = None
    created_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)
    log_path: Optional[Path] = None
    log_writer: Optional[RunLogWriter] = None


class RunManager:
    def __init__(self) -> None:
        self._runs: Dict[str, RunState] = {}
        self._lock = threading.Lock()

    def start_run(
        self,
        catalog: PieceCatalog,
        rows: int,
        cols: int,
        options: SolverOptions,
    ) -> str:
        run_id = uuid.uuid4().hex
        log_path = SETTINGS.LOG_DIR / f"run_log_{run_id[:8]}.txt"
        log_writer = RunLogWriter(log_path, catalog, rows, cols)
        state = RunState(
            queue.Queue(),
            catalog=catalog,
            rows=rows,
            cols=cols,
            options=options,
            log_path=log_path,
            log_writer=log_writer,
        )
        with self._lock:
            self._evict_finished()
            self._runs[run_id] = state
        thread = threading.Thread(
            target=self._worker,
            args=(run_id,),
            daemon=True,
        )
        state.thread = thread
        thread.start()
        return run_id

    def get_state(self, run_id: str) -> Optional[RunState]:
        with self._lock:
            return self._runs.get(run_id)

    def _evict_finished(self) -> None:
        cutoff = time.time() - SETTINGS.RUN_RETENTION_SEC
        expired = [
            run_id
            for run_id, state in self._runs.items()
            if state.done and state.finished_at is not None and state.finished_at < cutoff
        ]
        for run_id in expired:
            del self._runs[run_id]

    def cancel(self, run_id: str) -> bool:
        state = self.get_state(run_id)
        if state is None:
            return False
        state.cancel_event.set()
        return True

    def _worker(self, run_id: str) -> None:
        state = self.get_state(run_id)
        if state is None:
            return

        log_writer = state.log_writer

        def publish(event: Dict[str, object]) -> None:
            event.setdefault("run_id", run_id)
            state.queue.put(event)
            if log_writer:
                log_writer.handle_event(event)

        def progress(solver: BacktrackingSolver) -> None:
            publish({"type": "progress", **solver.stats.to_dict()})

        try:
            publish(
                {
                    "type": "run_started",
                    "rows": state.rows,
                    "cols": state.cols,
                    "pieces": list(state.catalog),
                    "max_solutions": state.options.max_solutions,
                    "time_limit_sec": state.options.time_limit_sec,
                    "piece_ordering": state.options.piece_ordering,
                }
            )
            solver = BacktrackingSolver(
                state.catalog,
                state.rows,
                state.cols,
                options=state.options,
                progress_callback=progress,
                should_stop=state.cancel_event.is_set,
            )
            state.result = solver.solve()
            publish(
                {
                    "type": "run_completed",
                    "status": state.result.status.value,
                    "success": state.result.solved,
                    "solutions": len(state.result.solutions),
                    "elapsed": state.result.stats.elapsed,
                }
            )
        except (PackingError, ValueError) as exc:
            state.error = str(exc)
            LOGGER.warning("Run %s failed: %s", run_id, state.error)
            if log_writer:
                log_writer.log_error(state.error)
            state.queue.put({"type": "error", "message": state.error, "run_id": run_id})
        finally:
            if log_writer:
                log_writer.append_summary(state.result, state.error, state.catalog)
            state.finished_at = time.time()
            state.done = True
            state.queue.put(
                {
                    "type": "finished",
                    "success": state.result is not None and state.result.solved,
                    "error": state.error,
                    "run_id": run_id,
                }
            )


class GameSession:
    """One player's board together with its hint cursor.

    ``orientations`` holds the orientation the rotate/flip controls currently
    propose for each piece. It is only interaction state: placing a piece
    always passes an absolute orientation to the validator.
    """

    def __init__(
        self,
        catalog: PieceCatalog,
        rows: int,
        cols: int,
        solution: Optional[Solution] = None,
    ) -> None:
        self.id = uuid.uuid4().hex
        self.catalog = catalog
        self.board = Board(rows, cols, catalog.ids())
        self.validator = PlacementValidator(catalog, self.board)
        self.projector = (
            SolutionProjector(solution, catalog, rows) if solution is not None else None
        )
        self.orientations: Dict[str, Orientation] = {piece_id: Orientation() for piece_id in catalog}
        self.lock = threading.Lock()
        self.last_access = time.time()

    def rotate(self, piece_id: str) -> Orientation:
        self.orientations[piece_id] = self.orientations[piece_id].rotated()
        return self.orientations[piece_id]

    def flip(self, piece_id: str) -> Orientation:
        self.orientations[piece_id] = self.orientations[piece_id].toggled()
        return self.orientations[piece_id]

    def reset(self) -> None:
        self.board.reset()
        if self.projector is not None:
            self.projector.reset()
        self.orientations = {piece_id: Orientation() for piece_id in self.catalog}

    def to_dict(self) -> Dict[str, object]:
        hint_state = None
        if self.projector is not None:
            hint_state = {
                "currentStep": self.projector.current_step,
                "totalSteps": self.projector.step_count,
            }
        return {
            "id": self.id,
            "rows": self.board.rows,
            "cols": self.board.cols,
            "grid": self.board.snapshot(),
            "placements": [placement.to_dict() for placement in self.board.placements()],
            "available": self.board.available_pieces(),
            "orientations": {
                piece_id: {"rotation": orientation.rotation, "flip": orientation.flipped}
                for piece_id, orientation in self.orientations.items()
            },
            "stats": self.board.stats(),
            "hints": hint_state,
        }


class GameManager:
    def __init__(self) -> None:
        self._games: Dict[str, GameSession] = {}
        self._lock = threading.Lock()

    def create(
        self,
        catalog: PieceCatalog,
        rows: int,
        cols: int,
        solution: Optional[Solution] = None,
    ) -> GameSession:
        session = GameSession(catalog, rows, cols, solution)
        with self._lock:
            self._evict_idle()
            self._games[session.id] = session
        return session

    def get(self, game_id: str) -> Optional[GameSession]:
        with self._lock:
            session = self._games.get(game_id)
            if session is not None:
                session.last_access = time.time()
            return session

    def _evict_idle(self) -> None:
        cutoff = time.time() - SETTINGS.GAME_IDLE_TIMEOUT_SEC
        for game_id in [key for key, session in self._games.items() if session.last_access < cutoff]:
            LOGGER.info("Game %s evicted after inactivity", game_id)
            del self._games[game_id]


run_manager = RunManager()
game_manager = GameManager()


@app.errorhandler(HTTPException)
def handle_http_error(exc: HTTPException):
    return jsonify({"error": exc.description, "status": exc.code}), exc.code


@app.route("/pieces")
def list_pieces():
    payload = CATALOG.to_dict()
    payload["totalArea"] = CATALOG.total_area
    payload["board"] = {"rows": SETTINGS.BOARD_ROWS, "cols": SETTINGS.BOARD_COLS}
    return jsonify(payload)


@app.route("/games", methods=["POST"])
def create_game():
    data = _json_body()
    rows = _int_field(data, "rows", SETTINGS.BOARD_ROWS)
    cols = _int_field(data, "cols", SETTINGS.BOARD_COLS)
    if rows <= 0 or cols <= 0:
        abort(400, description="Board dimensions must be positive")
    catalog = _catalog_selection(data.get("pieces"))
    uses_reference = (
        rows == SETTINGS.BOARD_ROWS
        and cols == SETTINGS.BOARD_COLS
        and len(catalog) == len(CATALOG)
    )
    session = game_manager.create(
        catalog,
        rows,
        cols,
        STORED_SOLUTION if uses_reference else None,
    )
    LOGGER.info("Game %s created (%dx%d, %d pieces)", session.id, rows, cols, len(catalog))
    return jsonify(session.to_dict()), 201


@app.route("/games/<game_id>")
def get_game(game_id: str):
    session = _session_or_404(game_id)
    with session.lock:
        return jsonify(session.to_dict())


@app.route("/games/<game_id>/pieces/<piece_id>/rotate", methods=["POST"])
def rotate_piece(game_id: str, piece_id: str):
    session = _session_or_404(game_id)
    _piece_or_404(session, piece_id)
    with session.lock:
        orientation = session.rotate(piece_id)
    return jsonify({"pieceId": piece_id, "rotation": orientation.rotation, "flip": orientation.flipped})


@app.route("/games/<game_id>/pieces/<piece_id>/flip", methods=["POST"])
def flip_piece(game_id: str, piece_id: str):
    session = _session_or_404(game_id)
    _piece_or_404(session, piece_id)
    with session.lock:
        orientation = session.flip(piece_id)
    return jsonify({"pieceId": piece_id, "rotation": orientation.rotation, "flip": orientation.flipped})


@app.route("/games/<game_id>/place", methods=["POST"])
def place_piece(game_id: str):
    session = _session_or_404(game_id)
    data = _json_body()
    piece_id = _piece_or_404(session, data.get("pieceId"))
    row = _int_field(data, "row")
    col = _int_field(data, "col")
    with session.lock:
        rotation, flipped = _orientation_fields(session, piece_id, data)
        grip = data.get("grip")
        if grip is not None:
            grip_cell = _cell_field(grip, "grip")
            row, col = session.validator.resolve_anchor(
                piece_id, row, col, rotation, flipped, grip_cell
            )
        if not session.validator.place(piece_id, row, col, rotation, flipped):
            abort(409, description="invalid placement")
        return jsonify(session.to_dict())


@app.route("/games/<game_id>/remove", methods=["POST"])
def remove_piece(game_id: str):
    session = _session_or_404(game_id)
    data = _json_body()
    piece_id = _piece_or_404(session, data.get("pieceId"))
    with session.lock:
        if not session.board.remove(piece_id):
            abort(409, description=f"{piece_id} is not on the board")
        return jsonify(session.to_dict())


@app.route("/games/<game_id>/reset", methods=["POST"])
def reset_game(game_id: str):
    session = _session_or_404(game_id)
    with session.lock:
        session.reset()
        return jsonify(session.to_dict())


@app.route("/games/<game_id>/preview")
def preview_placement(game_id: str):
    session = _session_or_404(game_id)
    args = request.args
    piece_id = _piece_or_404(session, args.get("pieceId"))
    row = _int_field(args, "row")
    col = _int_field(args, "col")
    with session.lock:
        rotation, flipped = _orientation_fields(session, piece_id, args)
        preview = session.validator.preview(piece_id, row, col, rotation, flipped)
    return jsonify(preview.to_dict())


@app.route("/games/<game_id>/hint")
def next_hint(game_id: str):
    session = _session_or_404(game_id)
    with session.lock:
        projector = _projector_or_404(session)
        if session.board.is_complete() or projector.is_finished:
            abort(409, description="puzzle already solved")
        hint = projector.next_hint()
        placement = hint.placement
        payload = hint.to_dict()
        payload["preview"] = session.validator.preview(
            placement.piece_id,
            placement.row,
            placement.col,
            placement.rotation,
            placement.flipped,
        ).to_dict()
    return jsonify(payload)


@app.route("/games/<game_id>/hint/apply", methods=["POST"])
def apply_hint(game_id: str):
    session = _session_or_404(game_id)
    with session.lock:
        projector = _projector_or_404(session)
        if session.board.is_complete() or projector.is_finished:
            abort(409, description="puzzle already solved")
        if not projector.apply_hint(session.board):
            abort(409, description="invalid hint application")
        return jsonify(session.to_dict())


@app.route("/games/<game_id>/hint/reset", methods=["POST"])
def reset_hints(game_id: str):
    session = _session_or_404(game_id)
    with session.lock:
        _projector_or_404(session).reset()
        return jsonify(session.to_dict())


@app.route("/games/<game_id>/solve", methods=["POST"])
def apply_solution(game_id: str):
    session = _session_or_404(game_id)
    with session.lock:
        projector = _projector_or_404(session)
        session.board.reset()
        projector.reset()
        report = projector.apply_all(session.board)
        if not report.success:
            session.board.reset()
            abort(409, description="invalid hint application: " + "; ".join(report.messages))
        projector.current_step = projector.step_count
        return jsonify(session.to_dict())


@app.route("/games/<game_id>/export")
def export_game(game_id: str):
    session = _session_or_404(game_id)
    with session.lock:
        return jsonify(
            {
                "solution": [placement.to_dict() for placement in session.board.placements()],
                "isComplete": session.board.is_complete(),
                "exportedAt": datetime.now().astimezone().isoformat(timespec="seconds"),
            }
        )


@app.route("/runs", methods=["POST"])
def start_run():
    data = _json_body()
    defaults = SETTINGS.BACKGROUND
    rows = _int_field(data, "rows", SETTINGS.BOARD_ROWS)
    cols = _int_field(data, "cols", SETTINGS.BOARD_COLS)
    catalog = _catalog_selection(data.get("pieces"))
    if rows <= 0 or cols <= 0:
        abort(400, description="Board dimensions must be positive")
    try:
        options = SolverOptions(
            max_solutions=data.get("maxSolutions", defaults.max_solutions),
            time_limit_sec=data.get("timeLimit", defaults.time_limit_sec),
            piece_ordering=data.get("ordering", defaults.piece_ordering),
            prune_dead_regions=bool(data.get("prune", defaults.prune_dead_regions)),
        )
    except (TypeError, ValueError) as exc:
        abort(400, description=str(exc))
    run_id = run_manager.start_run(catalog, rows, cols, options)
    return jsonify({"run_id": run_id}), 202


@app.route("/runs/<run_id>/cancel", methods=["POST"])
def cancel_run(run_id: str):
    if not run_manager.cancel(run_id):
        abort(404)
    return jsonify({"run_id": run_id, "cancelled": True}), 202


@app.route("/runs/<run_id>/stream")
def stream_run(run_id: str):
    state = run_manager.get_state(run_id)
    if state is None:
        abort(404)

    def event_stream():
        while True:
            if state.done and state.queue.empty():
                break
            try:
                event = state.queue.get(timeout=1)
            except queue.Empty:
                continue
            yield f"data: {json.dumps(event)}\n\n"
        yield "event: end\ndata: {}\n\n"

    return Response(stream_with_context(event_stream()), mimetype="text/event-stream")


@app.route("/runs/<run_id>/result")
def run_result(run_id: str):
    state = run_manager.get_state(run_id)
    if state is None:
        abort(404)
    if not state.done:
        return "", 202
    outputs: Dict[str, str] = {}
    if state.log_path:
        outputs["run_log"] = state.log_path.name
    if state.error or state.result is None:
        error = state.error or "run ended without a result"
        return jsonify({"success": False, "error": error, "outputs": outputs})
    result = state.result
    solutions = [
        {
            "pieces": solution.to_list(),
            "grid": solution_grid(solution, state.catalog, result.board_rows, result.board_cols),
        }
        for solution in result.solutions
    ]
    return jsonify(
        {
            "success": result.solved,
            "status": result.status.value,
            "error": None if result.solved else "no solution found",
            "solutions": solutions,
            "stats": result.stats.to_dict(),
            "outputs": outputs,
        }
    )


@app.route("/logs/<path:filename>")
def serve_log(filename: str):
    return send_from_directory(SETTINGS.LOG_DIR.resolve(), filename, as_attachment=True)


def _json_body() -> Dict[str, object]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(400, description="Request body must be a JSON object")
    return data


def _int_field(data: Mapping[str, object], key: str, default: Optional[int] = None) -> int:
    value = data.get(key)
    if value is None:
        if default is None:
            abort(400, description=f"Missing field: {key}")
        return default
    if isinstance(value, bool):
        abort(400, description=f"Field {key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        abort(400, description=f"Field {key} must be an integer")


def _cell_field(value: object, key: str):
    if (
        not isinstance(value, (list, tuple))
        or len(value) != 2
        or not all(isinstance(item, int) and not isinstance(item, bool) for item in value)
    ):
        abort(400, description=f"Field {key} must be a [row, col] pair")
    return int(value[0]), int(value[1])


def _flag(value: object) -> bool:
    if isinstance(value, str):
        return value.lower() in ("1", "true", "yes")
    return bool(value)


def _orientation_fields(session: GameSession, piece_id: str, data: Mapping[str, object]):
    proposed = session.orientations[piece_id]
    rotation = proposed.rotation
    flipped = proposed.flipped
    if data.get("rotation") is not None:
        rotation = _int_field(data, "rotation") % 4
    if data.get("flip") is not None:
        flipped = _flag(data.get("flip"))
    return rotation, flipped


def _catalog_selection(piece_ids: object) -> PieceCatalog:
    if piece_ids is None:
        return CATALOG
    if not isinstance(piece_ids, list) or not all(isinstance(item, str) for item in piece_ids):
        abort(400, description="Field pieces must be a list of piece ids")
    try:
        return CATALOG.subset(piece_ids)
    except PackingError as exc:
        abort(400, description=str(exc))


def _session_or_404(game_id: str) -> GameSession:
    session = game_manager.get(game_id)
    if session is None:
        abort(404, description=f"Unknown game: {game_id}")
    return session


def _piece_or_404(session: GameSession, piece_id: object) -> str:
    if not isinstance(piece_id, str) or piece_id not in session.catalog:
        abort(404, description=f"Unknown piece: {piece_id}")
    return piece_id


def _projector_or_404(session: GameSession) -> SolutionProjector:
    if session.projector is None:
        abort(404, description="no solution found")
    return session.projector


if __name__ == "__main__":
    app.run(debug=True)
