from dataclasses import dataclass
from pathlib import Path
from typing import Optional

BASE_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class SearchConfig:
    """Configuration values that control solver behaviour for a run.

    Attributes:
        max_solutions: Number of solutions to collect before stopping.
            ``None`` enumerates the whole search space.
        time_limit_sec: Wall clock budget for the search, ``None`` for no
            limit.
        piece_ordering: ``"constraint"`` or ``"catalog"``.
    """
    name: str
    max_solutions: Optional[int]
    time_limit_sec: Optional[float]
    piece_ordering: str
    prune_dead_regions: bool

    def solver_options(self) -> dict:
        return {
            "max_solutions": self.max_solutions,
            "time_limit_sec": self.time_limit_sec,
            "piece_ordering": self.piece_ordering,
            "prune_dead_regions": self.prune_dead_regions,
        }


class Settings:
    BOARD_ROWS = 5
    BOARD_COLS = 11

    CATALOG_FILE = BASE_DIR / "data" / "pieces.json"
    SOLUTION_FILE = BASE_DIR / "data" / "solution.json"

    # The generator reports progress at INFO on this interval; the solver's
    # own progress callback fires far more often.
    PROGRESS_LOG_INTERVAL_SEC = 10.0

    # Background runs started from the game service are cut off after this.
    MAX_RUN_TIME_SEC = 300.0

    # Finished runs and idle games are dropped from memory after these.
    RUN_RETENTION_SEC = 3600.0
    GAME_IDLE_TIMEOUT_SEC = 3600.0

    GENERATOR = SearchConfig(
        "Generator",
        max_solutions=1,
        time_limit_sec=None,
        piece_ordering="constraint",
        prune_dead_regions=True,
    )
    BACKGROUND = SearchConfig(
        "Background",
        max_solutions=1,
        time_limit_sec=MAX_RUN_TIME_SEC,
        piece_ordering="constraint",
        prune_dead_regions=True,
    )

    OUTPUT_DIR = Path("outputs")
    LOG_DIR = Path("static")


SETTINGS = Settings()
