"""Puzzle geometry, placement and progress.

Pure functions shared by the store, the sync client and the HTTP layer.
Nothing in here touches the database or the network.
"""

import math
import random
import typing as t
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict

CELL = 100
OFFSET = 50
SCATTER_X = (50.0, 450.0)
SCATTER_Y = (50.0, 350.0)
DEFAULT_TOLERANCE = 20.0


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


GRID_SIZES: dict[Difficulty, tuple[int, int]] = {
    Difficulty.EASY: (3, 4),
    Difficulty.MEDIUM: (4, 6),
    Difficulty.HARD: (6, 8),
}


class PuzzleConfig(BaseModel):
    """Grid geometry of a room, fixed at creation."""

    model_config = ConfigDict(frozen=True)

    rows: int
    cols: int
    difficulty: Difficulty

    @property
    def total(self) -> int:
        return self.rows * self.cols


class Positioned(t.Protocol):
    current_x: float
    current_y: float
    target_x: float
    target_y: float


class HasPlacement(t.Protocol):
    is_placed: bool


@dataclass(frozen=True)
class PieceSeed:
    """A generated piece before it has an id or a room."""

    piece_index: int
    current_x: float
    current_y: float
    target_x: float
    target_y: float
    is_placed: bool = False
    rotation: float = 0.0


def generate_config(difficulty: t.Any) -> PuzzleConfig:
    """Map a difficulty to its grid.

    Unknown values fall back to easy instead of raising.

    >>> generate_config("medium")
    PuzzleConfig(rows=4, cols=6, difficulty=<Difficulty.MEDIUM: 'medium'>)
    """
    try:
        level = Difficulty(difficulty)
    except ValueError:
        level = Difficulty.EASY
    rows, cols = GRID_SIZES[level]
    return PuzzleConfig(rows=rows, cols=cols, difficulty=level)


def target_position(index: int, cols: int) -> tuple[float, float]:
    """Home coordinates of the piece at ``index`` in a grid with ``cols`` columns."""
    row, col = divmod(index, cols)
    return float(col * CELL + OFFSET), float(row * CELL + OFFSET)


def scatter_position(rng: random.Random | None = None) -> tuple[float, float]:
    """Random point inside the scatter rectangle."""
    rng = rng or random
    return rng.uniform(*SCATTER_X), rng.uniform(*SCATTER_Y)


def generate_pieces(
    config: PuzzleConfig, rng: random.Random | None = None
) -> list[PieceSeed]:
    """Create one seed per grid cell in row-major order.

    Parameters
    ----------
    config : PuzzleConfig
        Grid geometry of the room.
    rng : random.Random | None
        Source of scatter positions. Targets never depend on it.

    Returns
    -------
    list[PieceSeed]
        ``config.rows * config.cols`` seeds with indices ``0..n-1``.
    """
    seeds = []
    for index in range(config.total):
        target_x, target_y = target_position(index, config.cols)
        current_x, current_y = scatter_position(rng)
        seeds.append(
            PieceSeed(
                piece_index=index,
                current_x=current_x,
                current_y=current_y,
                target_x=target_x,
                target_y=target_y,
            )
        )
    return seeds


def distance_to_target(piece: Positioned) -> float:
    return math.hypot(piece.current_x - piece.target_x, piece.current_y - piece.target_y)


def is_placed(piece: Positioned, tolerance: float = DEFAULT_TOLERANCE) -> bool:
    """Whether a piece sits close enough to its home cell.

    A distance equal to ``tolerance`` counts as placed.
    """
    return distance_to_target(piece) <= tolerance


def progress(pieces: Sequence[HasPlacement]) -> float:
    """Percentage of placed pieces, 0.0 for an empty room."""
    if not pieces:
        return 0.0
    placed = sum(1 for piece in pieces if piece.is_placed)
    return 100.0 * placed / len(pieces)


def is_complete(pieces: Sequence[HasPlacement]) -> bool:
    return bool(pieces) and all(piece.is_placed for piece in pieces)
