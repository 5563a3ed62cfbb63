"""
Plinko Board Layout
Static pin field and prize-bin geometry.

Screen units (pixels) on a 1200 x 1200 board, y grows downward.
Everything here is a pure function of the constants below.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

# ──────────────────────────────────────────────
# Board geometry
# ──────────────────────────────────────────────
BOARD_WIDTH: float = 1200.0
BOARD_HEIGHT: float = 1200.0

NUM_ROWS: int = 18
PIN_RADIUS: float = 5.0
PIN_SPACING_X: float = 50.0
PIN_SPACING_Y: float = 45.0
START_Y: float = BOARD_HEIGHT / 4.0 + 20.0   # y of the first pin row

DROP_TOP_Y: float = 160.0                    # spawn line, guidance progress = 0
EXIT_MARGIN: float = 50.0                    # exit line sits this far below the row after the last

# ──────────────────────────────────────────────
# Prize bins
# ──────────────────────────────────────────────
PRIZE_MULTIPLIERS: tuple = (
    1000.0, 130.0, 26.0, 9.0, 4.0, 2.0, 0.5, 0.2, 0.2, 0.2,
    0.2,
    0.2, 0.2, 0.2, 0.5, 2.0, 4.0, 9.0, 26.0, 130.0, 1000.0,
)
NUM_BINS: int = len(PRIZE_MULTIPLIERS)
BIN_WIDTH: float = PIN_SPACING_X


@dataclass(frozen=True)
class Pin:
    """A fixed pin. Row-major index order is the collision test order."""
    x: float
    y: float
    row: int
    col: int


def build_pins(row_count: int = NUM_ROWS) -> List[Pin]:
    """Row r holds 3 + r pins, horizontally centered on the board."""
    pins = []
    for row in range(row_count):
        pins_in_row = 3 + row
        y = START_Y + row * PIN_SPACING_Y
        start_x = BOARD_WIDTH / 2.0 - (pins_in_row - 1) * PIN_SPACING_X / 2.0
        for col in range(pins_in_row):
            pins.append(Pin(start_x + col * PIN_SPACING_X, y, row, col))
    return pins


def build_bin_centers(bin_count: int = NUM_BINS) -> List[float]:
    """x-centers of bin_count equal slots, the whole block centered on the board."""
    block_start = BOARD_WIDTH / 2.0 - bin_count * BIN_WIDTH / 2.0
    return [block_start + i * BIN_WIDTH + BIN_WIDTH / 2.0 for i in range(bin_count)]


@dataclass
class BoardLayout:
    """Pins, bin centers and the horizontal reference lines used by the physics."""
    row_count: int = NUM_ROWS
    multipliers: tuple = PRIZE_MULTIPLIERS
    pins: List[Pin] = field(init=False)
    pin_positions: np.ndarray = field(init=False)
    bin_centers: List[float] = field(init=False)

    def __post_init__(self):
        self.multipliers = tuple(float(m) for m in self.multipliers)
        self.pins = build_pins(self.row_count)
        self.pin_positions = np.array([[p.x, p.y] for p in self.pins], dtype=float)
        self.bin_centers = build_bin_centers(len(self.multipliers))

    @property
    def bin_count(self) -> int:
        return len(self.multipliers)

    @property
    def drop_top_y(self) -> float:
        return DROP_TOP_Y

    @property
    def last_row_y(self) -> float:
        return START_Y + (self.row_count - 1) * PIN_SPACING_Y

    @property
    def drop_span(self) -> float:
        return self.last_row_y - DROP_TOP_Y

    @property
    def exit_y(self) -> float:
        return START_Y + self.row_count * PIN_SPACING_Y + EXIT_MARGIN

    @property
    def bins_left(self) -> float:
        return BOARD_WIDTH / 2.0 - self.bin_count * BIN_WIDTH / 2.0

    def multiplier(self, index: int) -> float:
        return self.multipliers[index]

    def bin_left(self, index: int) -> float:
        return self.bins_left + index * BIN_WIDTH

    def bin_index_at(self, x: float) -> Optional[int]:
        """Slot directly under x, or None outside the bin block."""
        offset = x - self.bins_left
        if offset < 0.0 or offset >= self.bin_count * BIN_WIDTH:
            return None
        return int(offset // BIN_WIDTH)

    def pins_near(self, position: np.ndarray, radius: float) -> np.ndarray:
        """Row-major indices of pins whose centers lie within radius of position."""
        diff = self.pin_positions - np.asarray(position, dtype=float)
        dist_sq = np.einsum("ij,ij->i", diff, diff)
        return np.nonzero(dist_sq < radius * radius)[0]
