"""
Board layout tests: pin field, bin geometry and reference lines.
"""

import sys
import os
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from board import (
    BoardLayout, build_pins, build_bin_centers,
    BOARD_WIDTH, NUM_ROWS, NUM_BINS, PIN_SPACING_X, PIN_SPACING_Y, START_Y,
    PRIZE_MULTIPLIERS, BIN_WIDTH,
)


@pytest.fixture
def layout():
    return BoardLayout()


class TestPins:

    def test_total_count(self, layout):
        assert len(layout.pins) == sum(3 + r for r in range(NUM_ROWS)) == 207
        assert layout.pin_positions.shape == (207, 2)

    @pytest.mark.parametrize("row", [0, 1, 9, NUM_ROWS - 1])
    def test_row_size_and_centering(self, row):
        pins = [p for p in build_pins() if p.row == row]
        assert len(pins) == 3 + row
        xs = [p.x for p in pins]
        assert np.mean(xs) == pytest.approx(BOARD_WIDTH / 2.0)
        np.testing.assert_allclose(np.diff(xs), PIN_SPACING_X)
        assert all(p.y == START_Y + row * PIN_SPACING_Y for p in pins)

    def test_row_major_order(self, layout):
        keys = [(p.row, p.col) for p in layout.pins]
        assert keys == sorted(keys)

    def test_first_row(self, layout):
        assert [(p.x, p.y) for p in layout.pins[:3]] == [(550.0, 320.0), (600.0, 320.0), (650.0, 320.0)]

    def test_custom_row_count(self):
        assert len(BoardLayout(row_count=4).pins) == 3 + 4 + 5 + 6


class TestBins:

    def test_centers(self, layout):
        assert len(layout.bin_centers) == NUM_BINS == 21
        assert layout.bin_centers[0] == 100.0
        assert layout.bin_centers[-1] == 1100.0
        np.testing.assert_allclose(np.diff(layout.bin_centers), BIN_WIDTH)

    def test_centered_on_board(self):
        for n in (1, 4, 21):
            assert np.mean(build_bin_centers(n)) == pytest.approx(BOARD_WIDTH / 2.0)

    def test_multipliers_symmetric(self):
        assert PRIZE_MULTIPLIERS == PRIZE_MULTIPLIERS[::-1]

    def test_multipliers_u_shaped(self):
        half = PRIZE_MULTIPLIERS[:11]
        assert all(a >= b for a, b in zip(half, half[1:]))
        assert PRIZE_MULTIPLIERS[0] == 1000.0
        assert PRIZE_MULTIPLIERS[10] == 0.2

    def test_bin_left(self, layout):
        assert layout.bins_left == 75.0
        assert layout.bin_left(0) == 75.0
        assert layout.bin_left(20) == 1075.0

    @pytest.mark.parametrize("index", [0, 7, 10, 20])
    def test_bin_index_at_center(self, layout, index):
        assert layout.bin_index_at(layout.bin_centers[index]) == index

    def test_bin_index_at_edges(self, layout):
        assert layout.bin_index_at(75.0) == 0
        assert layout.bin_index_at(124.99) == 0
        assert layout.bin_index_at(125.0) == 1
        assert layout.bin_index_at(74.9) is None
        assert layout.bin_index_at(1125.0) is None


class TestReferenceLines:

    def test_values(self, layout):
        assert layout.drop_top_y == 160.0
        assert layout.last_row_y == 1085.0
        assert layout.drop_span == 925.0
        assert layout.exit_y == 1180.0

    def test_exit_below_last_row(self, layout):
        assert layout.exit_y > layout.last_row_y + PIN_SPACING_Y


class TestPinsNear:

    def test_finds_adjacent_pin(self, layout):
        idx = layout.pins_near([560.0, 322.0], 26.0)
        assert idx.tolist() == [0]

    def test_open_space(self, layout):
        assert layout.pins_near([50.0, 200.0], 26.0).size == 0

    def test_row_major(self, layout):
        idx = layout.pins_near([600.0, 340.0], 60.0)
        assert idx.tolist() == sorted(idx.tolist())
        assert len(idx) > 1
