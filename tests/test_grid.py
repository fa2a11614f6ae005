# tests/test_grid.py
from collections import Counter

import numpy as np
import pytest

from mofang import (
    GRID_SIZE,
    PALETTE,
    Color,
    Direction,
    IndexOutOfRange,
    MofangGrid,
    handle_key,
)

R, Y, B, G, C = Color.RED, Color.YELLOW, Color.BLUE, Color.GREEN, Color.CYAN


def _mixed_grid() -> MofangGrid:
    # Latin square: every row and column holds each colour once
    return MofangGrid.from_rows([PALETTE[i:] + PALETTE[:i] for i in range(5)])


def test_initial_state():
    grid = MofangGrid()
    assert grid.size == GRID_SIZE == 5
    assert grid.cursor == (0, 0)
    for i in range(5):
        for j in range(5):
            assert grid.snapshot().color_at(i, j) == PALETTE[i]


def test_rotate_row_shifts_left():
    grid = _mixed_grid()
    assert grid.snapshot().rows()[0] == (R, Y, B, G, C)
    grid.rotate_row(0)
    assert grid.snapshot().rows()[0] == (Y, B, G, C, R)


def test_rotate_col_shifts_up():
    grid = _mixed_grid()
    col = tuple(row[0] for row in grid.snapshot().rows())
    assert col == (R, Y, B, G, C)
    grid.rotate_col(0)
    col = tuple(row[0] for row in grid.snapshot().rows())
    assert col == (Y, B, G, C, R)


def test_rotate_row_leaves_other_rows_alone():
    grid = _mixed_grid()
    before = grid.snapshot().rows()
    grid.rotate_row(2)
    after = grid.snapshot().rows()
    for i in (0, 1, 3, 4):
        assert after[i] == before[i]


@pytest.mark.parametrize("n", [1, 2, 3, 5, 8])
def test_n_rotations_restore_every_line(n):
    rng = np.random.default_rng(n)
    rows = [[Color(int(v)) for v in rng.integers(0, 5, size=n)] for _ in range(n)]
    grid = MofangGrid.from_rows(rows)
    original = grid.snapshot().rows()
    for idx in range(n):
        for _ in range(n):
            grid.rotate_row(idx)
        assert grid.snapshot().rows() == original
        for _ in range(n):
            grid.rotate_col(idx)
        assert grid.snapshot().rows() == original


def test_rotations_preserve_line_multiset():
    grid = MofangGrid.from_rows([[R, R, Y, B, C]] * 5)
    for k in range(4):
        before = Counter(grid.snapshot().rows()[1])
        grid.rotate_row(1)
        assert Counter(grid.snapshot().rows()[1]) == before
        col_before = Counter(r[k] for r in grid.snapshot().rows())
        grid.rotate_col(k)
        assert Counter(r[k] for r in grid.snapshot().rows()) == col_before


@pytest.mark.parametrize("idx", [-1, 5, 99])
def test_rotation_index_out_of_range(idx):
    grid = MofangGrid()
    with pytest.raises(IndexOutOfRange):
        grid.rotate_row(idx)
    with pytest.raises(IndexOutOfRange):
        grid.rotate_col(idx)
    assert isinstance(IndexOutOfRange("x"), IndexError)


def test_move_cursor_clamps_at_every_edge():
    grid = MofangGrid()
    assert grid.move_cursor(Direction.UP) == (0, 0)
    assert grid.move_cursor(Direction.LEFT) == (0, 0)
    grid.cursor_row, grid.cursor_col = 4, 4
    assert grid.move_cursor(Direction.DOWN) == (4, 4)
    assert grid.move_cursor(Direction.RIGHT) == (4, 4)


def test_move_cursor_never_leaves_board():
    grid = MofangGrid()
    moves = list(Direction)
    rng = np.random.default_rng(42)
    for step in rng.integers(0, 4, size=500):
        row, col = grid.move_cursor(moves[int(step)])
        assert 0 <= row < 5 and 0 <= col < 5


def test_move_cursor_does_not_touch_colors():
    grid = _mixed_grid()
    before = grid.snapshot().rows()
    for d in Direction:
        grid.move_cursor(d)
    assert grid.snapshot().rows() == before


def test_snapshot_is_read_only_copy():
    grid = MofangGrid()
    snap = grid.snapshot()
    with pytest.raises(ValueError):
        snap.colors[0, 0] = int(Color.CYAN)
    grid.rotate_col(0)
    grid.move_cursor(Direction.RIGHT)
    assert snap.color_at(0, 0) == R
    assert snap.cursor == (0, 0)


def test_from_rows_rejects_non_square():
    with pytest.raises(ValueError):
        MofangGrid.from_rows([[R, Y], [B]])
    with pytest.raises(ValueError):
        MofangGrid.from_rows([])
    with pytest.raises(ValueError):
        MofangGrid(0)


def test_handle_key_bindings():
    grid = _mixed_grid()
    assert handle_key(grid, "right") is True
    assert grid.cursor == (0, 1)
    assert handle_key(grid, "down") is True
    assert grid.cursor == (1, 1)
    assert handle_key(grid, "a") is True
    assert grid.snapshot().rows()[1] == (B, G, C, R, Y)
    assert handle_key(grid, "s") is True
    col = tuple(row[1] for row in grid.snapshot().rows())
    assert col == (G, G, C, R, Y)
    assert handle_key(grid, "x") is True
    assert handle_key(grid, "q") is False


def test_handle_key_custom_exit_key():
    grid = MofangGrid()
    assert handle_key(grid, "q", exit_key="esc") is True
    assert handle_key(grid, "esc", exit_key="esc") is False
