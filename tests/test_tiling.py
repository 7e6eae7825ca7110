"""Tests for multi-scale sliding window planning."""

from __future__ import annotations

import pytest

from geoscan._typing import BoundingBox, Size, Step, WindowSizeStep
from geoscan.exceptions import ConfigurationError
from geoscan.tiling import (
    count_windows,
    default_window_step,
    plan_windows,
    resampled_window_size,
    round_half_away,
    window_grid,
)

SQUARE_MODEL = Size(512, 512)
WIDE_MODEL = Size(150, 100)  # aspect ratio 2/3


def _model_step(size: Size) -> Step:
    return Step(size.width // 4, size.height // 4)


class TestRounding:
    @pytest.mark.parametrize("value,expected", [(0.5, 1), (1.5, 2), (2.5, 3), (-0.5, -1), (2.4, 2)])
    def test_round_half_away(self, value, expected):
        assert round_half_away(value) == expected


class TestPlanWindows:
    """Test the four pairing branches of the planner."""

    def test_defaults_use_model_size_and_model_step(self):
        plan = plan_windows(SQUARE_MODEL, default_step=_model_step)
        assert plan == [WindowSizeStep(Size(512, 512), Step(128, 128))]

    def test_defaults_without_model_step_use_half_window(self):
        plan = plan_windows(SQUARE_MODEL)
        assert plan == [WindowSizeStep(Size(512, 512), Step(256, 256))]

    def test_equal_lengths_pair_positionally(self):
        plan = plan_windows(SQUARE_MODEL, window_sizes=[100, 200], window_steps=[50, 100])
        assert plan == [
            WindowSizeStep(Size(100, 100), Step(50, 50)),
            WindowSizeStep(Size(200, 200), Step(100, 100)),
        ]

    def test_multiple_sizes_share_primary_step(self):
        plan = plan_windows(SQUARE_MODEL, window_sizes=[100, 200, 300], window_steps=[40])
        assert [ws.size.width for ws in plan] == [100, 200, 300]
        assert {ws.step for ws in plan} == {Step(40, 40)}

    def test_multiple_sizes_without_steps_use_model_step_of_primary(self):
        plan = plan_windows(SQUARE_MODEL, window_sizes=[100, 200], default_step=_model_step)
        assert {ws.step for ws in plan} == {Step(25, 25)}

    def test_multiple_steps_share_primary_size(self):
        plan = plan_windows(SQUARE_MODEL, window_sizes=[256], window_steps=[64, 128])
        assert plan == [
            WindowSizeStep(Size(256, 256), Step(64, 64)),
            WindowSizeStep(Size(256, 256), Step(128, 128)),
        ]

    def test_aspect_ratio_applied_to_secondary_dimension(self):
        plan = plan_windows(WIDE_MODEL, window_sizes=[75], window_steps=[45])
        # 2/3 * 75 = 50, 2/3 * 45 = 30
        assert plan == [WindowSizeStep(Size(75, 50), Step(45, 30))]

    def test_secondary_dimension_rounds_half_away(self):
        # 0.5 * 5 = 2.5 rounds to 3
        plan = plan_windows(Size(200, 100), window_sizes=[5], window_steps=[5])
        assert plan[0].size == Size(5, 3)

    def test_resampled_size_is_primary_when_no_sizes(self):
        plan = plan_windows(SQUARE_MODEL, resampled_size=256)
        assert plan == [WindowSizeStep(Size(256, 256), Step(128, 128))]

    def test_resample_allows_windows_larger_than_model(self):
        plan = plan_windows(SQUARE_MODEL, window_sizes=[1024], resampled_size=512)
        assert plan[0].size == Size(1024, 1024)


class TestPlanValidation:
    """Test configuration errors carry the offending bound."""

    def test_mismatched_lengths(self):
        with pytest.raises(ConfigurationError, match="must match") as excinfo:
            plan_windows(SQUARE_MODEL, window_sizes=[100, 200], window_steps=[10, 20, 30])
        assert excinfo.value.context == {"sizes": 2, "steps": 3}

    def test_window_larger_than_model(self):
        with pytest.raises(ConfigurationError, match="width: 512"):
            plan_windows(SQUARE_MODEL, window_sizes=[600])

    def test_resample_larger_than_model(self):
        with pytest.raises(ConfigurationError, match="Resample size 600"):
            plan_windows(SQUARE_MODEL, resampled_size=600)

    @pytest.mark.parametrize("sizes,steps", [([0], []), ([100], [-5])])
    def test_non_positive_values(self, sizes, steps):
        with pytest.raises(ConfigurationError, match="must be positive"):
            plan_windows(SQUARE_MODEL, window_sizes=sizes, window_steps=steps)


class TestSizeHelpers:
    def test_resampled_window_size_defaults_to_model(self):
        assert resampled_window_size(WIDE_MODEL, None) == WIDE_MODEL

    def test_resampled_window_size_keeps_aspect(self):
        assert resampled_window_size(WIDE_MODEL, 75) == Size(75, 50)

    def test_default_window_step_never_zero(self):
        assert default_window_step(Size(1, 1)) == Step(1, 1)


class TestWindowGrid:
    """Test window enumeration over an AOI."""

    def test_exact_fit(self):
        windows = window_grid(BoundingBox(0, 0, 200, 100), WindowSizeStep(Size(100, 100), Step(100, 100)))
        assert windows == [(0, 0, 100, 100), (100, 0, 100, 100)]

    def test_last_window_flush_with_edge(self):
        windows = window_grid(BoundingBox(0, 0, 250, 100), WindowSizeStep(Size(100, 100), Step(100, 100)))
        assert [w[0] for w in windows] == [0, 100, 150]

    def test_offset_aoi(self):
        windows = window_grid(BoundingBox(10, 20, 110, 120), WindowSizeStep(Size(50, 50), Step(50, 50)))
        assert windows[0] == (10, 20, 50, 50)
        assert windows[-1] == (60, 70, 50, 50)

    def test_window_larger_than_aoi_clipped(self):
        windows = window_grid(BoundingBox(0, 0, 30, 20), WindowSizeStep(Size(100, 100), Step(50, 50)))
        assert windows == [(0, 0, 30, 20)]

    def test_windows_cover_aoi(self):
        aoi = BoundingBox(0, 0, 333, 211)
        windows = window_grid(aoi, WindowSizeStep(Size(64, 64), Step(48, 48)))
        assert max(x + w for x, _, w, _ in windows) == 333
        assert max(y + h for _, y, _, h in windows) == 211

    def test_count_windows_sums_scales(self):
        aoi = BoundingBox(0, 0, 200, 100)
        plan = [
            WindowSizeStep(Size(100, 100), Step(100, 100)),
            WindowSizeStep(Size(50, 50), Step(50, 50)),
        ]
        assert count_windows(aoi, plan) == 2 + 8

    def test_invalid_step(self):
        with pytest.raises(ConfigurationError):
            window_grid(BoundingBox(0, 0, 10, 10), WindowSizeStep(Size(5, 5), Step(0, 5)))
