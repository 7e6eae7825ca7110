"""Multi-scale sliding window planning.

This module derives the (window size, window step) pairs the sliding
window stage scans the image with. Every window shares the model's
height/width aspect ratio: callers only ever supply the primary (width)
dimension and the secondary one is derived by rounding.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence

from geoscan._typing import BoundingBox, Size, Step, WindowSizeStep
from geoscan.exceptions import ConfigurationError

# (col_off, row_off, width, height)
TileWindow = tuple[int, int, int, int]

DefaultStepFn = Callable[[Size], Step]


# ---------------------------------------------------------------------------
# Size helpers
# ---------------------------------------------------------------------------


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def aspect_ratio(model_size: Size) -> float:
    """Height over width of the model's native input."""
    return model_size.height / model_size.width


def scaled_size(width: int, ratio: float) -> Size:
    """Window size with the secondary dimension derived from ``ratio``."""
    return Size(width, round_half_away(ratio * width))


def scaled_step(x: int, ratio: float) -> Step:
    """Window step with the secondary dimension derived from ``ratio``."""
    return Step(x, round_half_away(ratio * x))


def resampled_window_size(model_size: Size, resampled_size: int | None) -> Size:
    """Size every window is resampled to before inference.

    Without a resample size windows are fed at the model's native size.
    """
    if resampled_size is None:
        return model_size
    return scaled_size(resampled_size, aspect_ratio(model_size))


def default_window_step(size: Size) -> Step:
    """Half-window stride, used when the model does not provide one."""
    return Step(max(1, size.width // 2), max(1, size.height // 2))


def primary_window_size(
    window_sizes: Sequence[int],
    model_size: Size,
    resampled_size: int | None = None,
) -> Size:
    """First explicit size, else the resample size, else the model size."""
    ratio = aspect_ratio(model_size)
    if window_sizes:
        return scaled_size(window_sizes[0], ratio)
    if resampled_size is not None:
        return scaled_size(resampled_size, ratio)
    return model_size


def primary_window_step(
    window_steps: Sequence[int],
    primary_size: Size,
    model_size: Size,
    default_step: DefaultStepFn | None = None,
) -> Step:
    """First explicit step, else the model's default step for ``primary_size``."""
    if window_steps:
        return scaled_step(window_steps[0], aspect_ratio(model_size))
    if default_step is not None:
        return Step(*default_step(primary_size))
    return default_window_step(primary_size)


# ---------------------------------------------------------------------------
# Validation and planning
# ---------------------------------------------------------------------------


def validate_window_settings(
    window_sizes: Sequence[int],
    window_steps: Sequence[int],
    model_size: Size,
    resampled_size: int | None = None,
) -> None:
    """Check user-supplied sizes and steps against each other and the model.

    Raises:
        ConfigurationError: If both lists have more than one entry but
            differ in length, if any value is not positive, or if a size
            does not fit within the model width.
    """
    if model_size.width <= 0 or model_size.height <= 0:
        raise ConfigurationError(f"Model size must be positive, got {tuple(model_size)}.", model_size=model_size)

    for name, values in (("window size", window_sizes), ("window step", window_steps)):
        for value in values:
            if value <= 0:
                raise ConfigurationError(f"Every {name} must be positive, got {value}.", value=value)

    if len(window_sizes) > 1 and len(window_steps) > 1 and len(window_sizes) != len(window_steps):
        raise ConfigurationError(
            f"Number of window sizes ({len(window_sizes)}) and window steps ({len(window_steps)}) must match.",
            sizes=len(window_sizes),
            steps=len(window_steps),
        )

    if resampled_size is not None:
        if resampled_size <= 0:
            raise ConfigurationError(f"Resample size must be positive, got {resampled_size}.")
        if resampled_size > model_size.width:
            raise ConfigurationError(
                f"Resample size {resampled_size} does not fit within the model (width: {model_size.width}).",
                resampled_size=resampled_size,
                model_width=model_size.width,
            )
        return

    for size in window_sizes:
        if size > model_size.width:
            raise ConfigurationError(
                f"Window size {size} does not fit within the model (width: {model_size.width}).",
                window_size=size,
                model_width=model_size.width,
            )


def plan_windows(
    model_size: Size,
    window_sizes: Sequence[int] = (),
    window_steps: Sequence[int] = (),
    default_step: DefaultStepFn | None = None,
    resampled_size: int | None = None,
) -> list[WindowSizeStep]:
    """Derive the ordered (size, step) pairs for the sliding window.

    Args:
        model_size: Native model input size.
        window_sizes: Explicit window widths in pixels. May be empty.
        window_steps: Explicit window strides (x) in pixels. May be empty.
        default_step: Model-provided default stride for a window size.
            Half the window size is used when None.
        resampled_size: Width every window is resampled to. When set it
            replaces the model-size check on the explicit window sizes.

    Returns:
        List of WindowSizeStep, one per detection scale.

    Raises:
        ConfigurationError: See validate_window_settings().
    """
    window_sizes = list(window_sizes)
    window_steps = list(window_steps)
    validate_window_settings(window_sizes, window_steps, model_size, resampled_size)

    ratio = aspect_ratio(model_size)
    size = primary_window_size(window_sizes, model_size, resampled_size)
    step = primary_window_step(window_steps, size, model_size, default_step)

    if window_sizes and len(window_sizes) == len(window_steps):
        return [
            WindowSizeStep(scaled_size(w, ratio), scaled_step(s, ratio))
            for w, s in zip(window_sizes, window_steps, strict=True)
        ]
    if len(window_sizes) > 1:
        return [WindowSizeStep(scaled_size(w, ratio), step) for w in window_sizes]
    if len(window_steps) > 1:
        return [WindowSizeStep(size, scaled_step(s, ratio)) for s in window_steps]
    return [WindowSizeStep(size, step)]


# ---------------------------------------------------------------------------
# Window enumeration
# ---------------------------------------------------------------------------


def _offsets(start: int, extent: int, window: int, step: int) -> list[int]:
    if window >= extent:
        return [start]
    offsets = list(range(start, start + extent - window + 1, step))
    # Last window flush with the far edge so the AOI is fully covered
    if offsets[-1] + window < start + extent:
        offsets.append(start + extent - window)
    return offsets


def window_grid(aoi: BoundingBox, size_step: WindowSizeStep) -> list[TileWindow]:
    """Enumerate window rectangles for one scale over an AOI.

    Windows larger than the AOI are clipped to it.

    Args:
        aoi: Integer pixel-space area of interest.
        size_step: Window size and stride.

    Returns:
        List of (col_off, row_off, width, height) windows, row-major.
    """
    size, step = size_step
    if step.x <= 0 or step.y <= 0:
        raise ConfigurationError(f"Window step must be positive, got {tuple(step)}.")

    aoi = aoi.to_int()
    x0, y0 = int(aoi.x_min), int(aoi.y_min)
    width, height = int(aoi.width), int(aoi.height)
    if width <= 0 or height <= 0:
        return []

    w = min(size.width, width)
    h = min(size.height, height)

    return [
        (col_off, row_off, w, h)
        for row_off in _offsets(y0, height, h, step.y)
        for col_off in _offsets(x0, width, w, step.x)
    ]


def count_windows(aoi: BoundingBox, plan: Sequence[WindowSizeStep]) -> int:
    """Total number of windows across every scale of a plan."""
    return sum(len(window_grid(aoi, size_step)) for size_step in plan)
