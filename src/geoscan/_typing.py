"""Type aliases and small value types shared across geoscan.

This module defines the shared coordinate tuples, window size/step pairs
and the axis-aligned BoundingBox used by the transform, tiling, region
filter and assembler modules. All of them are immutable so they can be
shared freely between stage configurations.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import NamedTuple

from shapely.geometry import Polygon, box

from geoscan.exceptions import ConfigurationError, EmptyIntersectionError

# A single coordinate pair: (x, y) or (lon, lat)
Point = tuple[float, float]

# Bounding box in pixel coordinates: (x_min, y_min, x_max, y_max)
PixelBBox = tuple[float, float, float, float]

# Bounding box in geographic coordinates: (west, south, east, north)
GeoBBox = tuple[float, float, float, float]

# Distance from an integer below which to_int() snaps a coordinate
INT_TOLERANCE = 1e-6


class Size(NamedTuple):
    """Window or model size in pixels."""

    width: int
    height: int


class Step(NamedTuple):
    """Sliding window stride in pixels."""

    x: int
    y: int


class WindowSizeStep(NamedTuple):
    """One detection scale: a window size and the stride it is scanned at."""

    size: Size
    step: Step


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned rectangle in a single coordinate space.

    Coordinates follow the (x_min, y_min, x_max, y_max) convention used
    throughout the package. For geographic boxes x is longitude and y is
    latitude.
    """

    x_min: float
    y_min: float
    x_max: float
    y_max: float

    def __post_init__(self) -> None:
        if self.x_min > self.x_max or self.y_min > self.y_max:
            raise ConfigurationError(
                f"Invalid bounding box {self.bounds}: minimum exceeds maximum.",
                bounds=self.bounds,
            )

    @classmethod
    def from_size(cls, width: float, height: float, x: float = 0, y: float = 0) -> BoundingBox:
        """Build a box from an origin and a size."""
        return cls(x, y, x + width, y + height)

    @classmethod
    def from_points(cls, points: list[Point]) -> BoundingBox:
        """Envelope of a set of points."""
        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        return cls(min(xs), min(ys), max(xs), max(ys))

    @property
    def bounds(self) -> PixelBBox:
        return (self.x_min, self.y_min, self.x_max, self.y_max)

    @property
    def width(self) -> float:
        return self.x_max - self.x_min

    @property
    def height(self) -> float:
        return self.y_max - self.y_min

    @property
    def origin(self) -> Point:
        return (self.x_min, self.y_min)

    @property
    def corners(self) -> list[Point]:
        """Corners in top-left, top-right, bottom-right, bottom-left order."""
        return [
            (self.x_min, self.y_min),
            (self.x_max, self.y_min),
            (self.x_max, self.y_max),
            (self.x_min, self.y_max),
        ]

    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def intersection(self, other: BoundingBox) -> BoundingBox:
        """Intersect two boxes.

        Raises:
            EmptyIntersectionError: If the boxes do not overlap with a
                positive area. Touching edges count as no overlap.
        """
        x_min = max(self.x_min, other.x_min)
        y_min = max(self.y_min, other.y_min)
        x_max = min(self.x_max, other.x_max)
        y_max = min(self.y_max, other.y_max)

        if x_max <= x_min or y_max <= y_min:
            raise EmptyIntersectionError(
                f"Bounding boxes {self.bounds} and {other.bounds} do not intersect.",
                first=self.bounds,
                second=other.bounds,
            )

        return BoundingBox(x_min, y_min, x_max, y_max)

    def to_int(self) -> BoundingBox:
        """Smallest integer-aligned box containing this one.

        Values within INT_TOLERANCE of an integer snap to it, so round-off
        from a transform never grows the box by a whole pixel.
        """
        return BoundingBox(
            math.floor(self.x_min + INT_TOLERANCE),
            math.floor(self.y_min + INT_TOLERANCE),
            math.ceil(self.x_max - INT_TOLERANCE),
            math.ceil(self.y_max - INT_TOLERANCE),
        )

    def as_polygon(self) -> Polygon:
        return box(self.x_min, self.y_min, self.x_max, self.y_max)
