"""Composable, invertible coordinate transforms.

Transforms map coordinates between pixel, projected and geographic spaces.
A TransformationChain is an ordered composition of transforms: the forward
direction applies links left-to-right, and the inverse is the reversed
list of each link's inverse. Chains are immutable values, so the same
chain can be shared by every stage that needs it.

Supported payloads are (x, y) tuples, BoundingBox values and shapely
geometries. Anything else is rejected with UnsupportedGeometryError.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from typing import Any

import numpy as np
from pyproj import CRS
from rasterio.transform import Affine
from shapely import ops
from shapely.geometry.base import BaseGeometry

from geoscan._typing import BoundingBox, Point
from geoscan.crs import get_transformer
from geoscan.exceptions import NonInvertibleTransformError, TransformError, UnsupportedGeometryError

# Geometry types shapely.ops.transform can rebuild coordinate by coordinate
SUPPORTED_GEOMETRY_TYPES = frozenset(
    {
        "Point",
        "MultiPoint",
        "LineString",
        "LinearRing",
        "MultiLineString",
        "Polygon",
        "MultiPolygon",
    }
)


class Transform(ABC):
    """A coordinate mapping between two spaces."""

    name: str = "transform"

    @property
    def is_invertible(self) -> bool:
        return True

    @abstractmethod
    def transform_point(self, x: float, y: float) -> Point:
        """Map a single coordinate pair."""

    @abstractmethod
    def inverse(self) -> Transform:
        """Return the transform mapping back into the source space.

        Raises:
            NonInvertibleTransformError: If the transform has no inverse.
        """

    def transform_coords(self, xs: Sequence[float], ys: Sequence[float]) -> tuple[list[float], list[float]]:
        """Map parallel coordinate sequences."""
        out_x: list[float] = []
        out_y: list[float] = []
        for x, y in zip(xs, ys, strict=True):
            tx, ty = self.transform_point(x, y)
            out_x.append(tx)
            out_y.append(ty)
        return out_x, out_y

    def transform(self, geometry: Any) -> Any:
        """Apply the transform to a point, BoundingBox or shapely geometry.

        A BoundingBox is transformed through all four corners and the
        result is the envelope of the transformed corners, so rotated or
        reprojected boxes are never clipped.

        Raises:
            UnsupportedGeometryError: For any other payload type.
        """
        if isinstance(geometry, BoundingBox):
            xs, ys = self.transform_coords(
                [c[0] for c in geometry.corners],
                [c[1] for c in geometry.corners],
            )
            return BoundingBox.from_points(list(zip(xs, ys)))

        if isinstance(geometry, BaseGeometry):
            if geometry.geom_type not in SUPPORTED_GEOMETRY_TYPES:
                raise UnsupportedGeometryError(
                    f"Expected one of {sorted(SUPPORTED_GEOMETRY_TYPES)}, got {geometry.geom_type}.",
                    geometry_type=geometry.geom_type,
                )
            return ops.transform(self._shapely_func, geometry)

        if isinstance(geometry, (tuple, list)) and len(geometry) == 2:
            return self.transform_point(float(geometry[0]), float(geometry[1]))

        raise UnsupportedGeometryError(
            f"Expected a point, BoundingBox or shapely geometry, got {type(geometry).__name__}.",
            geometry_type=type(geometry).__name__,
        )

    def transform_to_int_bounds(self, box: BoundingBox) -> BoundingBox:
        """Transform a box and round its envelope outward to integers."""
        return self.transform(box).to_int()

    def _shapely_func(self, xs: Any, ys: Any, zs: Any = None) -> tuple[list[float], list[float]]:
        # shapely passes either scalars or coordinate arrays
        if isinstance(xs, (int, float)):
            return self.transform_point(xs, ys)
        return self.transform_coords(list(xs), list(ys))


class AffineTransform(Transform):
    """Affine mapping, typically pixel space to projected space.

    Args:
        affine: Rasterio/affine ``Affine`` matrix. ``(col, row) -> (x, y)``.
    """

    name = "affine"

    def __init__(self, affine: Affine) -> None:
        self.affine = affine

    @property
    def is_invertible(self) -> bool:
        return not self.affine.is_degenerate

    @property
    def is_identity(self) -> bool:
        return self.affine.almost_equals(Affine.identity())

    def transform_point(self, x: float, y: float) -> Point:
        return self.affine * (x, y)

    def inverse(self) -> AffineTransform:
        if not self.is_invertible:
            raise NonInvertibleTransformError(
                f"Affine transform {tuple(self.affine)[:6]} is degenerate and cannot be inverted.",
                link=self.name,
            )
        return AffineTransform(~self.affine)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AffineTransform):
            return NotImplemented
        return self.affine.almost_equals(other.affine)

    def __hash__(self) -> int:
        return hash(tuple(round(v, 9) for v in tuple(self.affine)[:6]))

    def __repr__(self) -> str:
        return f"AffineTransform({tuple(self.affine)[:6]})"


class ProjTransform(Transform):
    """Datum/projection conversion between two coordinate systems.

    Coordinates are always in (x, y) / (lon, lat) order.
    """

    name = "proj"

    def __init__(self, src_crs: CRS, dst_crs: CRS) -> None:
        self.src_crs = src_crs
        self.dst_crs = dst_crs
        self._transformer = get_transformer(src_crs.to_wkt(), dst_crs.to_wkt())

    @property
    def is_noop(self) -> bool:
        return self.src_crs == self.dst_crs

    def transform_point(self, x: float, y: float) -> Point:
        tx, ty = self._transformer.transform(x, y)
        if not (math.isfinite(tx) and math.isfinite(ty)):
            raise TransformError(
                f"Coordinate ({x}, {y}) cannot be projected from {self.src_crs.name} to {self.dst_crs.name}.",
                point=(x, y),
            )
        return (tx, ty)

    def transform_coords(self, xs: Sequence[float], ys: Sequence[float]) -> tuple[list[float], list[float]]:
        out_x, out_y = self._transformer.transform(np.asarray(xs, dtype=float), np.asarray(ys, dtype=float))
        if not (np.isfinite(out_x).all() and np.isfinite(out_y).all()):
            raise TransformError(
                f"Coordinates cannot be projected from {self.src_crs.name} to {self.dst_crs.name}.",
                count=len(out_x),
            )
        return out_x.tolist(), out_y.tolist()

    def inverse(self) -> ProjTransform:
        return ProjTransform(self.dst_crs, self.src_crs)

    def is_inverse_of(self, other: Transform) -> bool:
        return isinstance(other, ProjTransform) and self.src_crs == other.dst_crs and self.dst_crs == other.src_crs

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProjTransform):
            return NotImplemented
        return self.src_crs == other.src_crs and self.dst_crs == other.dst_crs

    def __hash__(self) -> int:
        return hash((self.src_crs.to_wkt(), self.dst_crs.to_wkt()))

    def __repr__(self) -> str:
        return f"ProjTransform({self.src_crs.name!r} -> {self.dst_crs.name!r})"


class FunctionTransform(Transform):
    """Transform backed by plain callables.

    Invertible only when an inverse callable is supplied.
    """

    def __init__(
        self,
        forward: Callable[[float, float], Point],
        backward: Callable[[float, float], Point] | None = None,
        name: str = "function",
    ) -> None:
        self._forward = forward
        self._backward = backward
        self.name = name

    @property
    def is_invertible(self) -> bool:
        return self._backward is not None

    def transform_point(self, x: float, y: float) -> Point:
        return self._forward(x, y)

    def inverse(self) -> FunctionTransform:
        if self._backward is None:
            raise NonInvertibleTransformError(
                f"Transform '{self.name}' has no inverse.",
                link=self.name,
            )
        return FunctionTransform(self._backward, self._forward, name=f"inverse({self.name})")

    def __repr__(self) -> str:
        return f"FunctionTransform({self.name!r})"


class TransformationChain(Transform):
    """Ordered composition of transforms.

    Nested chains are flattened on construction. The forward direction
    applies links left-to-right.
    """

    name = "chain"

    def __init__(self, links: Iterable[Transform] = ()) -> None:
        flat: list[Transform] = []
        for link in links:
            if isinstance(link, TransformationChain):
                flat.extend(link.links)
            elif isinstance(link, Transform):
                flat.append(link)
            else:
                raise TransformError(f"Chain links must be Transform instances, got {type(link).__name__}.")
        self._links = tuple(flat)

    @property
    def links(self) -> tuple[Transform, ...]:
        return self._links

    @property
    def is_invertible(self) -> bool:
        return all(link.is_invertible for link in self._links)

    def __len__(self) -> int:
        return len(self._links)

    def __iter__(self):
        return iter(self._links)

    def __repr__(self) -> str:
        return f"TransformationChain({list(self._links)!r})"

    def transform_point(self, x: float, y: float) -> Point:
        point = (x, y)
        for link in self._links:
            point = link.transform_point(*point)
        return point

    def transform_coords(self, xs: Sequence[float], ys: Sequence[float]) -> tuple[list[float], list[float]]:
        out_x, out_y = list(xs), list(ys)
        for link in self._links:
            out_x, out_y = link.transform_coords(out_x, out_y)
        return out_x, out_y

    def inverse(self) -> TransformationChain:
        """Reverse composition of each link's inverse.

        Raises:
            NonInvertibleTransformError: Naming the first link without an
                inverse. No partial chain is returned.
        """
        for index, link in enumerate(self._links):
            if not link.is_invertible:
                raise NonInvertibleTransformError(
                    f"Chain link {index} ({link!r}) is not invertible.",
                    link=link.name,
                    index=index,
                )
        return TransformationChain(link.inverse() for link in reversed(self._links))

    def append(self, transform: Transform) -> TransformationChain:
        return TransformationChain([*self._links, transform])

    def prepend(self, transform: Transform) -> TransformationChain:
        return TransformationChain([transform, *self._links])

    def compact(self) -> TransformationChain:
        """Structurally simplify the chain without changing its mapping.

        Adjacent affine links are folded into one matrix, identity affines
        and same-CRS projections are dropped, and adjacent projections
        that undo each other cancel out.
        """
        compacted: list[Transform] = []
        for link in self._links:
            if isinstance(link, AffineTransform) and link.is_identity:
                continue
            if isinstance(link, ProjTransform) and link.is_noop:
                continue

            if compacted:
                previous = compacted[-1]
                if isinstance(previous, AffineTransform) and isinstance(link, AffineTransform):
                    merged = AffineTransform(link.affine * previous.affine)
                    if merged.is_identity:
                        compacted.pop()
                    else:
                        compacted[-1] = merged
                    continue
                if isinstance(previous, ProjTransform) and previous.is_inverse_of(link):
                    compacted.pop()
                    continue

            compacted.append(link)

        return TransformationChain(compacted)


def compose(*transforms: Transform) -> TransformationChain:
    """Compose transforms into a chain applied left-to-right."""
    return TransformationChain(transforms)


def invert(chain: Transform) -> TransformationChain:
    """Invert a transform or chain, always returning a chain.

    Raises:
        NonInvertibleTransformError: If any link has no inverse.
    """
    if not isinstance(chain, TransformationChain):
        chain = TransformationChain([chain])
    return chain.inverse()
