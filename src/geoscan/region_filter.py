"""Spatial include/exclude region filter built from vector files.

Each filter file may carry its own coordinate system. Its polygons are
brought into the pixel space of the area of interest (AOI origin at 0, 0,
the coordinates the sliding window reports subsets in) and merged into a
single mask in the order the actions were given. The sliding window only
forwards windows the mask accepts.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from rasterio.transform import Affine
from shapely.geometry import MultiPolygon, Polygon, box
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union
from shapely.strtree import STRtree

from geoscan._typing import BoundingBox
from geoscan.crs import SpatialReference
from geoscan.exceptions import (
    SourceError,
    SpatialReferenceMismatchError,
    UnknownFilterActionError,
    UnsupportedGeometryError,
)
from geoscan.tiling import TileWindow
from geoscan.transforms import AffineTransform, TransformationChain, compose, invert

if TYPE_CHECKING:
    from geoscan.io import ImageContext

logger = logging.getLogger(__name__)


class FilterAction(str, Enum):
    INCLUDE = "include"
    EXCLUDE = "exclude"

    @classmethod
    def parse(cls, value: str | FilterAction) -> FilterAction:
        """Parse an action name.

        Raises:
            UnknownFilterActionError: If the name is neither include nor exclude.
        """
        if isinstance(value, FilterAction):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as err:
            raise UnknownFilterActionError(
                f"Unknown filter action '{value}'. Expected 'include' or 'exclude'.",
                action=value,
            ) from err


class FilterMethod(str, Enum):
    """How a window is tested against the mask.

    ANY accepts windows overlapping the mask, ALL only windows it covers.
    """

    ANY = "any"
    ALL = "all"


@dataclass(frozen=True)
class FilterLayer:
    """One layer of a filter file."""

    name: str
    spatial_reference: SpatialReference
    geometries: list[BaseGeometry] = field(default_factory=list)


FilterReader = Callable[[str], list[FilterLayer]]


def read_filter_layers(path: str | Path) -> list[FilterLayer]:
    """Read every layer of a vector file.

    Args:
        path: Any vector format GDAL/pyogrio can read.

    Returns:
        List of FilterLayer, one per layer, in file order.

    Raises:
        FileNotFoundError: If the file does not exist.
        SourceError: If the file cannot be read as vector data.
    """
    import geopandas as gpd

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Filter file not found: {path}")

    try:
        layer_names = list(gpd.list_layers(path)["name"])
        layers = []
        for name in layer_names:
            gdf = gpd.read_file(path, layer=name)
            reference = SpatialReference.from_user_input(gdf.crs)
            geometries = [geom for geom in gdf.geometry if geom is not None]
            layers.append(FilterLayer(name, reference, geometries))
    except (OSError, ValueError, RuntimeError) as exc:
        raise SourceError(f"Cannot read filter file '{path}': {exc}", path=str(path)) from exc

    return layers


# ---------------------------------------------------------------------------
# Region filter
# ---------------------------------------------------------------------------


class RegionFilter:
    """A polygon mask over AOI pixel space.

    The mask starts empty. add() unions polygons into it and subtract()
    removes them, so the order of calls matters.

    Args:
        extent: The AOI rectangle in its own pixel space.
        method: Window acceptance test, see FilterMethod.
    """

    def __init__(self, extent: BoundingBox, method: FilterMethod = FilterMethod.ANY) -> None:
        self._extent = extent
        self._method = FilterMethod(method)
        self._mask: BaseGeometry = Polygon()
        self._tree: STRtree | None = None
        self._parts: list[Polygon] = []

    @property
    def extent(self) -> BoundingBox:
        return self._extent

    @property
    def method(self) -> FilterMethod:
        return self._method

    @property
    def mask(self) -> BaseGeometry:
        return self._mask

    def is_empty(self) -> bool:
        return self._mask.is_empty

    def add(self, polygons: Iterable[BaseGeometry]) -> None:
        self._mask = unary_union([self._mask, *polygons])
        self._tree = None

    def subtract(self, polygons: Iterable[BaseGeometry]) -> None:
        polygons = list(polygons)
        if not polygons:
            return
        self._mask = self._mask.difference(unary_union(polygons))
        self._tree = None

    @property
    def parts(self) -> list[Polygon]:
        """Polygons making up the mask."""
        if self._mask.is_empty:
            return []
        if isinstance(self._mask, MultiPolygon):
            return list(self._mask.geoms)
        if isinstance(self._mask, Polygon):
            return [self._mask]
        # Collections left over from degenerate differences
        return [geom for geom in getattr(self._mask, "geoms", []) if isinstance(geom, Polygon)]

    def _index(self) -> STRtree:
        if self._tree is None:
            self._parts = self.parts
            self._tree = STRtree(self._parts)
        return self._tree

    def contains(self, window: BoundingBox | TileWindow) -> bool:
        """Whether a window passes the filter.

        Args:
            window: A BoundingBox or a (col_off, row_off, width, height) tuple.
        """
        if isinstance(window, BoundingBox):
            geom = window.as_polygon()
        else:
            col_off, row_off, width, height = window
            geom = box(col_off, row_off, col_off + width, row_off + height)

        if self._method is FilterMethod.ALL:
            return not self._mask.is_empty and self._mask.covers(geom)

        tree = self._index()
        for idx in tree.query(geom):
            part = self._parts[int(idx)]
            # Shared edges do not count as overlap
            if part.intersects(geom) and not part.touches(geom):
                return True
        return False

    def __repr__(self) -> str:
        return f"RegionFilter(extent={self._extent.bounds}, method={self._method.value}, parts={len(self.parts)})"


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def filter_to_pixel_transform(
    layer_reference: SpatialReference,
    image: ImageContext,
    path: str,
) -> TransformationChain:
    """Chain taking filter layer coordinates into AOI pixel space.

    Raises:
        SpatialReferenceMismatchError: If exactly one of the layer and the
            image has a spatial reference.
    """
    output_reference = image.output_reference

    if not layer_reference.is_compatible(output_reference):
        if layer_reference.is_local:
            raise SpatialReferenceMismatchError(
                f"Filter file '{path}' lacks a spatial reference, but the image has one.",
                path=path,
            )
        raise SpatialReferenceMismatchError(
            f"Image lacks a spatial reference, but filter file '{path}' has one.",
            path=path,
        )

    if layer_reference.is_local:
        pixel_to_layer = compose(image.pixel_to_proj)
    else:
        pixel_to_layer = compose(image.pixel_to_output, layer_reference.from_(output_reference))

    aoi_to_pixel = AffineTransform(Affine.translation(image.aoi.x_min, image.aoi.y_min))
    return invert(pixel_to_layer.prepend(aoi_to_pixel)).compact()


def load_filter_polygons(
    path: str,
    image: ImageContext,
    reader: FilterReader = read_filter_layers,
) -> Iterator[BaseGeometry]:
    """Yield every polygon of a filter file in AOI pixel space.

    Raises:
        UnsupportedGeometryError: If the file holds anything but polygons.
    """
    for layer in reader(path):
        to_pixel = filter_to_pixel_transform(layer.spatial_reference, image, path)
        for geometry in layer.geometries:
            if geometry.geom_type != "Polygon":
                raise UnsupportedGeometryError(
                    f"Filter file '{path}' contains unsupported geometry: expected Polygon, got {geometry.geom_type}.",
                    path=path,
                    layer=layer.name,
                    geometry_type=geometry.geom_type,
                )
            yield to_pixel.transform(geometry)


def build_region_filter(
    actions: Sequence[tuple[str | FilterAction, Sequence[str]]],
    image: ImageContext,
    reader: FilterReader = read_filter_layers,
    method: FilterMethod = FilterMethod.ANY,
) -> RegionFilter | None:
    """Build the region filter mask from ordered include/exclude actions.

    When the first action is an exclusion the mask is seeded with the
    whole AOI, so excluding from "everything" behaves as expected.

    Args:
        actions: Ordered ``(action, [paths])`` pairs.
        image: Image the mask is built for.
        reader: Filter file reader.
        method: Window acceptance test of the resulting filter.

    Returns:
        RegionFilter, or None when no actions are given.

    Raises:
        UnknownFilterActionError: For an action other than include/exclude.
        SpatialReferenceMismatchError: See filter_to_pixel_transform().
        UnsupportedGeometryError: For non-polygon filter geometries.
    """
    if not actions:
        return None

    parsed = [(FilterAction.parse(action), [str(p) for p in paths]) for action, paths in actions]

    extent = BoundingBox.from_size(image.aoi.width, image.aoi.height)
    region_filter = RegionFilter(extent, method)

    if parsed[0][0] is FilterAction.EXCLUDE:
        logger.info("Region filter starts with an exclusion; including the whole area of interest first")
        region_filter.add([extent.as_polygon()])

    for action, paths in parsed:
        polygons = [polygon for path in paths for polygon in load_filter_polygons(path, image, reader)]
        if action is FilterAction.INCLUDE:
            region_filter.add(polygons)
        else:
            region_filter.subtract(polygons)

    return region_filter
