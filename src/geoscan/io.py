"""Raster source opening for local files and tiled map services.

This module reads image size, affine transform, spatial reference and
alpha presence from a raster source without reading pixel data, and
derives the ImageContext every later planning step works from: the
pixel/projected/lat-lon transform chains and the pixel-space area of
interest after clipping a user bounding box to the image.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from pyproj import CRS
from rasterio.transform import Affine

from geoscan._typing import BoundingBox, Size
from geoscan.config import SourceKind
from geoscan.crs import SpatialReference
from geoscan.exceptions import ConfigurationError, LocalImageWarning, SourceError
from geoscan.stages import LocalBlockSourceConfig, MapServiceBlockSourceConfig
from geoscan.transforms import AffineTransform, TransformationChain, compose

logger = logging.getLogger(__name__)

# WMTS settings for services addressed through a tile matrix set
WMTS_IMAGE_FORMAT = "image/jpeg"
WMTS_LAYER = "DigitalGlobe:ImageryTileService"
WMTS_TILE_MATRIX_SET = "EPSG:3857"

# ---------------------------------------------------------------------------
# Raster source resolution and metadata
# ---------------------------------------------------------------------------


def resolve_raster_source(source: str | Path) -> str:
    """Resolve a raster source to a rasterio-openable path/URI.

    HTTP(S) and S3 URIs are returned as-is; local paths must exist.

    Raises:
        FileNotFoundError: If local path doesn't exist.
    """
    source_str = str(source)

    if source_str.startswith(("http://", "https://", "s3://")):
        return source_str

    path = Path(source_str)
    if not path.exists():
        raise FileNotFoundError(f"Raster file not found: {source_str}")
    return str(path)


@dataclass
class RasterInfo:
    """Raster properties needed for planning, read without pixel data."""

    width: int
    height: int
    count: int  # number of bands
    transform: Affine
    crs: CRS | None
    has_alpha: bool

    @property
    def size(self) -> Size:
        return Size(self.width, self.height)


def has_alpha_band(color_interpretations: Iterable[Any]) -> bool:
    """Whether any band is interpreted as alpha.

    Accepts rasterio ColorInterp members or plain strings.
    """
    for interp in color_interpretations:
        name = getattr(interp, "name", interp)
        if str(name).lower() == "alpha":
            return True
    return False


def load_image_info(source: str | Path) -> RasterInfo:
    """Load raster metadata without reading pixel data.

    Args:
        source: Path to raster file, HTTP/HTTPS URL or S3 URI.

    Returns:
        RasterInfo with size, transform, CRS and alpha presence.

    Raises:
        FileNotFoundError: If local source does not exist.
        SourceError: If the raster cannot be opened or has no bands.
    """
    import rasterio
    from rasterio.errors import RasterioIOError

    uri = resolve_raster_source(source)

    try:
        src = rasterio.open(uri)
    except RasterioIOError as exc:
        raise SourceError(f"Cannot open raster '{source}': {exc}", source=str(source)) from exc

    with src:
        if src.count == 0:
            raise SourceError(f"Raster has 0 bands: {source}", source=str(source))

        crs = None
        if src.crs is not None:
            try:
                crs = CRS.from_user_input(src.crs)
            except Exception:
                crs = None

        return RasterInfo(
            width=src.width,
            height=src.height,
            count=src.count,
            transform=src.transform,
            crs=crs,
            has_alpha=has_alpha_band(src.colorinterp),
        )


# ---------------------------------------------------------------------------
# Image context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImageContext:
    """Everything the planner knows about the input image.

    Attributes:
        size: Image size in pixels.
        pixel_to_proj: Pixel to native projected space.
        image_reference: Native spatial reference (LOCAL if none).
        output_reference: Reference features are written in; WGS84 for
            georeferenced images, the native reference otherwise.
        pixel_to_output: Pixel space to ``output_reference``.
        ll_to_pixel: WGS84 lon/lat to pixel space, or None for local images.
        aoi: Integer pixel-space area of interest.
        has_alpha: Whether the raster carries an alpha band.
        source: Block source stage configuration.
    """

    size: Size
    pixel_to_proj: AffineTransform
    image_reference: SpatialReference
    output_reference: SpatialReference
    pixel_to_output: TransformationChain
    ll_to_pixel: TransformationChain | None
    aoi: BoundingBox
    has_alpha: bool
    source: LocalBlockSourceConfig | MapServiceBlockSourceConfig

    @property
    def is_georeferenced(self) -> bool:
        return self.ll_to_pixel is not None

    @property
    def extent(self) -> BoundingBox:
        return BoundingBox.from_size(self.size.width, self.size.height)


def clip_bbox_to_image(
    bbox: BoundingBox,
    ll_to_pixel: TransformationChain,
    pixel_to_output: TransformationChain,
    extent: BoundingBox,
) -> BoundingBox:
    """Convert a lon/lat box to pixel space and clip it to the image.

    Raises:
        EmptyIntersectionError: If the box does not overlap the image.
    """
    pixel_bbox = ll_to_pixel.transform_to_int_bounds(bbox)
    intersect = extent.intersection(pixel_bbox)

    if intersect != pixel_bbox:
        adjusted = pixel_to_output.transform(intersect)
        logger.info(
            "Bounding box adjusted to (%s, %s) : (%s, %s)",
            adjusted.x_min,
            adjusted.y_min,
            adjusted.x_max,
            adjusted.y_max,
        )

    return intersect


def open_local_image(path: str | Path, bbox: BoundingBox | None = None) -> ImageContext:
    """Describe a local raster and clip the optional lon/lat bbox to it.

    Images without a spatial reference stay in native space: the bbox is
    ignored with a LocalImageWarning since it cannot be converted.

    Raises:
        FileNotFoundError: If the file does not exist.
        SourceError: If the raster cannot be opened.
        EmptyIntersectionError: If the bbox does not overlap the image.
    """
    logger.info("Opening local image...")
    info = load_image_info(path)

    image_reference = SpatialReference(info.crs)
    pixel_to_proj = AffineTransform(info.transform)
    extent = BoundingBox.from_size(info.width, info.height)
    aoi = extent

    if not image_reference.is_local:
        ll_to_pixel: TransformationChain | None = compose(image_reference.from_latlon(), pixel_to_proj.inverse())
        pixel_to_output = ll_to_pixel.inverse()
        output_reference = SpatialReference.WGS84
    else:
        warnings.warn(
            "Image has geometric metadata which cannot be converted to WGS84. "
            "Output will be in native space, and some output formats will fail.",
            LocalImageWarning,
            stacklevel=2,
        )
        if bbox is not None:
            warnings.warn(
                "A bounding box requires a conversion from WGS84 to pixel space, "
                "which this image does not have. Ignoring the bounding box.",
                LocalImageWarning,
                stacklevel=2,
            )
            bbox = None
        ll_to_pixel = None
        pixel_to_output = compose(pixel_to_proj)
        output_reference = image_reference

    if bbox is not None and ll_to_pixel is not None:
        aoi = clip_bbox_to_image(bbox, ll_to_pixel, pixel_to_output, extent)

    return ImageContext(
        size=info.size,
        pixel_to_proj=pixel_to_proj,
        image_reference=image_reference,
        output_reference=output_reference,
        pixel_to_output=pixel_to_output,
        ll_to_pixel=ll_to_pixel,
        aoi=aoi,
        has_alpha=info.has_alpha,
        source=LocalBlockSourceConfig(path=str(path)),
    )


class MapServiceClient(Protocol):
    """Client of a remote tiled imagery service."""

    spatial_reference: SpatialReference
    raster_bands: list[Any]

    def connect(self) -> None: ...

    def set_image_format(self, image_format: str) -> None: ...

    def set_layer(self, layer: str) -> None: ...

    def set_tile_matrix_set(self, tile_matrix_set: str) -> None: ...

    def set_tile_matrix_id(self, tile_matrix_id: str) -> None: ...

    def image_from_area(self, area: BoundingBox) -> RasterInfo: ...

    def config_from_area(self, area: BoundingBox) -> Any: ...


def open_map_service_image(
    client: MapServiceClient,
    kind: SourceKind,
    bbox: BoundingBox | None,
    zoom: int,
    max_connections: int = 10,
) -> ImageContext:
    """Connect to a map service and describe the image covering ``bbox``.

    Args:
        client: Unconnected service client.
        kind: Service kind, selects WMTS or plain zoom addressing.
        bbox: Lon/lat area to fetch. Required.
        zoom: Service zoom level.
        max_connections: Concurrent tile requests for the block source.

    Raises:
        ConfigurationError: If no bbox is given.
    """
    if bbox is None:
        raise ConfigurationError("Bounding box must be specified for map service imagery.")

    logger.info("Connecting to %s...", kind.value)
    client.connect()

    if kind.uses_wmts:
        client.set_image_format(WMTS_IMAGE_FORMAT)
        client.set_layer(WMTS_LAYER)
        client.set_tile_matrix_set(WMTS_TILE_MATRIX_SET)
        client.set_tile_matrix_id(f"{WMTS_TILE_MATRIX_SET}:{zoom}")
    else:
        client.set_tile_matrix_id(str(zoom))

    ll_to_proj = client.spatial_reference.from_latlon()
    proj_bbox = ll_to_proj.transform(bbox)
    image = client.image_from_area(proj_bbox)

    pixel_to_proj = AffineTransform(image.transform)
    proj_to_pixel = pixel_to_proj.inverse()
    ll_to_pixel = compose(ll_to_proj, proj_to_pixel)

    return ImageContext(
        size=image.size,
        pixel_to_proj=pixel_to_proj,
        image_reference=SpatialReference(image.crs) if image.crs is not None else client.spatial_reference,
        output_reference=SpatialReference.WGS84,
        pixel_to_output=ll_to_pixel.inverse(),
        ll_to_pixel=ll_to_pixel,
        aoi=proj_to_pixel.transform_to_int_bounds(proj_bbox),
        has_alpha=has_alpha_band(client.raster_bands),
        source=MapServiceBlockSourceConfig(
            config=client.config_from_area(proj_bbox),
            max_connections=max_connections,
        ),
    )
