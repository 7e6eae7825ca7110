"""Shared test fixtures for the geoscan test suite."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import geopandas as gpd
import numpy as np
import pytest
import rasterio
from pyproj import CRS
from rasterio.enums import ColorInterp
from rasterio.transform import Affine, from_bounds
from shapely.geometry import box

from geoscan._adapter import ModelCategory, ModelMetadata
from geoscan._typing import BoundingBox, Size
from geoscan.config import RunConfig
from geoscan.crs import SpatialReference
from geoscan.io import ImageContext
from geoscan.stages import LocalBlockSourceConfig
from geoscan.transforms import AffineTransform, compose

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

UTM_CRS = CRS.from_epsg(32617)

# 200 x 100 pixels at 1 m/pixel, top-left corner at (500000, 4000100)
IMAGE_WIDTH, IMAGE_HEIGHT = 200, 100
UTM_WEST, UTM_SOUTH = 500000.0, 4000000.0
UTM_EAST, UTM_NORTH = UTM_WEST + IMAGE_WIDTH, UTM_SOUTH + IMAGE_HEIGHT
UTM_TRANSFORM = from_bounds(UTM_WEST, UTM_SOUTH, UTM_EAST, UTM_NORTH, IMAGE_WIDTH, IMAGE_HEIGHT)


# ---------------------------------------------------------------------------
# Test Helper Functions
# ---------------------------------------------------------------------------


def _write_geotiff(
    path: Path,
    count: int = 3,
    crs: CRS | None = UTM_CRS,
    transform: Affine = UTM_TRANSFORM,
    colorinterp: list[ColorInterp] | None = None,
) -> Path:
    rng = np.random.RandomState(42)
    data = rng.randint(0, 255, (count, IMAGE_HEIGHT, IMAGE_WIDTH), dtype=np.uint8)

    profile = {
        "driver": "GTiff",
        "height": IMAGE_HEIGHT,
        "width": IMAGE_WIDTH,
        "count": count,
        "dtype": "uint8",
        "transform": transform,
    }
    if crs is not None:
        profile["crs"] = crs

    with rasterio.open(path, "w", **profile) as dst:
        dst.write(data)
        if colorinterp is not None:
            dst.colorinterp = colorinterp

    return path


# ---------------------------------------------------------------------------
# Raster fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def synthetic_geotiff(tmp_path: Path) -> Path:
    """Create a synthetic 200x100 3-band uint8 GeoTIFF in EPSG:32617.

    1 m/pixel, top-left corner at (500000, 4000100) in UTM Zone 17N.
    """
    return _write_geotiff(tmp_path / "synthetic.tif")


@pytest.fixture
def rgba_geotiff(tmp_path: Path) -> Path:
    """Same raster as synthetic_geotiff with a fourth band flagged as alpha."""
    return _write_geotiff(
        tmp_path / "rgba.tif",
        count=4,
        colorinterp=[ColorInterp.red, ColorInterp.green, ColorInterp.blue, ColorInterp.alpha],
    )


@pytest.fixture
def local_geotiff(tmp_path: Path) -> Path:
    """A 3-band raster with no CRS and an identity transform."""
    return _write_geotiff(tmp_path / "local.tif", crs=None, transform=Affine.identity())


# ---------------------------------------------------------------------------
# Filter file fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def utm_filter_file(tmp_path: Path) -> Path:
    """GeoJSON with one polygon covering pixels (10, 10)-(50, 60) of the image."""
    gdf = gpd.GeoDataFrame(
        {"name": ["parking"]},
        geometry=[box(UTM_WEST + 10, UTM_NORTH - 60, UTM_WEST + 50, UTM_NORTH - 10)],
        crs=UTM_CRS,
    )
    path = tmp_path / "include_utm.geojson"
    gdf.to_file(path, driver="GeoJSON")
    return path


@pytest.fixture
def wgs84_filter_file(tmp_path: Path) -> Path:
    """GeoJSON in EPSG:4326 covering pixels (100, 20)-(180, 80) of the image."""
    from pyproj import Transformer

    to_ll = Transformer.from_crs(UTM_CRS, CRS.from_epsg(4326), always_xy=True)
    west, south = to_ll.transform(UTM_WEST + 100, UTM_NORTH - 80)
    east, north = to_ll.transform(UTM_WEST + 180, UTM_NORTH - 20)
    gdf = gpd.GeoDataFrame({"name": ["field"]}, geometry=[box(west, south, east, north)], crs="EPSG:4326")
    path = tmp_path / "include_wgs84.geojson"
    gdf.to_file(path, driver="GeoJSON")
    return path


@pytest.fixture
def line_filter_file(tmp_path: Path) -> Path:
    """GeoJSON holding a LineString, which region filters reject."""
    from shapely.geometry import LineString

    gdf = gpd.GeoDataFrame(
        {"name": ["road"]},
        geometry=[LineString([(UTM_WEST, UTM_SOUTH), (UTM_EAST, UTM_NORTH)])],
        crs=UTM_CRS,
    )
    path = tmp_path / "road.geojson"
    gdf.to_file(path, driver="GeoJSON")
    return path


# ---------------------------------------------------------------------------
# In-memory fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_image_context():
    """Factory building an ImageContext without touching the filesystem."""

    def _make(
        crs: CRS | None = UTM_CRS,
        transform: Affine = UTM_TRANSFORM,
        size: tuple[int, int] = (IMAGE_WIDTH, IMAGE_HEIGHT),
        aoi: BoundingBox | None = None,
        has_alpha: bool = False,
    ) -> ImageContext:
        reference = SpatialReference(crs)
        pixel_to_proj = AffineTransform(transform)
        if reference.is_local:
            ll_to_pixel = None
            pixel_to_output = compose(pixel_to_proj)
            output_reference = reference
        else:
            ll_to_pixel = compose(reference.from_latlon(), pixel_to_proj.inverse())
            pixel_to_output = ll_to_pixel.inverse()
            output_reference = SpatialReference.WGS84
        return ImageContext(
            size=Size(*size),
            pixel_to_proj=pixel_to_proj,
            image_reference=reference,
            output_reference=output_reference,
            pixel_to_output=pixel_to_output,
            ll_to_pixel=ll_to_pixel,
            aoi=aoi if aoi is not None else BoundingBox.from_size(*size),
            has_alpha=has_alpha,
            source=LocalBlockSourceConfig(path="image.tif"),
        )

    return _make


@pytest.fixture
def detection_metadata() -> ModelMetadata:
    """Metadata of a 150x100 detection model."""
    return ModelMetadata(
        name="cars",
        version="1.2",
        time_created=1_500_000_000.0,
        description="Vehicle detector",
        model_size=Size(150, 100),
        color_mode="rgb",
        category=ModelCategory.DETECTION,
        labels=("car", "truck", "bus"),
        bounding_box=BoundingBox(-180.0, -90.0, 180.0, 90.0),
    )


@pytest.fixture
def segmentation_metadata(detection_metadata: ModelMetadata) -> ModelMetadata:
    from dataclasses import replace

    return replace(detection_metadata, name="roofs", category=ModelCategory.SEGMENTATION)


@pytest.fixture
def run_config(tmp_path: Path) -> RunConfig:
    """A valid local-source configuration."""
    return RunConfig(
        image=str(tmp_path / "image.tif"),
        model_package=str(tmp_path / "model.gbdxm"),
        output_path=str(tmp_path / "out.shp"),
    )


@pytest.fixture
def mock_model() -> MagicMock:
    """A model handle without a default step function."""
    return MagicMock(spec=["metadata"])
