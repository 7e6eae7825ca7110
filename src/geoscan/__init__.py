"""geoscan - Planning of streaming multi-scale detection pipelines over geospatial rasters."""

from __future__ import annotations

__version__ = "0.1.0"

from geoscan._adapter import ModelCategory, ModelMetadata, ModelPackage, RasterToPolygonConfig, resolve_model
from geoscan._typing import BoundingBox, Size, Step, WindowSizeStep
from geoscan.assembler import assemble_pipeline
from geoscan.config import RunConfig, SourceKind
from geoscan.core import GeoScan
from geoscan.crs import SpatialReference
from geoscan.exceptions import (
    ConfigurationError,
    CRSError,
    EmptyIntersectionError,
    GeoScanError,
    GeoScanWarning,
    GraphFrozenError,
    LabelFilterWarning,
    LocalImageWarning,
    ModelError,
    NonInvertibleTransformError,
    PipelineError,
    SourceError,
    SpatialReferenceMismatchError,
    TransformError,
    UnknownFilterActionError,
    UnsupportedGeometryError,
    UnsupportedModelTypeError,
)
from geoscan.graph import PipelineGraph
from geoscan.io import ImageContext, open_local_image, open_map_service_image
from geoscan.progress import ProgressObserver, TqdmProgressDisplay
from geoscan.region_filter import FilterMethod, RegionFilter, build_region_filter
from geoscan.tiling import plan_windows
from geoscan.transforms import AffineTransform, ProjTransform, TransformationChain, compose, invert

__all__ = [
    "__version__",
    "GeoScan",
    "RunConfig",
    "SourceKind",
    "BoundingBox",
    "Size",
    "Step",
    "WindowSizeStep",
    "SpatialReference",
    "AffineTransform",
    "ProjTransform",
    "TransformationChain",
    "compose",
    "invert",
    "ImageContext",
    "open_local_image",
    "open_map_service_image",
    "plan_windows",
    "FilterMethod",
    "RegionFilter",
    "build_region_filter",
    "ModelCategory",
    "ModelMetadata",
    "ModelPackage",
    "RasterToPolygonConfig",
    "resolve_model",
    "PipelineGraph",
    "assemble_pipeline",
    "ProgressObserver",
    "TqdmProgressDisplay",
    "GeoScanError",
    "ConfigurationError",
    "UnknownFilterActionError",
    "CRSError",
    "SpatialReferenceMismatchError",
    "UnsupportedGeometryError",
    "TransformError",
    "NonInvertibleTransformError",
    "EmptyIntersectionError",
    "ModelError",
    "UnsupportedModelTypeError",
    "SourceError",
    "PipelineError",
    "GraphFrozenError",
    "GeoScanWarning",
    "LocalImageWarning",
    "LabelFilterWarning",
]
