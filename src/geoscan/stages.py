"""Typed configuration for every pipeline stage.

Each stage of the dataflow graph is described by a frozen dataclass that
declares its input and output ports and validates its settings when it is
constructed. A bad value therefore fails while the graph is assembled,
not when the execution engine first reads it.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

from geoscan._adapter import ModelCategory
from geoscan._typing import BoundingBox, Size, WindowSizeStep
from geoscan.crs import SpatialReference
from geoscan.exceptions import ConfigurationError
from geoscan.export import TOP_N_CATEGORIES, TOP_N_FIELD, Field, FieldDefinition, GeometryType, OpenMode
from geoscan.transforms import Transform

if TYPE_CHECKING:
    from geoscan.region_filter import RegionFilter


class PredictionGeometry(str, Enum):
    """Shape of the predictions flowing between detector and feature stages."""

    BOX = "box"
    POLYGON = "polygon"

    @classmethod
    def for_category(cls, category: ModelCategory) -> PredictionGeometry:
        return cls.POLYGON if category is ModelCategory.SEGMENTATION else cls.BOX


class LabelFilterMode(str, Enum):
    INCLUDE = "include"
    EXCLUDE = "exclude"


def _require_fraction(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ConfigurationError(f"{name} must be in [0, 1], got {value}.", **{name: value})


def _require_non_negative(name: str, value: int) -> None:
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}.", **{name: value})


@dataclass(frozen=True)
class StageConfig:
    """Base class: port declarations shared by every stage configuration."""

    INPUTS: ClassVar[tuple[str, ...]] = ()
    OUTPUTS: ClassVar[tuple[str, ...]] = ()


# ---------------------------------------------------------------------------
# Raster stages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LocalBlockSourceConfig(StageConfig):
    """Reads raster blocks from a local file."""

    OUTPUTS: ClassVar[tuple[str, ...]] = ("blocks",)

    path: str

    def __post_init__(self) -> None:
        if not self.path:
            raise ConfigurationError("Block source path must not be empty.")


@dataclass(frozen=True)
class MapServiceBlockSourceConfig(StageConfig):
    """Fetches raster blocks from a tiled map service."""

    OUTPUTS: ClassVar[tuple[str, ...]] = ("blocks",)

    config: Any
    max_connections: int = 10

    def __post_init__(self) -> None:
        if self.max_connections <= 0:
            raise ConfigurationError(f"max_connections must be positive, got {self.max_connections}.")


@dataclass(frozen=True)
class RemoveAlphaConfig(StageConfig):
    """Drops the band with the given color interpretation."""

    INPUTS: ClassVar[tuple[str, ...]] = ("blocks",)
    OUTPUTS: ClassVar[tuple[str, ...]] = ("blocks",)

    band_to_remove: str = "alpha"


@dataclass(frozen=True)
class BlockCacheConfig(StageConfig):
    INPUTS: ClassVar[tuple[str, ...]] = ("blocks",)
    OUTPUTS: ClassVar[tuple[str, ...]] = ("subsets",)

    buffer_size: int = 0

    def __post_init__(self) -> None:
        _require_non_negative("buffer_size", self.buffer_size)


@dataclass(frozen=True)
class SubsetWithBorderConfig(StageConfig):
    """Pads subsets; ``padded_size`` is only set when windows are resampled."""

    INPUTS: ClassVar[tuple[str, ...]] = ("subsets",)
    OUTPUTS: ClassVar[tuple[str, ...]] = ("subsets",)

    padded_size: Size | None = None


@dataclass(frozen=True)
class SubsetRegionFilterConfig(StageConfig):
    INPUTS: ClassVar[tuple[str, ...]] = ("subsets",)
    OUTPUTS: ClassVar[tuple[str, ...]] = ("subsets",)

    region_filter: RegionFilter


@dataclass(frozen=True)
class SlidingWindowConfig(StageConfig):
    INPUTS: ClassVar[tuple[str, ...]] = ("subsets",)
    OUTPUTS: ClassVar[tuple[str, ...]] = ("subsets",)

    window_sizes: tuple[WindowSizeStep, ...]
    resampled_size: Size
    aoi: BoundingBox
    buffer_size: int = 0

    def __post_init__(self) -> None:
        if not self.window_sizes:
            raise ConfigurationError("Sliding window needs at least one window size.")
        if self.aoi.is_empty():
            raise ConfigurationError(f"Sliding window area of interest {self.aoi.bounds} is empty.")
        _require_non_negative("buffer_size", self.buffer_size)


# ---------------------------------------------------------------------------
# Prediction stages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DetectorConfig(StageConfig):
    INPUTS: ClassVar[tuple[str, ...]] = ("subsets",)
    OUTPUTS: ClassVar[tuple[str, ...]] = ("predictions",)

    model: Any
    confidence: float
    geometry: PredictionGeometry = PredictionGeometry.BOX

    def __post_init__(self) -> None:
        _require_fraction("confidence", self.confidence)


@dataclass(frozen=True)
class LabelFilterConfig(StageConfig):
    INPUTS: ClassVar[tuple[str, ...]] = ("predictions",)
    OUTPUTS: ClassVar[tuple[str, ...]] = ("predictions",)

    labels: tuple[str, ...]
    mode: LabelFilterMode
    geometry: PredictionGeometry = PredictionGeometry.BOX

    def __post_init__(self) -> None:
        if not self.labels:
            raise ConfigurationError("Label filter needs at least one label.")


@dataclass(frozen=True)
class NmsConfig(StageConfig):
    INPUTS: ClassVar[tuple[str, ...]] = ("predictions",)
    OUTPUTS: ClassVar[tuple[str, ...]] = ("predictions",)

    overlap_threshold: float
    geometry: PredictionGeometry = PredictionGeometry.BOX

    def __post_init__(self) -> None:
        _require_fraction("overlap_threshold", self.overlap_threshold)


@dataclass(frozen=True)
class BoxToPolygonConfig(StageConfig):
    INPUTS: ClassVar[tuple[str, ...]] = ("predictions",)
    OUTPUTS: ClassVar[tuple[str, ...]] = ("predictions",)


@dataclass(frozen=True)
class PredictionToFeatureConfig(StageConfig):
    INPUTS: ClassVar[tuple[str, ...]] = ("predictions",)
    OUTPUTS: ClassVar[tuple[str, ...]] = ("features",)

    geometry_type: GeometryType
    pixel_to_proj: Transform
    top_n_name: str = TOP_N_FIELD
    top_n_categories: int = TOP_N_CATEGORIES
    extra_fields: Mapping[str, Field] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.top_n_categories <= 0:
            raise ConfigurationError(f"top_n_categories must be positive, got {self.top_n_categories}.")


# ---------------------------------------------------------------------------
# Feature stages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WfsExtractorConfig(StageConfig):
    """Copies catalog fields from a web feature service onto features."""

    INPUTS: ClassVar[tuple[str, ...]] = ("features",)
    OUTPUTS: ClassVar[tuple[str, ...]] = ("features",)

    url: str
    input_reference: SpatialReference
    field_names: tuple[str, ...]
    default_fields: Mapping[str, Field] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.field_names:
            raise ConfigurationError("WFS extractor needs at least one field name.")


@dataclass(frozen=True)
class FeatureSinkConfig(StageConfig):
    INPUTS: ClassVar[tuple[str, ...]] = ("features",)

    spatial_reference: SpatialReference
    output_reference: SpatialReference
    geometry_type: GeometryType
    path: str
    layer_name: str
    output_format: str
    open_mode: OpenMode
    field_definitions: tuple[FieldDefinition, ...]

    def __post_init__(self) -> None:
        if not self.path:
            raise ConfigurationError("Feature sink path must not be empty.")
        names = [definition.name for definition in self.field_definitions]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate output field names: {duplicates}.", fields=duplicates)
