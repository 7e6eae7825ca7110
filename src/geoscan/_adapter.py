"""Model package adapter isolating model loading from pipeline planning.

This module implements the adapter boundary between geoscan and whatever
inference runtime loads the packaged model. The runtime is injected as a
ModelLoader callable; geoscan only relies on the returned handle exposing
a ModelMetadata and, for segmentation models, accepting a raster-to-polygon
configuration. No runtime types leak beyond this boundary.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from geoscan._typing import BoundingBox, Size, Step
from geoscan.exceptions import ConfigurationError, ModelError, UnsupportedModelTypeError


class ModelCategory(str, Enum):
    DETECTION = "detection"
    SEGMENTATION = "segmentation"

    @classmethod
    def parse(cls, value: str | ModelCategory) -> ModelCategory:
        """Parse a category string from model metadata.

        Raises:
            UnsupportedModelTypeError: For unknown categories.
        """
        if isinstance(value, ModelCategory):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as err:
            valid = ", ".join(c.value for c in cls)
            raise UnsupportedModelTypeError(
                f"Unsupported model category '{value}'. Valid categories: {valid}",
                category=value,
            ) from err


@dataclass(frozen=True)
class ModelMetadata:
    """Read-only description of a loaded model.

    ``model_size`` is the native (width, height) input size and
    ``bounding_box`` the lon/lat extent of the training data.
    """

    name: str
    version: str
    time_created: float
    description: str
    model_size: Size
    color_mode: str
    category: ModelCategory
    labels: tuple[str, ...]
    bounding_box: BoundingBox

    def __post_init__(self) -> None:
        if self.model_size.width <= 0 or self.model_size.height <= 0:
            raise ModelError(f"Model size must be positive, got {tuple(self.model_size)}.", model=self.name)

    @property
    def aspect_ratio(self) -> float:
        """Height over width of the model input."""
        return self.model_size.height / self.model_size.width

    @property
    def is_segmentation(self) -> bool:
        return self.category is ModelCategory.SEGMENTATION

    @property
    def created(self) -> datetime:
        return datetime.fromtimestamp(self.time_created, tz=timezone.utc)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ModelMetadata:
        """Build metadata from a package's metadata document.

        Expected keys: name, version, time_created, description,
        model_size ([width, height]), color_mode, category, labels and
        bounding_box ([west, south, east, north]).

        Raises:
            ModelError: If a required key is missing or malformed.
        """
        try:
            width, height = data["model_size"]
            return cls(
                name=str(data["name"]),
                version=str(data.get("version", "")),
                time_created=float(data.get("time_created", 0)),
                description=str(data.get("description", "")),
                model_size=Size(int(width), int(height)),
                color_mode=str(data.get("color_mode", "rgb")),
                category=ModelCategory.parse(data["category"]),
                labels=tuple(str(label) for label in data.get("labels", ())),
                bounding_box=BoundingBox(*data.get("bounding_box", (-180.0, -90.0, 180.0, 90.0))),
            )
        except (KeyError, TypeError, ValueError) as err:
            raise ModelError(f"Malformed model metadata: {err}") from err


@dataclass(frozen=True)
class RasterToPolygonConfig:
    """How segmentation rasters are turned into polygons.

    Args:
        method: Contour extraction method name understood by the runtime.
        epsilon: Polygon simplification tolerance in pixels.
        min_area: Polygons smaller than this (pixels squared) are dropped.
    """

    method: str = "simple"
    epsilon: float = 3.0
    min_area: float = 0.0

    def __post_init__(self) -> None:
        if self.epsilon < 0:
            raise ConfigurationError(f"epsilon must not be negative, got {self.epsilon}.")
        if self.min_area < 0:
            raise ConfigurationError(f"min_area must not be negative, got {self.min_area}.")


class ModelHandle(Protocol):
    """A loaded model as returned by a ModelLoader."""

    metadata: ModelMetadata | Mapping[str, Any]


@runtime_checkable
class SegmentationModel(Protocol):
    """Model able to convert its raster output into polygons."""

    def set_raster_to_polygon(self, config: RasterToPolygonConfig) -> None: ...


ModelLoader = Callable[[Any, bool, float], Any]


class ModelPackage:
    """Opaque handle on a packaged model, consumed exactly once.

    Args:
        path: Location of the model package file.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._released = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def released(self) -> bool:
        return self._released

    def open(self) -> Path:
        """Hand the package to a loader.

        Raises:
            ModelError: If the package was already consumed or is missing.
        """
        if self._released:
            raise ModelError(f"Model package '{self._path}' has already been loaded.", path=str(self._path))
        if not self._path.exists():
            raise ModelError(f"Model package not found: '{self._path}'.", path=str(self._path))
        return self._path

    def release(self) -> None:
        self._released = True


def model_default_step(model: Any) -> Callable[[Size], Step] | None:
    """The model's default stride function, if it provides one."""
    default_step = getattr(model, "default_step", None)
    return default_step if callable(default_step) else None


def resolve_model(
    package: ModelPackage,
    loader: ModelLoader,
    use_gpu: bool = True,
    max_utilization: float = 0.95,
    raster_to_polygon: RasterToPolygonConfig | None = None,
) -> tuple[Any, ModelMetadata]:
    """Load a model package and pick its category.

    The package handle is released as soon as the loader returns (or
    fails), so a package can never be loaded twice.

    Args:
        package: Model package to consume.
        loader: Runtime callable ``(path, use_gpu, max_utilization) -> model``.
        use_gpu: Whether the runtime may use a GPU.
        max_utilization: Fraction of GPU memory the runtime may claim.
        raster_to_polygon: Conversion attached to segmentation models.

    Returns:
        Tuple of (model handle, ModelMetadata).

    Raises:
        ConfigurationError: If max_utilization is not in (0, 1].
        ModelError: If the package cannot be loaded or has bad metadata.
        UnsupportedModelTypeError: If a segmentation model cannot accept a
            raster-to-polygon conversion.
    """
    if not 0.0 < max_utilization <= 1.0:
        raise ConfigurationError(
            f"max_utilization must be in (0, 1], got {max_utilization}.",
            max_utilization=max_utilization,
        )

    try:
        model = loader(package.open(), use_gpu, max_utilization)
    finally:
        package.release()

    if model is None:
        raise ModelError(f"Loader returned no model for package '{package.path}'.", path=str(package.path))

    raw = getattr(model, "metadata", None)
    if isinstance(raw, ModelMetadata):
        metadata = raw
    elif isinstance(raw, Mapping):
        metadata = ModelMetadata.from_mapping(raw)
    else:
        raise ModelError(f"Model from '{package.path}' exposes no metadata.", path=str(package.path))

    if metadata.is_segmentation:
        if not isinstance(model, SegmentationModel):
            raise UnsupportedModelTypeError(
                f"Model '{metadata.name}' declares the segmentation category but "
                f"{type(model).__name__} cannot convert rasters to polygons.",
                model=metadata.name,
            )
        model.set_raster_to_polygon(raster_to_polygon or RasterToPolygonConfig())

    return model, metadata


def describe_model(metadata: ModelMetadata) -> list[str]:
    """Human-readable summary lines of a model."""
    bbox = metadata.bounding_box
    return [
        f"Model Name: {metadata.name}; Version: {metadata.version}; "
        f"Created: {metadata.created.strftime('%Y-%b-%d %H:%M:%S')}",
        f"Description: {metadata.description}",
        f"Dimensions (pixels): {metadata.model_size.width}x{metadata.model_size.height}; "
        f"Color Mode: {metadata.color_mode}",
        f"Bounding box (lat/lon): ({bbox.y_min}, {bbox.x_min}) : ({bbox.y_max}, {bbox.x_max})",
        f"Labels: {', '.join(metadata.labels)}",
    ]
