"""Per-run configuration.

RunConfig gathers every option of a detection run in one place. It is
populated by an external CLI or by library callers, and validate() runs
the checks that need no I/O so bad settings fail before any image, model
or filter file is opened.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from geoscan._typing import BoundingBox
from geoscan.exceptions import ConfigurationError
from geoscan.export import GeometryType, OpenMode, parse_extra_fields


class SourceKind(str, Enum):
    """Where the imagery comes from."""

    LOCAL = "local"
    DGCS = "dgcs"
    EVWHS = "evwhs"
    MAPS_API = "maps-api"
    TILE_JSON = "tile-json"

    @property
    def is_remote(self) -> bool:
        return self is not SourceKind.LOCAL

    @property
    def uses_wmts(self) -> bool:
        """Whether the service is addressed through a WMTS tile matrix set."""
        return self in (SourceKind.DGCS, SourceKind.EVWHS)


def split_credentials(credentials: str) -> tuple[str, str]:
    """Split ``user:password`` credentials.

    Raises:
        ConfigurationError: If the string has no ``:`` separator.
    """
    user, sep, password = credentials.partition(":")
    if not sep or not user:
        raise ConfigurationError("Credentials must be given as 'user:password'.")
    return user, password


@dataclass
class RunConfig:
    """All settings of a single detection run.

    Percent-valued options (confidence, overlap, max_utilization) are kept
    in percent as users enter them; the ``*_fraction`` properties convert
    them for the stages.
    """

    # Imagery
    source: SourceKind = SourceKind.LOCAL
    image: str | None = None
    bbox: BoundingBox | None = None  # WGS84 lon/lat
    map_id: str | None = None
    token: str = ""
    credentials: str = ""
    url: str | None = None
    use_tiles: bool = False
    zoom: int = 18
    max_connections: int = 10
    max_cache_size: int = 0

    # Model
    model_package: str | None = None
    use_cpu: bool = False
    max_utilization: float = 95.0
    confidence: float = 95.0
    window_size: list[int] = field(default_factory=list)
    window_step: list[int] = field(default_factory=list)
    resampled_size: int | None = None

    # Segmentation raster-to-polygon conversion
    method: str = "simple"
    epsilon: float = 3.0
    min_area: float = 0.0

    # Filtering
    nms: bool = False
    overlap: float = 30.0
    include_labels: list[str] = field(default_factory=list)
    exclude_labels: list[str] = field(default_factory=list)
    filter_definition: list[tuple[str, list[str]]] = field(default_factory=list)

    # Output
    geometry_type: GeometryType = GeometryType.POLYGON
    producer_info: bool = False
    extra_fields: list[str] = field(default_factory=list)
    dgcs_catalog_id: str | None = None
    evwhs_catalog_id: str | None = None
    wfs_credentials: str = ""
    append: bool = False
    output_path: str | None = None
    layer_name: str = "detections"
    output_format: str = "shp"
    quiet: bool = False

    @property
    def confidence_fraction(self) -> float:
        return self.confidence / 100

    @property
    def overlap_fraction(self) -> float:
        return self.overlap / 100

    @property
    def max_utilization_fraction(self) -> float:
        return self.max_utilization / 100

    @property
    def use_gpu(self) -> bool:
        return not self.use_cpu

    @property
    def open_mode(self) -> OpenMode:
        return OpenMode.APPEND if self.append else OpenMode.OVERWRITE

    @property
    def catalog_id(self) -> str | None:
        return self.dgcs_catalog_id or self.evwhs_catalog_id

    @property
    def cache_buffer_size(self) -> int:
        """Buffer size shared by the block cache and the sliding window."""
        return self.max_cache_size // 2

    def validate(self) -> None:
        """Run every check that does not need I/O.

        Raises:
            ConfigurationError: Describing the first invalid setting.
        """
        if self.source is SourceKind.LOCAL:
            if not self.image:
                raise ConfigurationError("A local image path is required for the local source.")
        elif self.bbox is None:
            raise ConfigurationError(f"Bounding box must be specified for the {self.source.value} source.")

        if self.source is SourceKind.TILE_JSON and not self.url:
            raise ConfigurationError("A TileJSON url is required for the tile-json source.")
        if self.source is SourceKind.MAPS_API and not self.map_id:
            raise ConfigurationError("A map id is required for the maps-api source.")

        if not self.model_package:
            raise ConfigurationError("A model package path is required.")
        if not self.output_path:
            raise ConfigurationError("An output path is required.")

        for name in ("confidence", "overlap"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ConfigurationError(f"{name} must be a percentage in [0, 100], got {value}.", **{name: value})
        if not 0 < self.max_utilization <= 100:
            raise ConfigurationError(
                f"max_utilization must be a percentage in (0, 100], got {self.max_utilization}.",
                max_utilization=self.max_utilization,
            )

        if self.zoom < 0:
            raise ConfigurationError(f"zoom must not be negative, got {self.zoom}.", zoom=self.zoom)
        if self.max_connections <= 0:
            raise ConfigurationError(f"max_connections must be positive, got {self.max_connections}.")
        if self.max_cache_size < 0:
            raise ConfigurationError(f"max_cache_size must not be negative, got {self.max_cache_size}.")
        if self.epsilon < 0 or self.min_area < 0:
            raise ConfigurationError("epsilon and min_area must not be negative.")

        parse_extra_fields(self.extra_fields)

        if self.dgcs_catalog_id and self.evwhs_catalog_id:
            raise ConfigurationError("Only one of dgcs_catalog_id and evwhs_catalog_id may be given.")
        if self.credentials:
            split_credentials(self.credentials)
        if self.wfs_credentials:
            split_credentials(self.wfs_credentials)
        if self.catalog_id:
            service = "DGCS" if self.dgcs_catalog_id else "EVWHS"
            if not (self.wfs_credentials or self.credentials):
                raise ConfigurationError(f"No credentials specified for the {service} web feature service.")
            if not self.token:
                raise ConfigurationError(f"No token specified for the {service} web feature service.")
