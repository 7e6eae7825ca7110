"""Spatial reference handling and cached CRS transformers.

This module wraps pyproj CRS objects in a SpatialReference value that can
also represent a "local" space with no geographic meaning, which is what
an un-georeferenced image or vector file carries. Conversions between two
references are produced as ProjTransform links for transform chains.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, ClassVar

from pyproj import CRS, Transformer

from geoscan.exceptions import CRSError, SpatialReferenceMismatchError

if TYPE_CHECKING:
    from geoscan.transforms import ProjTransform


@lru_cache(maxsize=32)
def get_transformer(src_crs: str, dst_crs: str) -> Transformer:
    """Get a cached pyproj Transformer for CRS conversion.

    Args:
        src_crs: Source CRS as EPSG string or WKT.
        dst_crs: Destination CRS as EPSG string or WKT.

    Returns:
        Cached Transformer instance with always_xy=True.

    Raises:
        CRSError: If either CRS string is invalid.
    """
    try:
        src = CRS.from_user_input(src_crs)
    except Exception as exc:
        raise CRSError(f"Invalid source CRS: '{src_crs}'. Error: {exc}") from exc

    try:
        dst = CRS.from_user_input(dst_crs)
    except Exception as exc:
        raise CRSError(f"Invalid destination CRS: '{dst_crs}'. Error: {exc}") from exc

    return Transformer.from_crs(src, dst, always_xy=True)


def validate_crs(crs: CRS | str | None) -> CRS | None:
    """Validate a CRS value.

    Args:
        crs: CRS to validate. Can be pyproj.CRS, EPSG string, WKT, or None.

    Returns:
        Validated pyproj.CRS instance, or None for local space.

    Raises:
        CRSError: If the CRS string is invalid.
    """
    if crs is None or isinstance(crs, CRS):
        return crs

    if isinstance(crs, str):
        try:
            return CRS.from_user_input(crs)
        except Exception as exc:
            raise CRSError(
                f"Invalid CRS string: '{crs}'. "
                f"Provide a valid EPSG code (e.g., 'EPSG:4326') or WKT string. "
                f"Error: {exc}"
            ) from exc

    raise CRSError(f"CRS must be a pyproj.CRS, EPSG string, or None, got {type(crs).__name__}")


@dataclass(frozen=True)
class SpatialReference:
    """A coordinate system, or the absence of one.

    ``SpatialReference.LOCAL`` describes data with no geographic meaning
    (for example pixel space of an un-georeferenced image).
    ``SpatialReference.WGS84`` is EPSG:4326 with lon/lat axis order.

    Two references are compatible when both are local or both are real
    coordinate systems; only compatible references can be converted.
    """

    crs: CRS | None = None

    LOCAL: ClassVar[SpatialReference]
    WGS84: ClassVar[SpatialReference]

    @classmethod
    def from_user_input(cls, value: CRS | str | SpatialReference | None) -> SpatialReference:
        """Build a reference from a pyproj CRS, EPSG/WKT string or None."""
        if isinstance(value, SpatialReference):
            return value
        return cls(validate_crs(value))

    @property
    def is_local(self) -> bool:
        return self.crs is None

    @property
    def is_geographic(self) -> bool:
        return self.crs is not None and self.crs.is_geographic

    def is_compatible(self, other: SpatialReference) -> bool:
        return self.is_local == other.is_local

    def to_wkt(self) -> str | None:
        return None if self.crs is None else self.crs.to_wkt()

    def from_(self, other: SpatialReference) -> ProjTransform:
        """Transform taking coordinates in ``other`` into this reference.

        Raises:
            SpatialReferenceMismatchError: If either reference is local.
        """
        from geoscan.transforms import ProjTransform

        if self.is_local or other.is_local:
            raise SpatialReferenceMismatchError(
                f"Cannot convert between {other} and {self}: local references have no geographic conversion.",
                source=str(other),
                target=str(self),
            )
        return ProjTransform(other.crs, self.crs)

    def from_latlon(self) -> ProjTransform:
        """Transform taking WGS84 lon/lat coordinates into this reference."""
        return self.from_(SpatialReference.WGS84)

    def __str__(self) -> str:
        if self.crs is None:
            return "LOCAL"
        epsg = self.crs.to_epsg()
        return f"EPSG:{epsg}" if epsg is not None else self.crs.name


SpatialReference.LOCAL = SpatialReference(None)
SpatialReference.WGS84 = SpatialReference(CRS.from_epsg(4326))
