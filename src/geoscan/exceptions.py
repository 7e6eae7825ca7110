"""Exception hierarchy for geoscan.

All custom exceptions inherit from GeoScanError to enable catch-all
error handling. Every error raised while building a pipeline is fatal:
each one describes a structurally invalid configuration, so nothing is
retried and no partial graph is ever handed to an execution engine.
"""

from __future__ import annotations


class GeoScanError(Exception):
    """Base exception for all geoscan errors.

    Keyword arguments are stored on ``context`` so callers can inspect the
    offending file, size or stage without parsing the message.
    """

    def __init__(self, message: str = "", **kwargs: object) -> None:
        self.context = kwargs
        super().__init__(message)


class ConfigurationError(GeoScanError):
    """Raised for mismatched or out-of-range user-supplied settings.

    This covers window size/step lists that cannot be paired, sizes that
    do not fit within the model, and missing credentials or tokens.
    """

    pass


class UnknownFilterActionError(ConfigurationError):
    """Raised when a region filter action is neither include nor exclude."""

    pass


class CRSError(GeoScanError):
    """Raised for coordinate reference system issues.

    This covers invalid CRS strings and projection failures.
    """

    pass


class SpatialReferenceMismatchError(CRSError):
    """Raised when two datasets cannot be brought into a common reference.

    A local (non-geographic) image can only be combined with local vector
    data, and vice versa.
    """

    pass


class UnsupportedGeometryError(GeoScanError):
    """Raised when a geometry is not of the expected type.

    Region filter files must only contain polygons.
    """

    pass


class TransformError(GeoScanError):
    """Raised for failures while building or applying coordinate transforms."""

    pass


class NonInvertibleTransformError(TransformError):
    """Raised when inverting a transform chain with a non-invertible link."""

    pass


class EmptyIntersectionError(GeoScanError):
    """Raised when a bounding box does not overlap the image extent."""

    pass


class ModelError(GeoScanError):
    """Raised for model package loading or configuration issues."""

    pass


class UnsupportedModelTypeError(ModelError):
    """Raised when the model category does not match the expected type.

    A model declaring the segmentation category must support attaching a
    raster-to-polygon conversion.
    """

    pass


class SourceError(GeoScanError):
    """Raised when a raster source cannot be opened or described."""

    pass


class PipelineError(GeoScanError):
    """Raised when the assembled stage graph is not valid.

    This covers dangling input ports, cycles, duplicate stage names and
    connections to unknown ports.
    """

    pass


class GraphFrozenError(PipelineError):
    """Raised when a graph is modified after it has been frozen."""

    pass


class GeoScanWarning(UserWarning):
    """Base class for geoscan warnings."""

    pass


class LocalImageWarning(GeoScanWarning):
    """Warning issued when an image has no conversion to WGS84.

    Output stays in the image's native space and options requiring a
    geographic conversion, such as a lat/lon bounding box, are ignored.
    """

    pass


class LabelFilterWarning(GeoScanWarning):
    """Warning issued when both include and exclude label lists are given.

    The exclude list takes precedence and the include list is ignored.
    """

    pass
