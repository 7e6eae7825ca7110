"""Tests for the exception hierarchy."""

from __future__ import annotations

import warnings

import pytest

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


class TestExceptionHierarchy:
    """Test that exceptions form the correct inheritance tree."""

    def test_geoscan_error_inherits_from_exception(self):
        assert issubclass(GeoScanError, Exception)

    def test_unknown_filter_action_is_configuration_error(self):
        assert issubclass(UnknownFilterActionError, ConfigurationError)

    def test_mismatch_is_crs_error(self):
        assert issubclass(SpatialReferenceMismatchError, CRSError)

    def test_non_invertible_is_transform_error(self):
        assert issubclass(NonInvertibleTransformError, TransformError)

    def test_unsupported_model_type_is_model_error(self):
        assert issubclass(UnsupportedModelTypeError, ModelError)

    def test_graph_frozen_is_pipeline_error(self):
        assert issubclass(GraphFrozenError, PipelineError)

    def test_warnings_are_user_warnings(self):
        assert issubclass(GeoScanWarning, UserWarning)
        assert issubclass(LocalImageWarning, GeoScanWarning)
        assert issubclass(LabelFilterWarning, GeoScanWarning)


class TestCatchAll:
    """Test that all exceptions can be caught by catching GeoScanError."""

    @pytest.mark.parametrize(
        "exc_class",
        [
            ConfigurationError,
            UnknownFilterActionError,
            CRSError,
            SpatialReferenceMismatchError,
            UnsupportedGeometryError,
            TransformError,
            NonInvertibleTransformError,
            EmptyIntersectionError,
            ModelError,
            UnsupportedModelTypeError,
            SourceError,
            PipelineError,
            GraphFrozenError,
        ],
    )
    def test_catch_all_with_geoscan_error(self, exc_class):
        with pytest.raises(GeoScanError):
            raise exc_class("test message")


class TestErrorContext:
    """Keyword arguments are kept on the exception."""

    def test_context_is_stored(self):
        err = ConfigurationError("bad size", window_size=600, model_width=512)
        assert err.context == {"window_size": 600, "model_width": 512}
        assert str(err) == "bad size"

    def test_context_defaults_to_empty(self):
        assert GeoScanError("oops").context == {}

    def test_warning_can_be_filtered(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            warnings.warn("no reference", LocalImageWarning, stacklevel=1)
        assert issubclass(caught[0].category, GeoScanWarning)
