"""Tests for the WFS catalog extractor configuration."""

from __future__ import annotations

import logging
from urllib.parse import parse_qs, urlsplit

import pytest

from geoscan.catalog import (
    CATALOG_FIELD,
    UNCATALOGED,
    WFS_TYPENAME,
    CatalogService,
    build_catalog_extractor,
    build_wfs_url,
    catalog_service,
)
from geoscan.crs import SpatialReference
from geoscan.exceptions import ConfigurationError
from geoscan.export import Field, FieldType


class TestBuildWfsUrl:
    """Test the GetFeature URL layout."""

    def test_query(self):
        url = urlsplit(build_wfs_url(CatalogService.DGCS, "tok-123", "user:secret"))
        query = parse_qs(url.query)
        assert query == {
            "service": ["wfs"],
            "version": ["1.1.0"],
            "connectid": ["tok-123"],
            "request": ["getFeature"],
            "typeName": [WFS_TYPENAME],
            "srsName": ["EPSG:3857"],
        }

    def test_credentials_in_user_info(self):
        url = urlsplit(build_wfs_url(CatalogService.EVWHS, "tok", "user:secret"))
        assert url.username == "user"
        assert url.password == "secret"
        assert url.hostname == "evwhs.digitalglobe.com"
        assert url.path == "/catalogservice/wfsaccess"

    def test_special_characters_quoted(self):
        url = build_wfs_url(CatalogService.DGCS, "tok", "me@corp:p@ss/word")
        assert "me%40corp:p%40ss%2Fword@services.digitalglobe.com" in url


class TestBuildCatalogExtractor:
    """Test extractor selection and credential checks."""

    def test_no_catalog_id(self, run_config):
        assert catalog_service(run_config) is None
        assert build_catalog_extractor(run_config, SpatialReference.WGS84) is None

    def test_extractor(self, run_config, caplog):
        run_config.dgcs_catalog_id = "1030010"
        run_config.token = "tok"
        run_config.credentials = "user:secret"

        with caplog.at_level(logging.INFO, logger="geoscan.catalog"):
            extractor = build_catalog_extractor(run_config, SpatialReference.WGS84)

        assert extractor.field_names == (CATALOG_FIELD,)
        assert extractor.default_fields == {CATALOG_FIELD: Field(FieldType.STRING, UNCATALOGED)}
        assert extractor.input_reference == SpatialReference.WGS84
        assert "services.digitalglobe.com" in extractor.url
        assert "Connecting to DGCS web feature service" in caplog.text

    def test_wfs_credentials_take_precedence(self, run_config):
        run_config.evwhs_catalog_id = "1030010"
        run_config.token = "tok"
        run_config.credentials = "imagery:one"
        run_config.wfs_credentials = "wfs:two"
        extractor = build_catalog_extractor(run_config, SpatialReference.WGS84)
        assert urlsplit(extractor.url).username == "wfs"

    def test_missing_credentials(self, run_config):
        run_config.dgcs_catalog_id = "1030010"
        run_config.token = "tok"
        with pytest.raises(ConfigurationError, match="No credentials specified for the DGCS"):
            build_catalog_extractor(run_config, SpatialReference.WGS84)

    def test_missing_token(self, run_config):
        run_config.evwhs_catalog_id = "1030010"
        run_config.credentials = "user:secret"
        with pytest.raises(ConfigurationError, match="No token specified for the EVWHS"):
            build_catalog_extractor(run_config, SpatialReference.WGS84)
