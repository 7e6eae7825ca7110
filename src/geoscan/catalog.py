"""Catalog lookup of detected features through a web feature service.

When a catalog id is configured, every output feature is stamped with the
catalog identifier of the imagery it was detected in, queried from the
imagery provider's WFS endpoint.
"""

from __future__ import annotations

import logging
from enum import Enum
from urllib.parse import quote, urlencode, urlsplit, urlunsplit

from geoscan.config import RunConfig, split_credentials
from geoscan.crs import SpatialReference
from geoscan.exceptions import ConfigurationError
from geoscan.export import Field, FieldType
from geoscan.stages import WfsExtractorConfig

logger = logging.getLogger(__name__)

WFS_TYPENAME = "DigitalGlobe:FinishedFeature"
WFS_VERSION = "1.1.0"
WFS_SRS_NAME = "EPSG:3857"

CATALOG_FIELD = "legacyId"
UNCATALOGED = "uncataloged"


class CatalogService(str, Enum):
    DGCS = "dgcs"
    EVWHS = "evwhs"

    @property
    def base_url(self) -> str:
        if self is CatalogService.DGCS:
            return "https://services.digitalglobe.com/catalogservice/wfsaccess"
        return "https://evwhs.digitalglobe.com/catalogservice/wfsaccess"


def catalog_service(config: RunConfig) -> CatalogService | None:
    """The catalog service selected by the configured catalog id, if any."""
    if config.dgcs_catalog_id:
        return CatalogService.DGCS
    if config.evwhs_catalog_id:
        return CatalogService.EVWHS
    return None


def build_wfs_url(service: CatalogService, token: str, credentials: str) -> str:
    """GetFeature URL with credentials embedded as URL user info.

    Raises:
        ConfigurationError: If the credentials are not ``user:password``.
    """
    user, password = split_credentials(credentials)
    query = {
        "service": "wfs",
        "version": WFS_VERSION,
        "connectid": token,
        "request": "getFeature",
        "typeName": WFS_TYPENAME,
        "srsName": WFS_SRS_NAME,
    }
    base = urlsplit(service.base_url)
    netloc = f"{quote(user, safe='')}:{quote(password, safe='')}@{base.netloc}"
    return urlunsplit((base.scheme, netloc, base.path, urlencode(query), ""))


def build_catalog_extractor(config: RunConfig, input_reference: SpatialReference) -> WfsExtractorConfig | None:
    """Configuration of the catalog field extractor stage.

    WFS credentials fall back to the imagery credentials.

    Returns:
        WfsExtractorConfig, or None when no catalog id is configured.

    Raises:
        ConfigurationError: If no credentials or no token are available.
    """
    service = catalog_service(config)
    if service is None:
        return None

    credentials = config.wfs_credentials or config.credentials
    if not credentials:
        raise ConfigurationError(f"No credentials specified for the {service.value.upper()} web feature service.")
    if not config.token:
        raise ConfigurationError(f"No token specified for the {service.value.upper()} web feature service.")

    logger.info("Connecting to %s web feature service...", service.value.upper())

    return WfsExtractorConfig(
        url=build_wfs_url(service, config.token, credentials),
        input_reference=input_reference,
        field_names=(CATALOG_FIELD,),
        default_fields={CATALOG_FIELD: Field(FieldType.STRING, UNCATALOGED)},
    )
