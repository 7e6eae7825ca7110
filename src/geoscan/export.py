"""Output feature schema and per-feature field values.

This module builds the field definitions handed to the feature sink and
the extra field values the prediction-to-feature stage stamps on every
detected feature (timestamp, producer information, user-supplied pairs).
"""

from __future__ import annotations

import getpass
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from geoscan.exceptions import ConfigurationError

APP_NAME = "geoscan"

# Name and size of the field holding the N best categories of a prediction
TOP_N_FIELD = "top_five"
TOP_N_CATEGORIES = 5


class FieldType(str, Enum):
    STRING = "string"
    REAL = "real"
    INTEGER = "integer"
    DATE = "date"


class GeometryType(str, Enum):
    """Geometry written for every detection."""

    POINT = "point"
    POLYGON = "polygon"


class OpenMode(str, Enum):
    APPEND = "append"
    OVERWRITE = "overwrite"


@dataclass(frozen=True)
class FieldDefinition:
    """A typed, named and optionally size-bounded output field."""

    type: FieldType
    name: str
    max_length: int | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Field name must not be empty.")
        if self.max_length is not None and self.max_length <= 0:
            raise ConfigurationError(
                f"Field '{self.name}' max_length must be positive, got {self.max_length}.",
                field=self.name,
            )


@dataclass(frozen=True)
class Field:
    """A typed field value."""

    type: FieldType
    value: Any


def parse_extra_fields(extra_fields: Sequence[str]) -> list[tuple[str, str]]:
    """Split a flat ``[name, value, name, value, ...]`` list into pairs.

    Raises:
        ConfigurationError: If the list has an odd number of entries.
    """
    if len(extra_fields) % 2 != 0:
        raise ConfigurationError(
            f"Extra fields must be given as name/value pairs, got {len(extra_fields)} entries.",
            extra_fields=list(extra_fields),
        )
    return [(extra_fields[i], extra_fields[i + 1]) for i in range(0, len(extra_fields), 2)]


def build_field_definitions(
    producer_info: bool = False,
    catalog: bool = False,
    extra_fields: Sequence[str] = (),
) -> tuple[FieldDefinition, ...]:
    """Field schema of the output layer.

    Args:
        producer_info: Add username, app and app_ver fields.
        catalog: Add the catalog_id field filled by the catalog extractor.
        extra_fields: Flat name/value list; every name becomes a string field.

    Returns:
        Tuple of FieldDefinition in output column order.
    """
    definitions = [
        FieldDefinition(FieldType.STRING, "top_cat", 50),
        FieldDefinition(FieldType.REAL, "top_score"),
        FieldDefinition(FieldType.DATE, "date"),
        FieldDefinition(FieldType.STRING, TOP_N_FIELD, 254),
    ]

    if producer_info:
        definitions.append(FieldDefinition(FieldType.STRING, "username", 50))
        definitions.append(FieldDefinition(FieldType.STRING, "app", 50))
        definitions.append(FieldDefinition(FieldType.STRING, "app_ver", 50))

    if catalog:
        definitions.append(FieldDefinition(FieldType.STRING, "catalog_id"))

    for name, _value in parse_extra_fields(extra_fields):
        definitions.append(FieldDefinition(FieldType.STRING, name))

    return tuple(definitions)


def build_extra_fields(
    producer_info: bool = False,
    extra_fields: Sequence[str] = (),
    now: datetime | None = None,
    username: str | None = None,
) -> dict[str, Field]:
    """Constant field values stamped on every output feature.

    Args:
        producer_info: Include the login user, app name and version.
        extra_fields: Flat name/value list of user-supplied string fields.
        now: Timestamp for the ``date`` field. Current UTC time if None.
        username: Producer name. Looked up from the login user if None.

    Returns:
        Mapping of field name to Field.
    """
    from geoscan import __version__

    if now is None:
        now = datetime.now(timezone.utc)

    fields: dict[str, Field] = {"date": Field(FieldType.DATE, int(now.timestamp()))}

    if producer_info:
        fields["username"] = Field(FieldType.STRING, username if username is not None else getpass.getuser())
        fields["app"] = Field(FieldType.STRING, APP_NAME)
        fields["app_ver"] = Field(FieldType.STRING, __version__)

    for name, value in parse_extra_fields(extra_fields):
        fields[name] = Field(FieldType.STRING, value)

    return fields
