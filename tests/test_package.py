"""Tests for package installation and basic imports."""

from __future__ import annotations

import re


def test_import_geoscan():
    """Importing geoscan should succeed."""
    import geoscan

    assert geoscan is not None


def test_version_is_semver():
    """geoscan.__version__ should be a valid semver string."""
    import geoscan

    version = geoscan.__version__
    assert isinstance(version, str)
    assert re.match(r"^\d+\.\d+\.\d+", version), f"Version '{version}' is not a valid semver string"


def test_import_geoscan_class():
    """from geoscan import GeoScan should work."""
    from geoscan import GeoScan

    assert GeoScan is not None


def test_public_names_resolve():
    """Every name in __all__ should be importable from the package."""
    import geoscan

    missing = [name for name in geoscan.__all__ if not hasattr(geoscan, name)]
    assert missing == []


def test_no_star_imports():
    """__init__.py should not use star imports."""
    import inspect

    import geoscan

    source = inspect.getsource(geoscan)
    assert "import *" not in source, "__init__.py contains star imports"
