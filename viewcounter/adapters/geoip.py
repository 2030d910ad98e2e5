"""
GeoIP country lookup backed by a local MaxMind database.

The raw address is only held for the duration of the lookup. It is never
logged or returned.
"""

from __future__ import annotations

import logging
from typing import Any

import geoip2.database
import geoip2.errors

from viewcounter.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class GeoIPCountryLookup:
    """Resolve raw addresses to ISO country codes with geoip2."""

    def __init__(self, db_path: str | None = None, reader: Any = None) -> None:
        if reader is None:
            if not db_path:
                raise ConfigurationError("A GeoIP database path is required")
            try:
                reader = geoip2.database.Reader(db_path)
            except (OSError, ValueError) as e:
                raise ConfigurationError(f"Cannot open GeoIP database {db_path}: {e}") from e
            logger.info("GeoIP database loaded from %s", db_path)
        self._reader = reader

    def country(self, ip: str) -> str | None:
        if not ip:
            return None
        try:
            resp = self._reader.country(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return None
        return resp.country.iso_code or resp.registered_country.iso_code

    def close(self) -> None:
        self._reader.close()
