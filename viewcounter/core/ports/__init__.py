# viewcounter ports (Protocol interfaces)
# Abstract interfaces for adapters; no implementations here

from viewcounter.core.ports.clock import TimePort
from viewcounter.core.ports.db import ConnectionPoolPort
from viewcounter.core.ports.geo import CountryLookupPort

__all__ = [
    "ConnectionPoolPort",
    "CountryLookupPort",
    "TimePort",
]
