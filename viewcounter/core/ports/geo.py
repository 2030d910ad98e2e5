from typing import Protocol


class CountryLookupPort(Protocol):
    def country(self, ip: str) -> str | None:
        """Return the ISO country code for a raw address, or None if unknown."""
        ...

    def close(self) -> None: ...
