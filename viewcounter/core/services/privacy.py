"""
Privacy masking for network addresses.

Key behaviors:
- IPv4: last octet zeroed (a.b.c.d -> a.b.c.0)
- IPv6: lowest 64 bits zeroed (first four groups kept, rest replaced by zero groups)
- IPv4-mapped IPv6: embedded IPv4 masked, then re-wrapped (::ffff:a.b.c.0)
- Host with port (a.b.c.d:port, [v6]:port): host masked, port dropped
- Anything else passes through unchanged
- Storage guard fails closed: any unmasked IPv4/IPv6 token inside a value is rejected
- Transient visitor digest: SHA-256 of raw IP, user agent and UTC date; never stored

mask_ip is the only transformation applied to an address before it is handed
to the Event Store. Callers must never persist or log the raw value.
"""

from __future__ import annotations

import hashlib
import ipaddress
import re
from datetime import UTC, date, datetime

from viewcounter.core.errors import PrivacyInvariantViolation

_IPV4_RE = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$")
_IPV4_PORT_RE = re.compile(r"^(\d{1,3}(?:\.\d{1,3}){3}):\d{1,5}$")
_BRACKETED_RE = re.compile(r"^\[([^\]]+)\](?::\d{1,5})?$")
# IPv4 anywhere inside a value, not part of a longer dotted run
_IPV4_TOKEN_RE = re.compile(r"(?<![\d.])(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})(?![\d.])")
_IPV6_TOKEN_RE = re.compile(r"[0-9A-Fa-f:.]*:[0-9A-Fa-f:.]*")
_MAPPED_PREFIX = "::ffff:"
_LOW_64_BITS = (1 << 64) - 1


def _mask_ipv4(ip: str) -> str:
    match = _IPV4_RE.match(ip)
    if not match:
        return ip
    return f"{match.group(1)}.{match.group(2)}.{match.group(3)}.0"


def _ipv6_groups(ip: str, addr: ipaddress.IPv6Address) -> list[str]:
    """
    Return the eight groups of an IPv6 address.

    Uncompressed input keeps its textual groups; compressed or dotted forms
    fall back to the exploded representation.
    """
    parts = ip.split(":")
    if len(parts) == 8 and "." not in ip and all(parts):
        return parts
    return addr.exploded.split(":")


def split_host_port(value: str) -> str | None:
    """
    Return the host part of a bracketed or ported address, or None.

    Handles "[v6]", "[v6]:port" and "a.b.c.d:port"; bare addresses and
    anything else give None.
    """
    match = _BRACKETED_RE.match(value) or _IPV4_PORT_RE.match(value)
    return match.group(1) if match else None


def client_address(value: str | None) -> str | None:
    """
    Normalize a header or socket value to a bare IP address.

    Surrounding whitespace, brackets and a trailing port are removed.
    Returns None unless what remains is a valid IPv4 or IPv6 address.
    """
    if not value:
        return None
    candidate = value.strip()
    host = split_host_port(candidate) or candidate
    try:
        ipaddress.ip_address(host.split("%", 1)[0])
    except ValueError:
        return None
    return host


def mask_ip(ip: str | None) -> str | None:
    """
    Mask a raw network address so it no longer identifies a single client.

    A port (or IPv6 brackets) around the address is dropped and the host
    masked. Unrecognized input (empty, malformed, hostnames) is returned
    unchanged.
    """
    if not ip:
        return ip

    candidate = ip.strip()

    host = split_host_port(candidate)
    if host is not None:
        return mask_ip(host) if client_address(host) else ip

    if _IPV4_RE.match(candidate):
        return _mask_ipv4(candidate)

    if ":" not in candidate:
        return ip

    # Zone ids (fe80::1%eth0) carry no identity once the interface bits are gone
    bare = candidate.split("%", 1)[0]
    try:
        addr = ipaddress.IPv6Address(bare)
    except ValueError:
        return ip

    if addr.ipv4_mapped is not None:
        return f"{_MAPPED_PREFIX}{_mask_ipv4(str(addr.ipv4_mapped))}"

    groups = _ipv6_groups(bare, addr)
    return ":".join(groups[:4]) + ":0:0:0:0"


def _ipv6_unmasked(token: str) -> bool | None:
    """True/False for an IPv6 token; None when the token is not an address."""
    try:
        addr = ipaddress.IPv6Address(token)
    except ValueError:
        return None
    if addr.ipv4_mapped is not None:
        return addr.ipv4_mapped.packed[-1] != 0
    return int(addr) & _LOW_64_BITS != 0


def looks_unmasked(value: object) -> bool:
    """
    Check whether a value still contains an identifying address.

    Every IPv4 and IPv6 token inside the value is inspected, so ports,
    brackets or surrounding text do not hide an address. IPv4 counts as
    masked when the last octet is zero; IPv6 when the low 64 bits are zero
    (or, for mapped addresses, the embedded IPv4 is masked).
    """
    if not isinstance(value, str) or not value:
        return False

    for match in _IPV4_TOKEN_RE.finditer(value):
        octets = [int(g) for g in match.groups()]
        if all(o <= 255 for o in octets) and octets[3] != 0:
            return True

    for token in _IPV6_TOKEN_RE.findall(value):
        if token.count(":") < 2:
            continue
        verdict = _ipv6_unmasked(token)
        if verdict is None:
            # A trailing ":port" may be glued onto an unbracketed address
            head, _, port = token.rpartition(":")
            verdict = _ipv6_unmasked(head) if port.isdigit() else None
        if verdict:
            return True
    return False


def is_masked(value: str | None) -> bool:
    """Check whether a value is safe to persist in the address column."""
    return not looks_unmasked(value)


def ensure_masked(value: str | None) -> str | None:
    """
    Guard for storage calls.

    Raises PrivacyInvariantViolation if an unmasked address reaches storage.
    The message never contains the offending value.
    """
    if looks_unmasked(value):
        raise PrivacyInvariantViolation("Unmasked network address reached a storage call")
    return value


def transient_visitor_digest(
    ip: str,
    user_agent: str,
    *,
    today: date | None = None,
) -> str:
    """
    Ephemeral visitor grouping key.

    Combines raw IP, raw user agent and the current UTC date through SHA-256.
    The digest rotates daily and none of its inputs are persisted.
    """
    day = today or datetime.now(UTC).date()
    material = f"{ip}|{user_agent}|{day.isoformat()}"
    return hashlib.sha256(material.encode()).hexdigest()
