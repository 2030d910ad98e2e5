"""
Client classification from user-agent strings.

Key behaviors:
- Browser, OS and device category detected by ordered pattern rules (first match wins)
- Device category normalized into the closed DeviceType set; unknown -> desktop
- Null or empty user agent -> every field None
- device_size: mobile/wearable -> small, tablet -> medium, anything else -> large

The raw user agent is parsed in memory only; callers persist the parsed fields.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from viewcounter.core.entities import DeviceSize, DeviceType

# --- Rules ---

# (pattern, name). Group 1, when present, is the version.
BrowserRule = tuple[re.Pattern[str], str]
OSRule = tuple[re.Pattern[str], str]
DeviceRule = tuple[re.Pattern[str], str]


def _rx(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


@dataclass(frozen=True)
class ClientClassifierConfig:
    """Ordered rule sets. Order is significant: the first matching rule wins."""

    browser_rules: tuple[BrowserRule, ...] = (
        (_rx(r"Edg(?:e|A|iOS)?/([\d.]+)"), "Edge"),
        (_rx(r"OPR/([\d.]+)"), "Opera"),
        (_rx(r"Opera Mini/([\d.]+)"), "Opera Mini"),
        (_rx(r"Opera[/ ]([\d.]+)"), "Opera"),
        (_rx(r"SamsungBrowser/([\d.]+)"), "Samsung Browser"),
        (_rx(r"YaBrowser/([\d.]+)"), "Yandex"),
        (_rx(r"Vivaldi/([\d.]+)"), "Vivaldi"),
        (_rx(r"CriOS/([\d.]+)"), "Chrome"),
        (_rx(r"FxiOS/([\d.]+)"), "Firefox"),
        (_rx(r"Firefox/([\d.]+)"), "Firefox"),
        (_rx(r"Chromium/([\d.]+)"), "Chromium"),
        (_rx(r"Chrome/([\d.]+)"), "Chrome"),
        (_rx(r"Version/([\d.]+).*Mobile.*Safari/"), "Mobile Safari"),
        (_rx(r"Version/([\d.]+).*Safari/"), "Safari"),
        (_rx(r"MSIE ([\d.]+)"), "IE"),
        (_rx(r"Trident/.*rv:([\d.]+)"), "IE"),
    )

    os_rules: tuple[OSRule, ...] = (
        (_rx(r"Windows Phone(?: OS)? ([\d.]+)"), "Windows Phone"),
        (_rx(r"Windows NT ([\d.]+)"), "Windows"),
        (_rx(r"(?:iPhone|iPad|iPod).*? OS ([\d_]+)"), "iOS"),
        (_rx(r"Mac OS X ?([\d_.]*)"), "Mac OS"),
        (_rx(r"Android[ /]?([\d.]*)"), "Android"),
        (_rx(r"CrOS \S+ ([\d.]+)"), "Chromium OS"),
        (_rx(r"Tizen[ /]?([\d.]*)"), "Tizen"),
        (_rx(r"PlayStation (\d+)"), "PlayStation"),
        (_rx(r"Ubuntu"), "Ubuntu"),
        (_rx(r"Linux"), "Linux"),
    )

    # Raw categories follow the common parser vocabulary (smarttv, console, ...)
    device_rules: tuple[DeviceRule, ...] = (
        (_rx(r"PlayStation|Xbox|Nintendo"), "console"),
        (_rx(r"SmartTV|SMART-TV|Smart TV|AppleTV|GoogleTV|HbbTV|BRAVIA|Roku|Tizen.*TV"), "smarttv"),
        (_rx(r"Watch OS|WatchOS|Wear OS|Apple Watch|\bWatch\b"), "wearable"),
        (_rx(r"iPad|Tablet|Kindle|Silk/|PlayBook|Android(?!.*Mobile)"), "tablet"),
        (_rx(r"iPhone|iPod|Mobile|Windows Phone|BlackBerry|Opera Mini|IEMobile"), "mobile"),
    )


DEFAULT_CONFIG = ClientClassifierConfig()

_WINDOWS_VERSIONS = {
    "10.0": "10",
    "6.3": "8.1",
    "6.2": "8",
    "6.1": "7",
    "6.0": "Vista",
    "5.2": "XP",
    "5.1": "XP",
}

_DEVICE_TYPE_MAP = {
    "mobile": DeviceType.MOBILE,
    "tablet": DeviceType.TABLET,
    "wearable": DeviceType.WEARABLE,
    "smarttv": DeviceType.TV,
    "console": DeviceType.CONSOLE,
}


# --- Result ---


@dataclass(frozen=True)
class ClientInfo:
    """Parsed client attributes."""

    browser: str | None = None
    browser_version: str | None = None
    os: str | None = None
    os_version: str | None = None
    device_type: DeviceType | None = None


# --- Parsing Functions ---


def _first_match(
    rules: tuple[tuple[re.Pattern[str], str], ...],
    user_agent: str,
) -> tuple[str | None, str | None]:
    for pattern, name in rules:
        match = pattern.search(user_agent)
        if match:
            version = match.group(1) if pattern.groups else None
            return name, version or None
    return None, None


def normalize_device_type(raw: str | None) -> DeviceType:
    """Map a raw device category onto DeviceType. Unknown or missing -> desktop."""
    if not raw:
        return DeviceType.DESKTOP
    return _DEVICE_TYPE_MAP.get(raw.lower(), DeviceType.DESKTOP)


def _normalize_os_version(os_name: str | None, version: str | None) -> str | None:
    if not version:
        return None
    if os_name == "Windows":
        return _WINDOWS_VERSIONS.get(version, version)
    return version.replace("_", ".")


def parse_user_agent(
    user_agent: str | None,
    config: ClientClassifierConfig = DEFAULT_CONFIG,
) -> ClientInfo:
    """Parse a user-agent string into browser, OS and device type."""
    if not user_agent or not user_agent.strip():
        return ClientInfo()

    browser, browser_version = _first_match(config.browser_rules, user_agent)
    os_name, os_version = _first_match(config.os_rules, user_agent)
    raw_device, _ = _first_match(config.device_rules, user_agent)

    return ClientInfo(
        browser=browser,
        browser_version=browser_version,
        os=os_name,
        os_version=_normalize_os_version(os_name, os_version),
        device_type=normalize_device_type(raw_device),
    )


def size_for_device_type(device_type: DeviceType | None) -> DeviceSize:
    if device_type in (DeviceType.MOBILE, DeviceType.WEARABLE):
        return DeviceSize.SMALL
    if device_type == DeviceType.TABLET:
        return DeviceSize.MEDIUM
    return DeviceSize.LARGE


def device_size(
    user_agent: str | None,
    config: ClientClassifierConfig = DEFAULT_CONFIG,
) -> DeviceSize:
    """Derive the coarse device size from a user-agent string."""
    return size_for_device_type(parse_user_agent(user_agent, config).device_type)
