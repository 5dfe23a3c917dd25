from dataclasses import dataclass

from user_agents import parse

UNKNOWN_BROWSER = "Unknown Browser"
UNKNOWN_OS = "Unknown OS"


@dataclass(frozen=True)
class DeviceInfo:
    browser: str
    browser_version: str
    os: str
    os_version: str
    device_type: str  # desktop | mobile | tablet

    @property
    def device_name(self) -> str:
        name = f"{self.browser} on {self.os}"
        if self.os_version:
            name = f"{name} {self.os_version}"
        return name[:100]


def _family(value, fallback):
    if not value or value == "Other":
        return fallback
    return value


def parse_user_agent(user_agent: str) -> DeviceInfo:
    ua = parse(user_agent or "")

    if ua.is_tablet:
        device_type = "tablet"
    elif ua.is_mobile:
        device_type = "mobile"
    else:
        device_type = "desktop"

    return DeviceInfo(
        browser=_family(ua.browser.family, UNKNOWN_BROWSER)[:50],
        browser_version=(ua.browser.version_string or "")[:50],
        os=_family(ua.os.family, UNKNOWN_OS)[:50],
        os_version=(ua.os.version_string or "")[:50],
        device_type=device_type,
    )
