"""User-agent classification sent with every batch."""
import re
from dataclasses import dataclass

TABLET_PATTERN = re.compile(r"ipad|tablet|playbook|silk")
MOBILE_PATTERN = re.compile(r"mobile|iphone|ipod|android|blackberry|opera mini|iemobile")
IOS_PATTERN = re.compile(r"iphone|ipad|ipod")


@dataclass(frozen=True)
class DeviceInfo:
    device_type: str
    browser: str
    os: str


def parse_user_agent(user_agent: str) -> DeviceInfo:
    """
    Classify a user agent into device type, browser and OS.

    Args:
        user_agent: Raw User-Agent header value

    Returns:
        DeviceInfo with "Unknown" for anything unrecognised
    """
    ua = (user_agent or "").lower()

    device_type = "desktop"
    if TABLET_PATTERN.search(ua):
        device_type = "tablet"
    elif MOBILE_PATTERN.search(ua):
        device_type = "mobile"

    browser = "Unknown"
    if "chrome" in ua and "edge" not in ua:
        browser = "Chrome"
    elif "firefox" in ua:
        browser = "Firefox"
    elif "safari" in ua and "chrome" not in ua:
        browser = "Safari"
    elif "edge" in ua:
        browser = "Edge"

    # iOS agents contain "mac os x", so they must be checked first
    os = "Unknown"
    if "windows" in ua:
        os = "Windows"
    elif IOS_PATTERN.search(ua):
        os = "iOS"
    elif "mac" in ua:
        os = "macOS"
    elif "android" in ua:
        os = "Android"
    elif "linux" in ua:
        os = "Linux"

    return DeviceInfo(device_type=device_type, browser=browser, os=os)
