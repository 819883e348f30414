"""Default device and location resolvers used to enrich login history."""

import ipaddress

UNKNOWN_DEVICE = "Unknown Device"
UNKNOWN_LOCATION = "Unknown Location"
LOCAL_LOCATION = "Local"


class UserAgentDeviceResolver:
    """Classify a user agent string into a coarse device class."""

    def resolve(self, user_agent: str | None) -> str:
        if not user_agent:
            return UNKNOWN_DEVICE

        ua = user_agent.lower()

        # iPad user agents also advertise "Mobile"
        if "ipad" in ua:
            return "iPad"
        if "iphone" in ua:
            return "iPhone"
        if "android" in ua:
            return "Android Mobile" if "mobile" in ua else "Tablet"
        if "mobile" in ua:
            return "Mobile Device"
        if "tablet" in ua:
            return "Tablet"

        if "windows" in ua:
            return "Windows Desktop"
        if "macintosh" in ua or "mac os" in ua:
            return "Mac Desktop"
        if "linux" in ua:
            return "Linux Desktop"

        return "Desktop Browser"


class StaticGeoResolver:
    """
    Location resolver without a geolocation database.

    Loopback and private addresses resolve to ``Local``; everything else is
    reported as unknown.
    """

    def resolve(self, ip_address: str | None) -> str:
        if not ip_address or ip_address == "unknown":
            return LOCAL_LOCATION

        try:
            address = ipaddress.ip_address(ip_address)
        except ValueError:
            return UNKNOWN_LOCATION

        if address.is_loopback or address.is_private:
            return LOCAL_LOCATION
        return UNKNOWN_LOCATION
