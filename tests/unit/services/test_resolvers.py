"""
Tests for the default device and location resolvers.
"""

import pytest

from storefront_identity.services.resolvers import StaticGeoResolver, UserAgentDeviceResolver


class TestUserAgentDeviceResolver:
    """Test device classification."""

    @pytest.mark.parametrize(
        "user_agent,expected",
        [
            (None, "Unknown Device"),
            ("", "Unknown Device"),
            (
                "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Mobile/15E148",
                "iPad",
            ),
            (
                "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148",
                "iPhone",
            ),
            (
                "Mozilla/5.0 (Linux; Android 14; Pixel 8) Chrome/120.0 Mobile Safari/537.36",
                "Android Mobile",
            ),
            ("Mozilla/5.0 (Linux; Android 13; SM-X700) Chrome/120.0 Safari/537.36", "Tablet"),
            ("Opera/9.80 (J2ME/MIDP; Opera Mini) Mobile", "Mobile Device"),
            ("Mozilla/5.0 (Tablet; rv:26.0) Gecko/26.0 Firefox/26.0", "Tablet"),
            ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0", "Windows Desktop"),
            ("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) Safari/605.1.15", "Mac Desktop"),
            ("Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0", "Linux Desktop"),
            ("curl/8.4.0", "Desktop Browser"),
        ],
    )
    def test_resolve(self, user_agent, expected):
        assert UserAgentDeviceResolver().resolve(user_agent) == expected


class TestStaticGeoResolver:
    """Test location resolution without a geo database."""

    @pytest.mark.parametrize(
        "ip_address,expected",
        [
            (None, "Local"),
            ("", "Local"),
            ("unknown", "Local"),
            ("127.0.0.1", "Local"),
            ("::1", "Local"),
            ("192.168.1.20", "Local"),
            ("10.0.0.5", "Local"),
            ("8.8.8.8", "Unknown Location"),
            ("not-an-ip", "Unknown Location"),
        ],
    )
    def test_resolve(self, ip_address, expected):
        assert StaticGeoResolver().resolve(ip_address) == expected
