"""Tests for client address and device helpers."""

from types import SimpleNamespace

import pytest

from auth.request_info import get_client_ip, get_device_name, get_user_agent_hash, is_public_ip


def make_request(headers=None, host=None):
    return SimpleNamespace(
        headers=headers or {},
        client=SimpleNamespace(host=host) if host else None,
    )


class TestGetClientIP:
    def test_first_forwarded_entry(self):
        request = make_request({"x-forwarded-for": "203.0.113.7, 10.0.0.2"}, host="10.0.0.1")
        assert get_client_ip(request) == "203.0.113.7"

    def test_header_order(self):
        request = make_request({"x-real-ip": "198.51.100.1", "cf-connecting-ip": "198.51.100.2"})
        assert get_client_ip(request) == "198.51.100.1"

    def test_loopback_and_garbage_skipped(self):
        request = make_request(
            {"x-forwarded-for": "127.0.0.1", "x-real-ip": "not-an-ip", "x-client-ip": "2001:db8::1"}
        )
        assert get_client_ip(request) == "2001:db8::1"

    def test_falls_back_to_peer(self):
        assert get_client_ip(make_request(host="192.0.2.10")) == "192.0.2.10"

    def test_nothing_known(self):
        assert get_client_ip(make_request()) is None


class TestIsPublicIP:
    @pytest.mark.parametrize("value, expected", [
        ("203.0.113.7", True),
        ("::1", False),
        ("127.0.0.1", False),
        ("", False),
        ("999.1.1.1", False),
    ])
    def test_values(self, value, expected):
        assert is_public_ip(value) is expected


class TestDeviceName:
    @pytest.mark.parametrize("user_agent, expected", [
        ("Mozilla/5.0 (Linux; Android 14; Pixel 8)", "Android"),
        ("Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)", "iOS"),
        ("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0)", "Mac"),
        ("Mozilla/5.0 (Windows NT 10.0; Win64; x64)", "Windows"),
        ("Mozilla/5.0 (X11; Linux x86_64)", "Linux"),
        ("curl/8.5.0", "Device"),
        (None, "Unknown Device"),
    ])
    def test_detection(self, user_agent, expected):
        assert get_device_name(user_agent) == expected

    def test_user_agent_hash_defaults(self):
        assert get_user_agent_hash(None) == "unknown"
        assert get_user_agent_hash("curl/8.5.0") == "curl/8.5.0"
