"""
Unit tests for shared cookie parsing.
"""

import json
import pytest

from shared.cookie_utils import (
    DEFAULT_COOKIE_DOMAIN,
    CookieRecord,
    cookie_header,
    parse_cookies,
)


class TestParseCookiesFormats:
    """The same cookie arrives as array, JSON string or header string."""

    def test_array_json_and_header_agree(self):
        from_array = parse_cookies([{"name": "a", "value": "b"}])
        from_json = parse_cookies(json.dumps([{"name": "a", "value": "b"}]))
        from_header = parse_cookies("a=b")

        assert from_array == from_json == from_header
        assert len(from_array) == 1
        assert from_array[0].name == "a"
        assert from_array[0].value == "b"

    def test_parsing_is_idempotent(self):
        first = parse_cookies("a=b; c=d")
        again = parse_cookies([c.to_playwright() for c in first])
        assert again == first

    def test_header_with_multiple_pairs(self):
        cookies = parse_cookies("c_user=100; xs=abc%3D; fr=0x")
        assert [(c.name, c.value) for c in cookies] == [("c_user", "100"), ("xs", "abc%3D"), ("fr", "0x")]

    def test_header_value_may_contain_equals(self):
        cookies = parse_cookies("token=abc==")
        assert cookies[0].value == "abc=="

    def test_header_with_cookie_prefix(self):
        cookies = parse_cookies("Cookie: a=b")
        assert cookies[0].name == "a"

    def test_single_json_object(self):
        cookies = parse_cookies('{"name": "a", "value": "b"}')
        assert len(cookies) == 1


class TestParseCookiesDefaults:
    """Per-record normalization and defaults."""

    def test_defaults_applied(self):
        cookie = parse_cookies("a=b")[0]
        assert cookie.domain == DEFAULT_COOKIE_DOMAIN
        assert cookie.path == "/"
        assert cookie.secure is True
        assert cookie.sameSite == "Lax"
        assert cookie.httpOnly is False
        assert cookie.expires is None

    def test_explicit_values_override(self):
        cookie = parse_cookies([{
            "name": "xs",
            "value": "v",
            "domain": ".example.com",
            "path": "/p",
            "secure": False,
            "httpOnly": True,
            "sameSite": "strict",
            "expirationDate": 1999999999,
        }])[0]
        assert cookie.domain == ".example.com"
        assert cookie.path == "/p"
        assert cookie.secure is False
        assert cookie.httpOnly is True
        assert cookie.sameSite == "Strict"
        assert cookie.expires == 1999999999

    def test_browser_export_same_site_values(self):
        cookie = parse_cookies([{"name": "a", "value": "b", "sameSite": "no_restriction"}])[0]
        assert cookie.sameSite == "None"

    def test_session_expiry_dropped(self):
        cookie = parse_cookies([{"name": "a", "value": "b", "expires": -1}])[0]
        assert cookie.expires is None

    def test_trims_name_and_value(self):
        cookie = parse_cookies([{"name": "  a ", "value": " b  "}])[0]
        assert (cookie.name, cookie.value) == ("a", "b")

    def test_empty_names_dropped(self):
        cookies = parse_cookies([{"name": "   ", "value": "x"}, {"value": "y"}, {"name": "ok", "value": "1"}])
        assert [c.name for c in cookies] == ["ok"]

    def test_empty_header_names_dropped(self):
        cookies = parse_cookies("=x; ; a=b; novalue")
        assert [c.name for c in cookies] == ["a"]


class TestParseCookiesMalformed:
    """Malformed input never raises."""

    @pytest.mark.parametrize("raw", [None, "", [], "[not json", "{broken", 42, 3.5, True, ["a=b", 1, None]])
    def test_malformed_yields_empty(self, raw):
        assert parse_cookies(raw) == []

    def test_json_scalar_yields_empty(self):
        assert parse_cookies('["a", "b"]') == []


class TestCookieRecord:
    """Tests for CookieRecord conversions."""

    def test_to_playwright_without_expiry(self):
        shape = CookieRecord(name="a", value="b").to_playwright()
        assert shape == {
            "name": "a",
            "value": "b",
            "domain": DEFAULT_COOKIE_DOMAIN,
            "path": "/",
            "httpOnly": False,
            "secure": True,
            "sameSite": "Lax",
        }

    def test_to_playwright_with_expiry(self):
        shape = CookieRecord(name="a", value="b", expires=123.0).to_playwright()
        assert shape["expires"] == 123.0

    def test_cookie_header(self):
        records = parse_cookies("a=b; c=d")
        assert cookie_header(records) == "a=b; c=d"

    def test_cookie_header_empty(self):
        assert cookie_header([]) == ""
