"""
Tests for bookmerge/urls.py URL canonicalization.
"""
import pytest

from bookmerge.errors import MalformedUrlError
from bookmerge.urls import is_normalized_match, normalize_url, normalize_url_parts, parse_url


class TestNormalizeUrl:
    """Test normalize_url canonical forms."""

    def test_full_canonicalization(self):
        """Case, default port, trailing slash, query order and fragment are all normalized."""
        assert normalize_url("HTTPS://Example.com:443/path/?b=2&a=1#top") == "https://example.com/path?a=1&b=2"

    def test_host_is_lowercased(self):
        assert normalize_url("http://EXAMPLE.COM/Page") == "http://example.com/Page"

    def test_path_case_is_preserved(self):
        """Only scheme and host are case-insensitive."""
        assert normalize_url("https://example.com/Docs") != normalize_url("https://example.com/docs")

    def test_default_http_port_dropped(self):
        assert normalize_url("http://example.com:80/a") == "http://example.com/a"

    def test_non_default_port_kept(self):
        assert normalize_url("https://example.com:8443/a") == "https://example.com:8443/a"

    def test_http_port_on_https_is_kept(self):
        assert normalize_url("https://example.com:80/") == "https://example.com:80/"

    def test_empty_path_becomes_root(self):
        assert normalize_url("https://example.com") == "https://example.com/"

    def test_root_and_bare_host_match(self):
        assert normalize_url("https://example.com/") == normalize_url("https://example.com")

    def test_only_one_trailing_slash_removed(self):
        assert normalize_url("https://example.com/a//") == "https://example.com/a/"

    def test_fragment_dropped(self):
        assert normalize_url("https://example.com/a#section-2") == "https://example.com/a"

    def test_query_sorted_by_key(self):
        assert normalize_url("https://example.com/?z=1&a=2&m=3") == "https://example.com/?a=2&m=3&z=1"

    def test_repeated_keys_keep_relative_order(self):
        assert normalize_url("https://example.com/?b=1&a=2&a=1") == "https://example.com/?a=2&a=1&b=1"

    def test_blank_query_values_kept(self):
        assert normalize_url("https://example.com/?flag=&a=1") == "https://example.com/?a=1&flag="

    def test_userinfo_preserved(self):
        assert normalize_url("https://user@Example.com/") == "https://user@example.com/"

    def test_ipv6_host(self):
        assert normalize_url("http://[::1]:80/x/") == "http://[::1]/x"

    def test_scheme_differences_are_not_equivalent(self):
        assert normalize_url("http://example.com/") != normalize_url("https://example.com/")

    def test_www_prefix_not_stripped(self):
        assert normalize_url("https://www.example.com/") != normalize_url("https://example.com/")

    def test_idempotent(self):
        """Normalizing an already normalized URL changes nothing."""
        for url in [
            "HTTPS://Example.com:443/path/?b=2&a=1#top",
            "http://example.com",
            "https://example.com:8443/a/b/?x=1",
            "not a url",
        ]:
            once = normalize_url(url)
            assert normalize_url(once) == once


class TestFallback:
    """Test the string fallback for unparseable input."""

    def test_missing_scheme_falls_back(self):
        assert normalize_url("  Example.com/Page  ") == "example.com/page"

    def test_garbage_falls_back_without_raising(self):
        assert normalize_url("Not A URL") == "not a url"

    def test_bad_port_falls_back(self):
        assert normalize_url("http://Example.com:99999/") == "http://example.com:99999/"

    def test_empty_string(self):
        assert normalize_url("") == ""

    def test_fallback_parts_are_empty(self):
        parts = normalize_url_parts("no scheme here")
        assert parts.normalized == "no scheme here"
        assert parts.domain == ""
        assert parts.query_params == {}


class TestParseUrl:
    """Test strict parsing."""

    def test_requires_scheme(self):
        with pytest.raises(MalformedUrlError):
            parse_url("example.com/page")

    def test_requires_host(self):
        with pytest.raises(MalformedUrlError):
            parse_url("file:///tmp/x")

    def test_rejects_bad_port(self):
        with pytest.raises(MalformedUrlError):
            parse_url("http://example.com:notaport/")

    def test_malformed_url_is_value_error(self):
        with pytest.raises(ValueError):
            parse_url("nope")

    def test_parts_reported(self):
        parts = normalize_url_parts("https://Example.com/a/?q=1#frag")
        assert parts.domain == "example.com"
        assert parts.path == "/a"
        assert parts.query_params == {"q": "1"}
        assert parts.fragment == "frag"
        assert parts.original == "https://Example.com/a/?q=1#frag"


class TestIsNormalizedMatch:
    """Test normalized-but-not-identical detection."""

    def test_cosmetic_difference(self):
        assert is_normalized_match("https://example.com/a/", "https://EXAMPLE.com/a")

    def test_identical_strings_are_not_normalized_match(self):
        assert not is_normalized_match("https://example.com/a", "https://example.com/a")

    def test_different_resources(self):
        assert not is_normalized_match("https://example.com/a", "https://example.com/b")
