"""
Tests for input validation functions.

Covers the per-field validators and the aggregate URL/form helpers, which
drop invalid fields instead of raising.
"""

import pytest

from webssh_client.validation import (
    DANGEROUS_CHARS,
    MAX_LENGTHS,
    validate_color,
    validate_css_classes,
    validate_form_data,
    validate_host,
    validate_log_level,
    validate_port,
    validate_terminal_type,
    validate_text,
    validate_url_parameters,
    validate_username,
)


class TestValidateHost:
    """Tests for validate_host."""

    def test_valid_hostnames(self) -> None:
        """Accept RFC 1123 host names and normalise to lowercase."""
        assert validate_host("localhost") == "localhost"
        assert validate_host("my-server.Example.COM") == "my-server.example.com"

    def test_ip_addresses(self) -> None:
        """Accept IPv4 and IPv6 literals."""
        assert validate_host("192.168.1.10") == "192.168.1.10"
        assert validate_host("::1") == "::1"
        assert validate_host("[fe80::1]:22") == "fe80::1"

    def test_strips_protocol_path_and_port(self) -> None:
        """A value pasted from an address bar still yields the host."""
        assert validate_host("https://example.com:8443/ssh/host") == "example.com"

    def test_empty_rejected(self) -> None:
        """Reject empty and whitespace-only hosts."""
        with pytest.raises(ValueError, match="must not be empty"):
            validate_host("   ")

    def test_dangerous_chars_rejected(self) -> None:
        """Reject shell metacharacters."""
        for char in ";|$`&":
            with pytest.raises(ValueError, match="forbidden character"):
                validate_host(f"example{char}com")

    def test_bad_labels_rejected(self) -> None:
        """Reject leading hyphens, consecutive dots and long labels."""
        with pytest.raises(ValueError, match="must not start with a hyphen"):
            validate_host("-bad.example.com")
        with pytest.raises(ValueError, match="consecutive dots"):
            validate_host("a..b")
        with pytest.raises(ValueError, match="exceeds maximum length"):
            validate_host("a" * 64)

    def test_non_string_rejected(self) -> None:
        """Reject non-string input."""
        with pytest.raises(ValueError, match="must be a string"):
            validate_host(42)  # type: ignore[arg-type]


class TestValidatePort:
    """Tests for validate_port."""

    def test_valid_ports(self) -> None:
        """Accept ints and decimal strings in range."""
        assert validate_port(22) == 22
        assert validate_port("2222") == 2222
        assert validate_port(" 65535 ") == 65535

    def test_out_of_range(self) -> None:
        """Reject 0 and values above 65535."""
        with pytest.raises(ValueError, match="at least 1"):
            validate_port(0)
        with pytest.raises(ValueError, match="at most 65535"):
            validate_port(65536)

    def test_non_numeric(self) -> None:
        """Reject bools, negative strings and junk."""
        with pytest.raises(ValueError):
            validate_port(True)
        with pytest.raises(ValueError, match="decimal number"):
            validate_port("-1")
        with pytest.raises(ValueError, match="decimal number"):
            validate_port("22abc")


class TestValidateUsername:
    """Tests for validate_username."""

    def test_valid(self) -> None:
        """Accept letters, digits, dot, underscore and hyphen."""
        assert validate_username(" deploy.user_1-a ") == "deploy.user_1-a"

    def test_too_long(self) -> None:
        """Reject names over the maximum length."""
        with pytest.raises(ValueError, match="exceeds maximum length"):
            validate_username("a" * (MAX_LENGTHS["username"] + 1))

    def test_invalid_characters(self) -> None:
        """Reject spaces, @ and metacharacters."""
        with pytest.raises(ValueError, match="invalid character"):
            validate_username("alice@host")
        with pytest.raises(ValueError, match="forbidden character"):
            validate_username("alice;rm")

    def test_dangerous_chars_cover_controls(self) -> None:
        """Null bytes and newlines are always forbidden."""
        assert "\x00" in DANGEROUS_CHARS
        assert "\n" in DANGEROUS_CHARS


class TestTextAndStyle:
    """Tests for banner text, colours, class lists and terminal types."""

    def test_text_never_raises(self) -> None:
        """Non-strings become empty; long text is truncated."""
        assert validate_text(None) == ""
        assert validate_text(123) == ""
        assert validate_text("x" * 500) == "x" * MAX_LENGTHS["header"]
        assert validate_text("a\x00b") == "ab"

    def test_text_keeps_markup_for_render_time_escaping(self) -> None:
        """Markup is left alone; escaping happens when rendering."""
        assert validate_text("<b>hi</b>") == "<b>hi</b>"

    def test_colors(self) -> None:
        """Accept hex, rgb() and names; reject CSS injection."""
        assert validate_color("#fff") == "#fff"
        assert validate_color("#A0B1C2") == "#A0B1C2"
        assert validate_color("rgb(1, 2, 3)") == "rgb(1, 2, 3)"
        assert validate_color("red") == "red"
        with pytest.raises(ValueError):
            validate_color("red; background: url(x)")
        with pytest.raises(ValueError):
            validate_color("#ggg")

    def test_css_classes(self) -> None:
        """Class lists are normalised; anything outside class syntax fails."""
        assert validate_css_classes("  bg-red-500   text-white ") == "bg-red-500 text-white"
        assert validate_css_classes("md:bg-blue-500/50") == "md:bg-blue-500/50"
        with pytest.raises(ValueError, match="invalid class name"):
            validate_css_classes('bg-red" onclick="x')
        with pytest.raises(ValueError, match="must not be empty"):
            validate_css_classes("   ")

    def test_terminal_types(self) -> None:
        """Known types are lowercased; unknown ones must be simple."""
        assert validate_terminal_type("XTERM-256COLOR") == "xterm-256color"
        assert validate_terminal_type("my-term") == "my-term"
        with pytest.raises(ValueError, match="invalid characters"):
            validate_terminal_type("xterm;reboot")

    def test_log_levels(self) -> None:
        """Only the known levels are accepted."""
        assert validate_log_level("DEBUG") == "debug"
        with pytest.raises(ValueError, match="must be one of"):
            validate_log_level("verbose")


class TestValidateURLParameters:
    """Tests for validate_url_parameters."""

    def test_accepts_valid_parameters(self) -> None:
        """All valid parameters are carried through."""
        params = validate_url_parameters({
            "host": "Example.com",
            "port": "2222",
            "username": "alice",
            "sshterm": "xterm-256color",
            "header": "Production",
            "headerbackground": "green",
            "logLevel": "debug",
        })
        assert params.host == "example.com"
        assert params.port == 2222
        assert params.username == "alice"
        assert params.sshterm == "xterm-256color"
        assert params.header_text == "Production"
        assert params.header_background == "green"
        assert params.log_level == "debug"
        assert params.rejected == []

    def test_drops_invalid_parameters(self) -> None:
        """Invalid values are dropped and their names recorded."""
        params = validate_url_parameters({
            "host": "bad;host",
            "port": "99999",
            "headerbackground": "url(javascript:x)",
        })
        assert params.host is None
        assert params.port is None
        assert params.header_background is None
        assert sorted(params.rejected) == ["headerbackground", "host", "port"]

    def test_absent_port_is_none(self) -> None:
        """An absent port stays unset so lower-precedence sources apply."""
        assert validate_url_parameters({}).port is None


class TestValidateFormData:
    """Tests for validate_form_data."""

    def test_valid_form(self) -> None:
        """Host and username are required; port defaults to 22."""
        form = validate_form_data({"host": "example.com", "username": "alice", "password": "pw"})
        assert form == {"host": "example.com", "username": "alice", "port": 22, "password": "pw"}

    def test_missing_required_field(self) -> None:
        """Missing host or username rejects the whole form."""
        assert validate_form_data({"host": "example.com"}) is None
        assert validate_form_data({"username": "alice"}) is None

    def test_oversized_private_key(self) -> None:
        """Private keys over the size limit are rejected."""
        form = {
            "host": "example.com",
            "username": "alice",
            "private_key": "x" * (MAX_LENGTHS["private_key"] + 1),
        }
        assert validate_form_data(form) is None

    def test_not_a_mapping(self) -> None:
        """Non-mapping input is rejected."""
        assert validate_form_data("host=example.com") is None  # type: ignore[arg-type]
