"""
Tests for credential assembly: source precedence, auth-method sanitising
and local validation before anything is sent.
"""

import pytest

from webssh_client.config import BasicAuthCookie, ClientConfig, SSHDefaults
from webssh_client.credentials import Credentials, build_credentials
from webssh_client.errors import InvalidCredentials, KeyValidationError
from webssh_client.validation import URLParameters

from conftest import CORRUPTED_OPENSSH_KEY, OPENSSH_KEY


class TestPrecedence:
    """form > URL > server defaults > basicauth cookie."""

    def test_form_wins(self) -> None:
        """Form values override every other source."""
        config = ClientConfig(ssh=SSHDefaults(host="config.example", port=2200, username="cfg"))
        url = URLParameters(host="url.example", port=2201, username="urluser")
        cookie = BasicAuthCookie(host="cookie.example", port=2202)

        creds = build_credentials(
            config,
            form={"host": "form.example", "port": "2203", "username": "formuser"},
            url=url,
            cookie=cookie,
        )

        assert creds is not None
        assert (creds.host, creds.port, creds.username) == ("form.example", 2203, "formuser")

    def test_url_beats_config(self) -> None:
        config = ClientConfig(ssh=SSHDefaults(host="config.example", port=2200, username="cfg"))
        url = URLParameters(host="url.example", port=2201)

        creds = build_credentials(config, url=url)

        assert creds is not None
        assert (creds.host, creds.port, creds.username) == ("url.example", 2201, "cfg")

    def test_cookie_only_supplies_host_and_port(self) -> None:
        """The cookie is the last resort, and only for host and port."""
        cookie = BasicAuthCookie(host="cookie.example", port=2202)

        creds = build_credentials(ClientConfig(), form={"username": "alice"}, cookie=cookie)

        assert creds is not None
        assert (creds.host, creds.port) == ("cookie.example", 2202)

    def test_default_port(self) -> None:
        creds = build_credentials(ClientConfig(), form={"host": "example.com", "username": "alice"})
        assert creds is not None
        assert creds.port == 22
        assert creds.term == "xterm-color"

    def test_missing_host_or_username(self) -> None:
        """No host or no username means the user must log in."""
        assert build_credentials(ClientConfig(), form={"host": "example.com"}) is None
        assert build_credentials(ClientConfig(), form={"username": "alice"}) is None


class TestSanitising:
    """Secrets not used by an allowed auth method are stripped."""

    def test_private_key_stripped_when_publickey_not_allowed(self) -> None:
        """A password-only config never sends (or validates) a key."""
        config = ClientConfig(allowed_auth_methods=["password"])
        form = {
            "host": "example.com",
            "username": "alice",
            "password": "pw",
            "private_key": CORRUPTED_OPENSSH_KEY,
            "passphrase": "pp",
        }

        creds = build_credentials(config, form=form)

        assert creds is not None
        payload = creds.to_payload()
        assert payload["password"] == "pw"
        assert "privateKey" not in payload
        assert "passphrase" not in payload

    def test_password_stripped_when_not_allowed(self) -> None:
        config = ClientConfig(allowed_auth_methods=["publickey"])
        form = {"host": "example.com", "username": "alice", "password": "pw", "private_key": OPENSSH_KEY}

        payload = build_credentials(config, form=form).to_payload()

        assert "password" not in payload
        assert payload["privateKey"] == OPENSSH_KEY

    def test_blank_passphrase_dropped(self) -> None:
        form = {"host": "example.com", "username": "alice", "private_key": OPENSSH_KEY, "passphrase": "  "}
        creds = build_credentials(ClientConfig(), form=form)
        assert creds.passphrase is None


class TestValidation:
    """Invalid fields raise before anything is sent."""

    def test_invalid_host(self) -> None:
        with pytest.raises(InvalidCredentials, match="forbidden character") as exc_info:
            build_credentials(ClientConfig(), form={"host": "a;b", "username": "alice"})
        assert exc_info.value.context.field_name == "host"

    def test_invalid_port(self) -> None:
        with pytest.raises(InvalidCredentials) as exc_info:
            build_credentials(ClientConfig(), form={"host": "example.com", "username": "alice", "port": "0"})
        assert exc_info.value.context.field_name == "port"

    def test_corrupted_key(self) -> None:
        form = {"host": "example.com", "username": "alice", "private_key": CORRUPTED_OPENSSH_KEY}
        with pytest.raises(KeyValidationError) as exc_info:
            build_credentials(ClientConfig(), form=form)
        assert exc_info.value.reason == "corrupted"


class TestPayload:
    """Tests for the wire payload."""

    def test_payload_fields(self) -> None:
        creds = Credentials(
            host="example.com",
            port=22,
            username="alice",
            password="pw",
            private_key=OPENSSH_KEY,
            passphrase="pp",
            cols=120,
            rows=40,
        )
        assert creds.to_payload() == {
            "host": "example.com",
            "port": 22,
            "username": "alice",
            "term": "xterm-color",
            "password": "pw",
            "privateKey": OPENSSH_KEY,
            "passphrase": "pp",
            "cols": 120,
            "rows": 40,
        }

    def test_repr_hides_secrets(self) -> None:
        creds = Credentials(host="example.com", port=22, username="alice", password="s3cret")
        assert "s3cret" not in repr(creds)
