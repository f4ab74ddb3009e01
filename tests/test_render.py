"""
Tests for the escaping render path and connection-error analysis.
"""

from webssh_client.errors import AlgorithmMismatch
from webssh_client.prompts import parse_prompt
from webssh_client.render import (
    ConnectionErrorInfo,
    ConnectionErrorType,
    analyze_algorithms,
    render_connection_error,
    render_footer,
    render_header,
    render_prompt,
    render_text,
    render_toast,
)
from webssh_client.state import HeaderContent

XSS = '<img src=x onerror="alert(1)">'


class TestPromptRendering:
    """Untrusted prompt text is always escaped."""

    def test_prompt_text_escaped(self) -> None:
        prompt = parse_prompt({
            "id": "p1",
            "type": "input",
            "title": XSS,
            "message": "<script>alert(1)</script>",
            "inputs": [{"id": "name", "label": XSS, "placeholder": '"><b>', "value": "</label>"}],
            "buttons": [{"action": "go", "label": "<b>Go</b>", "variant": "primary"}],
        })

        html = str(render_prompt(prompt))

        assert "<img" not in html
        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert "<b>" not in html
        assert 'class="btn-primary"' in html
        assert 'data-action="go"' in html

    def test_password_value_not_rendered(self) -> None:
        prompt = parse_prompt({
            "id": "p1",
            "type": "input",
            "title": "Secret",
            "inputs": [{"id": "pw", "label": "Password", "type": "password", "value": "prefilled"}],
        })
        assert "prefilled" not in str(render_prompt(prompt))

    def test_icon_comes_from_table(self) -> None:
        prompt = parse_prompt({"id": "p1", "type": "notice", "title": "x", "icon": XSS, "severity": "error"})
        html = str(render_prompt(prompt))
        assert 'data-icon="CircleAlert"' in html
        assert 'role="alertdialog"' in html
        assert "prompt-error" in html

    def test_toast(self) -> None:
        toast = parse_prompt({"id": "t1", "type": "toast", "title": "Saved", "message": "<i>ok</i>", "severity": "success"})
        html = str(render_toast(toast))
        assert "&lt;i&gt;ok&lt;/i&gt;" in html
        assert "prompt-success" in html


class TestBanners:
    """Header and footer rendering."""

    def test_header_with_colour(self) -> None:
        html = str(render_header(HeaderContent(text="<b>Prod</b>", background="red")))
        assert html == '<div class="header" style="background-color: red">&lt;b&gt;Prod&lt;/b&gt;</div>'

    def test_header_with_utility_classes(self) -> None:
        header = HeaderContent(
            text="Prod",
            background="bg-red-500",
            background_is_utility_class=True,
            full_style="text-white font-bold",
        )
        html = str(render_header(header))
        assert html == '<div class="header text-white font-bold bg-red-500">Prod</div>'

    def test_render_text(self) -> None:
        assert str(render_text(XSS)) == "&lt;img src=x onerror=&#34;alert(1)&#34;&gt;"
        assert str(render_text(None)) == ""
        assert str(render_text(42)) == "42"

    def test_footer(self) -> None:
        assert str(render_footer("a & b")) == '<div class="footer">a &amp; b</div>'
        assert str(render_footer(None)) == '<div class="footer"></div>'


class TestConnectionErrors:
    """Connection-error payload parsing, analysis and rendering."""

    PAYLOAD = {
        "errorType": "algorithm",
        "message": "No matching key exchange",
        "host": "example.com",
        "port": 22,
        "debugInfo": {
            "clientAlgorithms": {
                "kex": ["curve25519-sha256", "diffie-hellman-group14-sha256"],
                "cipher": ["aes128-ctr"],
            },
            "serverAlgorithms": {
                "kex": ["diffie-hellman-group1-sha1", "diffie-hellman-group14-sha256"],
                "cipher": ["3des-cbc"],
            },
            "errorDetails": "<kex failed>",
        },
    }

    def test_analysis(self) -> None:
        analysis = ConnectionErrorInfo.from_payload(self.PAYLOAD).analysis()

        assert analysis["kex"].common == ("diffie-hellman-group14-sha256",)
        assert analysis["kex"].client_only == ("curve25519-sha256",)
        assert analysis["kex"].server_only == ("diffie-hellman-group1-sha1",)
        assert not analysis["cipher"].has_match
        assert analysis["mac"].common == ()

    def test_from_payload_defaults(self) -> None:
        info = ConnectionErrorInfo.from_payload({"errorType": "martian", "port": True, "debugInfo": "junk"})
        assert info.error_type is ConnectionErrorType.UNKNOWN
        assert info.effective_title == "Connection Error"
        assert info.message == "Connection error"
        assert info.port is None
        assert all(v == [] for v in info.client_algorithms.values())

    def test_malformed_algorithm_lists(self) -> None:
        analysis = analyze_algorithms({"kex": "not-a-list"}, None)
        assert analysis["kex"].common == ()

    def test_render_escapes_algorithm_names(self) -> None:
        payload = dict(self.PAYLOAD)
        payload["debugInfo"] = {
            "clientAlgorithms": {"kex": [XSS]},
            "serverAlgorithms": {"kex": ["ok-kex"]},
        }
        html = str(render_connection_error(ConnectionErrorInfo.from_payload(payload)))
        assert "<img" not in html
        assert 'class="alg-missing"' in html

    def test_render_full(self) -> None:
        html = str(render_connection_error(ConnectionErrorInfo.from_payload(self.PAYLOAD)))
        assert "<h3>Algorithm Mismatch</h3>" in html
        assert '<p class="target">example.com:22</p>' in html
        assert '<li class="alg-match">diffie-hellman-group14-sha256</li>' in html
        assert "&lt;kex failed&gt;" in html

    def test_to_error(self) -> None:
        error = ConnectionErrorInfo.from_payload(self.PAYLOAD).to_error()
        assert isinstance(error, AlgorithmMismatch)
        data = error.to_dict()
        assert data["host"] == "example.com"
        assert data["port"] == 22
        assert "diffie-hellman-group14-sha256" in data["server_algorithms"]["kex"]

    def test_to_error_by_type(self) -> None:
        def error_for(error_type: str) -> str:
            info = ConnectionErrorInfo.from_payload({"errorType": error_type, "message": "x", "port": 0})
            return info.to_error().error_type

        assert error_for("network") == "ConnectFailed"
        assert error_for("timeout") == "ConnectFailed"
        assert error_for("auth") == "AuthFailed"
        assert error_for("bogus") == "SSHProtocolError"
