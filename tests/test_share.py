"""Tests for share links and starter templates."""

import base64

import pytest
from hypothesis import given
from hypothesis import strategies as st

from coderun.exceptions import ShareLinkError
from coderun.models import Language
from coderun.share import (
    SharedCode,
    build_share_url,
    decode_share_payload,
    encode_share_payload,
    parse_share_url,
)
from coderun.templates import TEMPLATES, get_template


class TestSharePayload:
    def test_known_payload(self) -> None:
        """Same bytes the browser produces with btoa(encodeURIComponent(JSON.stringify(...)))."""
        payload = encode_share_payload(SharedCode(language=Language.PYTHON, code="print(1)"))
        expected = base64.b64encode(b"%7B%22language%22%3A%22python%22%2C%22code%22%3A%22print(1)%22%7D").decode()
        assert payload == expected

    def test_non_ascii_code(self) -> None:
        shared = SharedCode(language=Language.RUBY, code='puts "héllo ✓"')
        assert decode_share_payload(encode_share_payload(shared)) == shared

    @given(code=st.text(min_size=1, max_size=200), language=st.sampled_from(list(Language)))
    def test_decode_inverts_encode(self, code: str, language: Language) -> None:
        shared = SharedCode(language=language, code=code)
        assert decode_share_payload(encode_share_payload(shared)) == shared

    @pytest.mark.parametrize(
        "payload",
        [
            "not base64!!",
            base64.b64encode(b"%7Bnot json").decode(),
            base64.b64encode(b"%7B%22language%22%3A%22cobol%22%2C%22code%22%3A%22x%22%7D").decode(),
            base64.b64encode(b"%7B%22language%22%3A%22python%22%7D").decode(),
        ],
    )
    def test_invalid_payload(self, payload: str) -> None:
        with pytest.raises(ShareLinkError):
            decode_share_payload(payload)


class TestShareUrl:
    def test_build_and_parse(self) -> None:
        shared = SharedCode(language=Language.GO, code="package main\n")
        url = build_share_url("https://editor.example.com/", shared)
        assert url.startswith("https://editor.example.com?share=")
        assert parse_share_url(url) == shared

    def test_missing_param(self) -> None:
        with pytest.raises(ShareLinkError, match="no share parameter"):
            parse_share_url("https://editor.example.com/?lang=python")


class TestTemplates:
    def test_every_language_has_template(self) -> None:
        assert set(TEMPLATES) == set(Language)
        assert all(TEMPLATES[language] for language in Language)

    def test_lookup_by_name(self) -> None:
        assert get_template("python") == TEMPLATES[Language.PYTHON]

    def test_templates_read_stdin(self) -> None:
        assert "input(" in get_template(Language.PYTHON)
        assert "gets" in get_template(Language.RUBY)

    def test_unknown_language(self) -> None:
        with pytest.raises(ValueError):
            get_template("cobol")
