"""Share links: code + language packed into a `?share=` query parameter.

Payload encoding, compatible with links made by the browser editor:
    JSON {"language", "code"} -> percent-encoding (encodeURIComponent rules)
    -> base64.
"""

from __future__ import annotations

import base64
import binascii
import json
from urllib.parse import parse_qs, quote, unquote, urlencode, urlsplit

from pydantic import BaseModel, Field, ValidationError

from coderun.exceptions import ShareLinkError
from coderun.models import Language  # noqa: TC001 - Required at runtime for Pydantic

SHARE_PARAM = "share"

# Characters encodeURIComponent leaves alone besides alphanumerics.
_URI_COMPONENT_SAFE = "-_.!~*'()"


class SharedCode(BaseModel):
    """Contents of a share link."""

    language: Language
    code: str = Field(min_length=1)


def encode_share_payload(shared: SharedCode) -> str:
    """Pack language and code into the base64 payload."""
    data = json.dumps(
        {"language": shared.language.value, "code": shared.code},
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return base64.b64encode(quote(data, safe=_URI_COMPONENT_SAFE).encode("ascii")).decode("ascii")


def decode_share_payload(payload: str) -> SharedCode:
    """Unpack a base64 payload.

    Raises:
        ShareLinkError: Payload is not base64, not JSON, or lacks language/code
    """
    try:
        quoted = base64.b64decode(payload, validate=True).decode("ascii")
        data = json.loads(unquote(quoted, errors="strict"))
        return SharedCode.model_validate(data)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
        raise ShareLinkError(f"Invalid share payload: {type(e).__name__}", context={"payload": payload[:80]}) from e


def build_share_url(origin: str, shared: SharedCode) -> str:
    """Full link: `<origin>?share=<payload>` (payload query-escaped)."""
    return f"{origin.rstrip('/')}?{urlencode({SHARE_PARAM: encode_share_payload(shared)})}"


def parse_share_url(url: str) -> SharedCode:
    """Extract the shared code from a link.

    Raises:
        ShareLinkError: No share parameter, or its payload is invalid
    """
    values = parse_qs(urlsplit(url).query).get(SHARE_PARAM)
    if not values:
        raise ShareLinkError("URL has no share parameter", context={"url": url[:200]})
    return decode_share_payload(values[0])
