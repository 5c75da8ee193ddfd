import base64
import binascii
import json

SHARE_VERSION = 1
MAX_TITLE_LEN = 80
MAX_COMMENT_LEN = 512


def _to_base64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _from_base64url(token: str) -> bytes:
    padding = "=" * (-len(token) % 4)
    return base64.urlsafe_b64decode(token + padding)


def build_share_token(codes, title: str = "", comment: str = "") -> str:
    """Pack selected codes plus a short title/comment into a URL-safe token."""
    payload = {
        "v": SHARE_VERSION,
        "s": [str(c) for c in codes or []],
        "t": (title or "")[:MAX_TITLE_LEN],
        "c": (comment or "")[:MAX_COMMENT_LEN],
    }
    encoded = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    return _to_base64url(encoded)


def parse_share_token(token: str) -> dict:
    """Inverse of build_share_token. Malformed tokens decode to an empty share."""
    empty = {"codes": [], "title": "", "comment": ""}
    if not token:
        return empty
    try:
        data = json.loads(_from_base64url(str(token).strip()).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return empty
    if not isinstance(data, dict):
        return empty
    codes = data.get("s")
    return {
        "codes": [str(c) for c in codes] if isinstance(codes, list) else [],
        "title": str(data.get("t") or "")[:MAX_TITLE_LEN],
        "comment": str(data.get("c") or "")[:MAX_COMMENT_LEN],
    }
