"""
Hashids encoding for public-facing identifiers.

Every entity kind gets its own salt so an id of one kind never decodes as
another kind (a proposal hashid is useless as a commission id).
"""
from hashids import Hashids

from sendix.core.config import settings

# Minimum length for obfuscation
MIN_LENGTH = 8

KINDS = ("user", "load", "proposal", "commission", "thread", "message")

_hashers = {
    kind: Hashids(salt=f"{kind}_id_{settings.secret_key}", min_length=MIN_LENGTH)
    for kind in KINDS
}


def encode_id(kind: str, id: int) -> str:
    """Encode an integer primary key for the given entity kind."""
    return _hashers[kind].encode(id)


def decode_id(kind: str, hashid: str | None) -> int | None:
    """Decode a hashid of the given kind. Returns None if invalid."""
    if not hashid:
        return None
    try:
        result = _hashers[kind].decode(hashid)
        return result[0] if result else None
    except Exception:
        return None


def encode_optional(kind: str, id: int | None) -> str | None:
    return encode_id(kind, id) if id is not None else None
