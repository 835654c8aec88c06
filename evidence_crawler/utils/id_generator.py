"""
Prefixed random ids for stored rows.

    ct_k3x9a0qz   content (task or reference)
    cl_...        claim
    au_...        author
    pb_...        publisher

The suffix is 8 lowercase base36 characters drawn from `secrets`.
"""
import re
import secrets
import string
from typing import Optional

SUFFIX_CHARS = string.digits + string.ascii_lowercase
SUFFIX_LENGTH = 8

ENTITY_PREFIX = {
    'content': 'ct',
    'claim': 'cl',
    'author': 'au',
    'publisher': 'pb',
}
_ENTITY_BY_PREFIX = {prefix: entity for entity, prefix in ENTITY_PREFIX.items()}

_ID_RE = re.compile(
    r'^(?P<prefix>%s)_[0-9a-z]{%d}$' % ('|'.join(_ENTITY_BY_PREFIX), SUFFIX_LENGTH)
)


def generate_id(entity_type: str) -> str:
    """
    New id for a content, claim, author or publisher row.

    Raises:
        ValueError: unknown entity type
    """
    prefix = ENTITY_PREFIX.get(entity_type)
    if prefix is None:
        raise ValueError(f"Unknown entity type {entity_type!r}, expected one of {sorted(ENTITY_PREFIX)}")
    suffix = ''.join(secrets.choice(SUFFIX_CHARS) for _ in range(SUFFIX_LENGTH))
    return f"{prefix}_{suffix}"


def validate_id(id_str) -> bool:
    return isinstance(id_str, str) and _ID_RE.match(id_str) is not None


def get_id_type(id_str) -> Optional[str]:
    match = _ID_RE.match(id_str) if isinstance(id_str, str) else None
    return _ENTITY_BY_PREFIX[match.group('prefix')] if match else None
