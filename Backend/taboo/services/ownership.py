"""Ownership Guard - decides which device may modify or delete a word set.

Device ids are heuristic fingerprints sent by the client, so this guard is an
attribution check against accidental deletion, not an access-control boundary.
"""

from typing import Protocol

DELETE = "delete"
MODIFY = "modify"
DESTRUCTIVE_ACTIONS = frozenset({DELETE, MODIFY})

ALLOW = "allow"
DENY = "deny"
NOT_FOUND = "not_found"


class Owned(Protocol):
    is_custom: bool

    @property
    def creator_device_id(self) -> str | None: ...


def authorize(action: str, word_set: Owned | None, device_id: str) -> str:
    """Return ALLOW, DENY or NOT_FOUND for `action` on `word_set`.

    Built-in sets refuse every destructive action. Custom sets allow them
    only for their creating device; an empty device id owns nothing.
    """
    if word_set is None:
        return NOT_FOUND
    if action not in DESTRUCTIVE_ACTIONS:
        return ALLOW
    if not word_set.is_custom:
        return DENY
    if not device_id or word_set.creator_device_id != device_id:
        return DENY
    return ALLOW


def is_allowed(action: str, word_set: Owned | None, device_id: str) -> bool:
    return authorize(action, word_set, device_id) == ALLOW
