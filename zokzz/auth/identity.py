"""
Identity index: normalized email / username -> user id.

Entries are claimed with the store's conditional write only. A plain
read-then-write on an index path would let two registrations both see the slot
free and both claim it.
"""

import re
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from zokzz.core.store import DocumentStore, join_path


logger = logging.getLogger(__name__)

USERS_PATH = "users"
PATH_UNSAFE = re.compile(r"[.#$\[\]/]")
PLACEHOLDER = ","


class IdentityKind(str, Enum):
    EMAIL = "email"
    USERNAME = "username"


INDEX_PATHS = {
    IdentityKind.EMAIL: "emailIndex",
    IdentityKind.USERNAME: "usernameIndex",
}

# user record field holding the value for the fallback scan
RAW_FIELDS = {
    IdentityKind.EMAIL: "email",
    IdentityKind.USERNAME: "usernameLower",
}


def normalize_key(value: str) -> str:
    return PATH_UNSAFE.sub(PLACEHOLDER, (value or "").strip().lower())


@dataclass(frozen=True)
class Reservation:
    committed: bool
    holder: Optional[str]


class IdentityIndex:
    def __init__(self, store: DocumentStore):
        self.store = store

    def key_path(self, kind: IdentityKind, value: str) -> str:
        return join_path(INDEX_PATHS[kind], normalize_key(value))

    def reserve(self, kind: IdentityKind, value: str, user_id: str) -> Reservation:
        """Claim ``value`` for ``user_id`` if nobody holds it yet."""
        result = self.store.conditional_set(self.key_path(kind, value), user_id)

        if result.committed:
            return Reservation(committed=True, holder=user_id)

        # a retry of our own registration already holds the slot
        if result.current == user_id:
            return Reservation(committed=True, holder=user_id)

        return Reservation(committed=False, holder=result.current)

    def release(self, kind: IdentityKind, value: str) -> bool:
        """Best-effort compensating delete. Failures are logged, never raised."""
        path = self.key_path(kind, value)
        try:
            self.store.delete(path)
            return True
        except Exception:
            logger.exception(f"identity_release_failed path={path}")
            return False

    def lookup(self, kind: IdentityKind, value: str) -> Optional[str]:
        key = normalize_key(value)
        if not key:
            return None

        holder = self.store.read(self.key_path(kind, value))
        if holder:
            return holder

        return self._scan_and_backfill(kind, value)

    def _scan_and_backfill(self, kind: IdentityKind, value: str) -> Optional[str]:
        # records created before the index existed only carry the raw field
        wanted = (value or "").strip().lower()
        field = RAW_FIELDS[kind]
        users = self.store.read(USERS_PATH) or {}

        for user_id, record in users.items():
            if not isinstance(record, dict):
                continue
            if str(record.get(field) or "").strip().lower() != wanted:
                continue

            reservation = self.reserve(kind, value, user_id)
            if reservation.committed:
                logger.info(f"identity_backfilled kind={kind.value} user_id={user_id}")
            else:
                logger.warning(
                    f"identity_backfill_conflict kind={kind.value} "
                    f"user_id={user_id} holder={reservation.holder}"
                )
            return user_id

        return None
