from typing import List, Optional

from zokzz.auth.identity import IdentityIndex, IdentityKind, USERS_PATH
from zokzz.core.store import DocumentStore, join_path


SEARCH_LIMIT = 10
PREFIX_END = "\uf8ff"


def normalise_user_record(user_id: str, payload) -> Optional[dict]:
    if not isinstance(payload, dict):
        return None

    return {
        "id": user_id,
        "email": payload.get("email"),
        "username": payload.get("username"),
        "usernameLower": payload.get("usernameLower"),
        "salt": payload.get("salt"),
        "passwordHash": payload.get("passwordHash"),
        "createdAt": payload.get("createdAt"),
        "lastLoginAt": payload.get("lastLoginAt"),
        "friends": payload.get("friends") or {},
    }


def public_profile(user: Optional[dict]) -> Optional[dict]:
    """Display info safe to hand to other users."""
    if not user:
        return None
    return {"id": user["id"], "username": user["username"], "email": user["email"]}


class UserDirectory:
    def __init__(self, store: DocumentStore, identity: IdentityIndex = None):
        self.store = store
        self.identity = identity or IdentityIndex(store)

    def allocate_id(self) -> str:
        return self.store.push_key(USERS_PATH)

    def create(self, user_id: str, record: dict) -> None:
        self.store.write(join_path(USERS_PATH, user_id), record)

    def get(self, user_id: str) -> Optional[dict]:
        if not user_id:
            return None
        return normalise_user_record(user_id, self.store.read(join_path(USERS_PATH, user_id)))

    def update(self, user_id: str, fields: dict) -> None:
        self.store.update(join_path(USERS_PATH, user_id), fields)

    def find_by_email(self, email: str) -> Optional[dict]:
        user_id = self.identity.lookup(IdentityKind.EMAIL, email)
        return self.get(user_id) if user_id else None

    def search(self, query: str, limit: int = SEARCH_LIMIT) -> List[dict]:
        """Prefix match on lowercase username and email, merged by id."""
        lower_query = query.lower()
        aggregated = {}

        for field in ("usernameLower", "email"):
            documents = self.store.range_query(
                USERS_PATH,
                field,
                start=lower_query,
                end=lower_query + PREFIX_END,
                limit=limit,
            )
            for document in documents:
                user = normalise_user_record(document.key, document.value)
                if user:
                    aggregated[document.key] = user

        return list(aggregated.values())[:limit]

    def friend_ids(self, user_id: str) -> List[str]:
        friends = self.store.read(join_path(USERS_PATH, user_id, "friends")) or {}
        return [friend_id for friend_id, flag in friends.items() if flag]

    def has_friend_edge(self, user_id: str, friend_id: str) -> bool:
        return bool(self.store.read(join_path(USERS_PATH, user_id, "friends", friend_id)))

    def add_friend_edge(self, user_id: str, friend_id: str) -> None:
        self.store.write(join_path(USERS_PATH, user_id, "friends", friend_id), True)
