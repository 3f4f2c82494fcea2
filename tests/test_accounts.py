from concurrent.futures import ThreadPoolExecutor

import pytest

from zokzz.auth.identity import IdentityIndex, IdentityKind, normalize_key
from zokzz.auth.service import AccountService
from zokzz.core.errors import CoreError, ErrorKind
from zokzz.core.security import hash_password, verify_token_string

from conftest import PASSWORD


def test_normalize_key_replaces_path_unsafe_characters():
    assert normalize_key("  Ann.Lee#1$[x]/y@Mail.COM ") == "ann,lee,1,,x,,y@mail,com"


def test_register_returns_token_and_user(accounts, store):
    result = accounts.register_user(" Ann@Example.com ", "AnnLee", PASSWORD)

    user = result["user"]
    assert user["email"] == "ann@example.com"
    assert user["username"] == "AnnLee"

    claims = verify_token_string(result["token"])
    assert claims["sub"] == user["id"]
    assert claims["username"] == "AnnLee"

    record = store.read(f"users/{user['id']}")
    assert record["usernameLower"] == "annlee"
    assert "password" not in record
    assert record["passwordHash"] != PASSWORD
    assert store.read("emailIndex/ann@example,com") == user["id"]
    assert store.read("usernameIndex/annlee") == user["id"]


@pytest.mark.parametrize(
    "email, username, password, kind",
    [
        ("not-an-email", "valid_name", PASSWORD, ErrorKind.INVALID_EMAIL),
        ("a@example.com", "valid_name", "short", ErrorKind.INVALID_PASSWORD),
        ("a@example.com", "ab", PASSWORD, ErrorKind.INVALID_USERNAME),
        ("a@example.com", "x" * 33, PASSWORD, ErrorKind.INVALID_USERNAME),
    ],
)
def test_register_validation(accounts, store, email, username, password, kind):
    with pytest.raises(CoreError) as error:
        accounts.register_user(email, username, password)

    assert error.value.kind is kind
    assert error.value.status_code == 400
    assert store.read("emailIndex") is None


def test_duplicate_email_is_case_insensitive(accounts):
    accounts.register_user("ann@example.com", "ann", PASSWORD)

    with pytest.raises(CoreError) as error:
        accounts.register_user("ANN@example.com", "someone_else", PASSWORD)

    assert error.value.kind is ErrorKind.EMAIL_TAKEN
    assert error.value.status_code == 409


def test_username_conflict_releases_email(accounts, store):
    accounts.register_user("ann@example.com", "ann", PASSWORD)

    with pytest.raises(CoreError) as error:
        accounts.register_user("bob@example.com", "ANN", PASSWORD)

    assert error.value.kind is ErrorKind.USERNAME_TAKEN
    assert store.read("emailIndex/bob@example,com") is None

    # the email is usable again
    accounts.register_user("bob@example.com", "bob", PASSWORD)


def test_failed_record_write_releases_both_reservations(store, monkeypatch):
    accounts = AccountService(store)

    def broken_create(user_id, record):
        raise RuntimeError("store down")

    monkeypatch.setattr(accounts.users, "create", broken_create)

    with pytest.raises(CoreError) as error:
        accounts.register_user("ann@example.com", "ann", PASSWORD)

    assert error.value.kind is ErrorKind.INTERNAL
    assert store.read("emailIndex") is None
    assert store.read("usernameIndex") is None


def test_concurrent_registrations_with_same_email_succeed_once(store):
    accounts = AccountService(store)

    def attempt(index):
        try:
            return accounts.register_user("race@example.com", f"racer{index}", PASSWORD)
        except CoreError as error:
            return error

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, range(8)))

    winners = [r for r in results if isinstance(r, dict)]
    losers = [r for r in results if isinstance(r, CoreError)]

    assert len(winners) == 1
    assert all(error.kind is ErrorKind.EMAIL_TAKEN for error in losers)
    assert list(store.read("users")) == [winners[0]["user"]["id"]]
    assert store.read("usernameIndex") == {
        winners[0]["user"]["username"]: winners[0]["user"]["id"]
    }


def test_concurrent_registrations_with_same_username_succeed_once(store):
    accounts = AccountService(store)

    def attempt(index):
        try:
            return accounts.register_user(f"user{index}@example.com", "Shared", PASSWORD)
        except CoreError as error:
            return error

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, range(8)))

    winners = [r for r in results if isinstance(r, dict)]
    assert len(winners) == 1
    assert all(
        r.kind is ErrorKind.USERNAME_TAKEN for r in results if isinstance(r, CoreError)
    )
    # losers gave their email back
    assert store.read("emailIndex") == {
        normalize_key(winners[0]["user"]["email"]): winners[0]["user"]["id"]
    }


def test_lookup_falls_back_to_scan_and_backfills(store):
    credential = hash_password(PASSWORD)
    store.write(
        "users/legacy1",
        {
            "email": "old@example.com",
            "username": "OldTimer",
            "usernameLower": "oldtimer",
            "salt": credential.salt,
            "passwordHash": credential.hash,
        },
    )
    identity = IdentityIndex(store)

    assert identity.lookup(IdentityKind.EMAIL, "OLD@example.com") == "legacy1"
    assert identity.lookup(IdentityKind.USERNAME, "oldtimer") == "legacy1"
    assert store.read("emailIndex/old@example,com") == "legacy1"
    assert store.read("usernameIndex/oldtimer") == "legacy1"

    # the backfilled index now blocks duplicates
    with pytest.raises(CoreError) as error:
        AccountService(store).register_user("old@example.com", "newcomer", PASSWORD)
    assert error.value.kind is ErrorKind.EMAIL_TAKEN


def test_lookup_unknown_value(store):
    identity = IdentityIndex(store)
    assert identity.lookup(IdentityKind.EMAIL, "nobody@example.com") is None
    assert identity.lookup(IdentityKind.EMAIL, "   ") is None


def test_authenticate_user(accounts, store):
    registered = accounts.register_user("ann@example.com", "ann", PASSWORD)
    user_id = registered["user"]["id"]

    result = accounts.authenticate_user("ANN@example.com", PASSWORD)

    assert result["user"] == {"id": user_id, "username": "ann", "email": "ann@example.com"}
    assert verify_token_string(result["token"])["sub"] == user_id
    assert store.read(f"users/{user_id}/lastLoginAt")


@pytest.mark.parametrize(
    "email, password",
    [
        ("ann@example.com", "wrong-password-123"),
        ("nobody@example.com", PASSWORD),
        ("not-an-email", PASSWORD),
    ],
)
def test_authenticate_rejects_bad_credentials(accounts, email, password):
    accounts.register_user("ann@example.com", "ann", PASSWORD)

    with pytest.raises(CoreError) as error:
        accounts.authenticate_user(email, password)

    assert error.value.kind is ErrorKind.INVALID_CREDENTIALS
    assert error.value.status_code == 401


def test_get_profile(accounts):
    user_id = accounts.register_user("ann@example.com", "ann", PASSWORD)["user"]["id"]

    profile = accounts.get_profile(user_id)
    assert profile["id"] == user_id
    assert profile["createdAt"]
    assert profile["lastLoginAt"] is None

    with pytest.raises(CoreError) as error:
        accounts.get_profile("missing")
    assert error.value.kind is ErrorKind.USER_NOT_FOUND


def test_invalid_token():
    with pytest.raises(CoreError) as error:
        verify_token_string("not-a-token")
    assert error.value.kind is ErrorKind.INVALID_TOKEN
