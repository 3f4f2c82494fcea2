import re
import logging

from zokzz.auth.identity import IdentityIndex, IdentityKind
from zokzz.auth.users import UserDirectory, public_profile
from zokzz.core.errors import CoreError, ErrorKind
from zokzz.core.security import hash_password, issue_token, verify_password
from zokzz.core.store import DocumentStore
from zokzz.utils.timestamps import utc_now_iso


logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")
MIN_PASSWORD_LENGTH = 10
MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 32


def normalise_credentials(email, password, username=None):
    return (
        email.strip().lower() if isinstance(email, str) else "",
        password.strip() if isinstance(password, str) else "",
        username.strip() if isinstance(username, str) else "",
    )


def validate_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.search(email))


def validate_password(password: str) -> bool:
    return len(password) >= MIN_PASSWORD_LENGTH


def validate_username(username: str) -> bool:
    return MIN_USERNAME_LENGTH <= len(username) <= MAX_USERNAME_LENGTH


class AccountService:
    """registerUser / authenticateUser / getProfile."""

    def __init__(self, store: DocumentStore):
        self.identity = IdentityIndex(store)
        self.users = UserDirectory(store, self.identity)

    def register_user(self, email, username, password) -> dict:
        """
        Reserve the email, then the username, then write the user record.

        A failed username reservation releases the email reservation. A failed
        record write releases both. Release failures are only logged; the key
        then looks taken until it is cleared by hand.
        """
        email, password, username = normalise_credentials(email, password, username)

        if not validate_email(email):
            raise CoreError(ErrorKind.INVALID_EMAIL, "Please provide a valid email address.")

        if not validate_password(password):
            raise CoreError(
                ErrorKind.INVALID_PASSWORD,
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.",
            )

        if not validate_username(username):
            raise CoreError(
                ErrorKind.INVALID_USERNAME,
                f"Username must be between {MIN_USERNAME_LENGTH} and "
                f"{MAX_USERNAME_LENGTH} characters long.",
            )

        credential = hash_password(password)
        user_id = self.users.allocate_id()

        email_reservation = self.identity.reserve(IdentityKind.EMAIL, email, user_id)
        if not email_reservation.committed:
            logger.info(f"user_register_rejected reason=email_taken email={email}")
            raise CoreError(ErrorKind.EMAIL_TAKEN, "An account with this email already exists.")

        username_reservation = self.identity.reserve(IdentityKind.USERNAME, username, user_id)
        if not username_reservation.committed:
            self.identity.release(IdentityKind.EMAIL, email)
            logger.info(f"user_register_rejected reason=username_taken username={username}")
            raise CoreError(ErrorKind.USERNAME_TAKEN, "Username already taken.")

        record = {
            "email": email,
            "username": username,
            "usernameLower": username.lower(),
            "salt": credential.salt,
            "passwordHash": credential.hash,
            "createdAt": utc_now_iso(),
            "lastLoginAt": None,
        }

        try:
            self.users.create(user_id, record)
        except Exception:
            logger.exception(f"user_record_write_failed user_id={user_id}")
            self.identity.release(IdentityKind.EMAIL, email)
            self.identity.release(IdentityKind.USERNAME, username)
            raise CoreError(ErrorKind.INTERNAL, "Unable to register at this time.")

        logger.info(f"user_register_success user_id={user_id} username={username}")

        return {
            "token": issue_token(user_id, email, username),
            "user": {"id": user_id, "email": email, "username": username},
        }

    def authenticate_user(self, email, password) -> dict:
        email, password, _ = normalise_credentials(email, password)

        if not validate_email(email) or not password:
            raise CoreError(ErrorKind.INVALID_CREDENTIALS, "Invalid email or password.")

        user = self.users.find_by_email(email)
        if not user or not verify_password(password, user["salt"], user["passwordHash"]):
            logger.info(f"user_login_failed email={email}")
            raise CoreError(ErrorKind.INVALID_CREDENTIALS, "Invalid credentials.")

        try:
            self.users.update(user["id"], {"lastLoginAt": utc_now_iso()})
        except Exception:
            logger.exception(f"last_login_update_failed user_id={user['id']}")

        logger.info(f"user_login_success user_id={user['id']}")

        return {
            "token": issue_token(user["id"], user["email"], user["username"]),
            "user": public_profile(user),
        }

    def get_profile(self, user_id: str) -> dict:
        user = self.users.get(user_id)
        if not user:
            raise CoreError(ErrorKind.USER_NOT_FOUND, "User not found.")

        return {
            **public_profile(user),
            "createdAt": user["createdAt"],
            "lastLoginAt": user["lastLoginAt"],
        }
