from enum import Enum

from fastapi import status


class ErrorKind(str, Enum):
    # validation
    INVALID_EMAIL = "INVALID_EMAIL"
    INVALID_USERNAME = "INVALID_USERNAME"
    INVALID_PASSWORD = "INVALID_PASSWORD"
    INVALID_INPUT = "INVALID_INPUT"
    SELF_REQUEST = "SELF_REQUEST"
    PARTICIPANTS_REQUIRED = "PARTICIPANTS_REQUIRED"
    MESSAGE_BODY_REQUIRED = "MESSAGE_BODY_REQUIRED"
    INVALID_IMAGE = "INVALID_IMAGE"
    IMAGE_TOO_LARGE = "IMAGE_TOO_LARGE"
    UNSUPPORTED_MESSAGE_TYPE = "UNSUPPORTED_MESSAGE_TYPE"

    # conflict
    EMAIL_TAKEN = "EMAIL_TAKEN"
    USERNAME_TAKEN = "USERNAME_TAKEN"
    INVALID_TRANSITION = "INVALID_TRANSITION"

    # authentication / authorization
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_TOKEN = "INVALID_TOKEN"
    NOT_REQUEST_RECIPIENT = "NOT_REQUEST_RECIPIENT"
    NOT_FRIENDS = "NOT_FRIENDS"

    # not found
    USER_NOT_FOUND = "USER_NOT_FOUND"
    REQUEST_NOT_FOUND = "REQUEST_NOT_FOUND"
    CONVERSATION_NOT_FOUND = "CONVERSATION_NOT_FOUND"

    INTERNAL = "INTERNAL"


STATUS_BY_KIND = {
    ErrorKind.INVALID_EMAIL: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_USERNAME: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_PASSWORD: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.SELF_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.PARTICIPANTS_REQUIRED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.MESSAGE_BODY_REQUIRED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_IMAGE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.IMAGE_TOO_LARGE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNSUPPORTED_MESSAGE_TYPE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.EMAIL_TAKEN: status.HTTP_409_CONFLICT,
    ErrorKind.USERNAME_TAKEN: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.NOT_REQUEST_RECIPIENT: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FRIENDS: status.HTTP_403_FORBIDDEN,
    ErrorKind.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.REQUEST_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONVERSATION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class CoreError(Exception):
    """Failure raised by the core services.

    ``kind`` is the symbolic error the HTTP layer maps to a status code;
    ``message`` is safe to show to the client.
    """

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND.get(self.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)

    def __repr__(self):
        return f"CoreError(kind={self.kind.value}, message={self.message!r})"


class StoreError(Exception):
    """The document store could not complete an operation."""
