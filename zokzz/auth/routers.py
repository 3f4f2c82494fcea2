from fastapi import APIRouter, Depends

from zokzz.core.dependencies import get_account_service, get_current_user_id
from zokzz.auth.service import AccountService
from .schemas import (
    UserRegistrationModel,
    UserLoginModel,
    AuthResponseModel,
    MeResponseModel,
)

router = APIRouter()

@router.post("/register", response_model=AuthResponseModel, status_code=201)
def register_user(
    data: UserRegistrationModel,
    accounts: AccountService = Depends(get_account_service),
):
    """
    Register a new user.

    The email is reserved first, then the username; the user record is only
    written once both are held. Returns a bearer token valid for one hour.

    **Input Fields**
    - **email**: A valid email address. Compared case-insensitively.
    - **username**: 3 to 32 characters. Display casing is preserved, uniqueness
      is case-insensitive.
    - **password**: At least 10 characters.

    **Returns**
    - `token`: Bearer token
    - `user`: id, email and username

    **Errors**
    - 400: Invalid email, username or password (`INVALID_*`)
    - 409: `EMAIL_TAKEN` or `USERNAME_TAKEN`
    - 500: Store or token service failure
    """
    return accounts.register_user(
        data.email, data.username, data.password.get_secret_value()
    )

@router.post("/login", response_model=AuthResponseModel, status_code=200)
def login_user(
    user_data: UserLoginModel,
    accounts: AccountService = Depends(get_account_service),
):
    """
    Authenticate with email and password.

    **Returns**
    - `token`: Bearer token
    - `user`: id, email and username

    **Errors**
    - 401: Invalid email or password
    - 500: Internal server error
    """
    return accounts.authenticate_user(user_data.email, user_data.password.get_secret_value())

@router.get("/me", response_model=MeResponseModel, status_code=200)
def get_me(
    user_id: str = Depends(get_current_user_id),
    accounts: AccountService = Depends(get_account_service),
):
    """
    Profile of the authenticated user.

    **Errors**
    - `401`: Invalid or expired token
    - `404`: User not found
    """
    profile = accounts.get_profile(user_id)
    return {
        "id": profile["id"],
        "email": profile["email"],
        "username": profile["username"],
        "created_at": profile["createdAt"],
        "last_login_at": profile["lastLoginAt"],
    }
