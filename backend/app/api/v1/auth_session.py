"""Session endpoints.

- POST /auth/logout: clear the session cookie
- GET /auth/me: describe the signed-in account
"""

from fastapi import APIRouter, Response

from app.api.deps import Accounts, CurrentAccountId
from app.core.auth import clear_auth_cookie
from app.core.errors import UnauthorizedError
from app.core.responses import DataResponse
from app.models.account import Account

router = APIRouter()


def _account_to_response(account: Account) -> dict:
    """Build the public account payload. Never includes hashes or codes."""
    return {
        "id": str(account.id),
        "email": account.email,
        "name": account.display_name,
        "first_name": account.first_name,
        "last_name": account.last_name,
        "profile_image_url": account.profile_image_url,
        "auth_method": account.last_used_method.value,
        "is_verified": account.is_verified,
        "has_password": account.has_password,
        "has_federated_link": account.has_federated_link,
    }


# ===================================================================
# POST /auth/logout
# ===================================================================


@router.post("/logout")
async def logout(response: Response) -> DataResponse[dict]:
    """Clear the session cookie.

    No auth required; clears the cookie regardless.
    """
    clear_auth_cookie(response)
    return DataResponse(data={"message": "Signed out"})


# ===================================================================
# GET /auth/me
# ===================================================================


@router.get("/me")
async def get_me(
    account_id: CurrentAccountId,
    accounts: Accounts,
) -> DataResponse[dict]:
    """Return the signed-in account.

    Returns 401 if there is no valid session or the account is gone.
    """
    account = await accounts.find_by_id(account_id)
    if account is None:
        raise UnauthorizedError()
    return DataResponse(data=_account_to_response(account))
