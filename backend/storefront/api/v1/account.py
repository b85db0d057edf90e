"""Account endpoints: profile update and account deletion."""

from fastapi import APIRouter, Response
from pydantic import BaseModel, ConfigDict, Field

from storefront.api.deps import Accounts, CurrentUserId
from storefront.core.auth import clear_auth_cookie
from storefront.core.responses import DataResponse

router = APIRouter()


class ProfileUpdateRequest(BaseModel):
    """Request body for PATCH /account/profile."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(max_length=255)


@router.patch("/profile")
async def update_profile(
    body: ProfileUpdateRequest,
    user_id: CurrentUserId,
    accounts: Accounts,
) -> DataResponse[dict]:
    """Change the display name."""
    user = await accounts.update_profile(user_id, body.name)
    return DataResponse(data={"id": str(user.id), "name": user.name})


@router.delete("")
async def delete_account(
    response: Response,
    user_id: CurrentUserId,
    accounts: Accounts,
) -> DataResponse[dict]:
    """Anonymize the caller's account and end the session.

    Orders are kept with a placeholder email; linked identities and all
    outstanding tokens are removed.
    """
    await accounts.delete_account(user_id)
    clear_auth_cookie(response)
    return DataResponse(data={"message": "Your account has been deleted."})
