"""
Account API: signup, and edits/deletion within the post-signup window.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from solvetrack.api.deps import get_now, get_provider, get_stores
from solvetrack.features.users.service import delete_account, signup, update_account

router = APIRouter()


class SignupRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    display_name: str = Field(..., min_length=1, max_length=100)
    is_public: bool = False


class UpdateAccountRequest(BaseModel):
    username: str = Field(..., min_length=1)
    display_name: Optional[str] = Field(None, max_length=100)
    is_public: Optional[bool] = None


class DeleteAccountRequest(BaseModel):
    username: str = Field(..., min_length=1)


def _account_payload(user) -> dict:
    return {
        "id": user.user_id,
        "username": user.username,
        "display_name": user.display_name,
        "is_public": user.is_public,
        "created_at": user.created_at.isoformat(),
    }


@router.post("/signup", status_code=201)
def create_account(
    body: SignupRequest,
    stores=Depends(get_stores),
    provider=Depends(get_provider),
    now: datetime = Depends(get_now),
):
    user = signup(body.username, body.display_name, body.is_public, now=now, stores=stores, provider=provider)
    return {"message": "Account created", "user": _account_payload(user)}


@router.post("/account/update")
def update_existing_account(body: UpdateAccountRequest, stores=Depends(get_stores), now: datetime = Depends(get_now)):
    user = update_account(body.username, body.display_name, body.is_public, now=now, stores=stores)
    return {"message": "Account updated", "user": _account_payload(user)}


@router.post("/account/delete")
def delete_existing_account(body: DeleteAccountRequest, stores=Depends(get_stores), now: datetime = Depends(get_now)):
    delete_account(body.username, now=now, stores=stores)
    return {"message": "Account deleted"}
