from fastapi import APIRouter, Depends

from homecinema.core.security import get_current_user

router = APIRouter()


@router.get("/user")
def current_user(user: str = Depends(get_current_user)):
    """
    Return the identity behind the Basic credentials of this request.
    """
    return {"username": user, "isAuthenticated": True}
