"""
Clic-Tools — Auth endpoints
POST /auth/login, GET /auth/me
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clictools.api.deps import CurrentUser, get_db, require_auth
from clictools.config import get_settings
from clictools.core.security import create_access_token, verify_password
from clictools.models.user import User

router = APIRouter()
settings = get_settings()


# --- Schemas ---
class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class MeResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str


# --- Endpoints ---
@router.post("/login", response_model=TokenResponse)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    """Authenticate with email/password. Returns a bearer access token."""
    result = await db.execute(select(User).where(User.email == form_data.username.strip().lower()))
    user = result.scalar_one_or_none()
    if not user or not user.is_active or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    access_token = create_access_token(subject=user.id, name=user.name, email=user.email, role=user.role)
    return TokenResponse(
        access_token=access_token,
        expires_in=settings.JWT_ACCESS_TOKEN_TTL_MINUTES * 60,
    )


@router.get("/me", response_model=MeResponse)
async def me(user: CurrentUser = Depends(require_auth)) -> MeResponse:
    """Identity carried by the current token."""
    return MeResponse(id=user.id, name=user.name, email=user.email, role=user.role)
