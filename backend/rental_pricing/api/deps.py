# backend/rental_pricing/api/deps.py
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..core.config import SessionLocal, Settings, settings
from ..core.security import decode_token
from ..pricing.errors import (
    DataInconsistency,
    InvalidDuration,
    InvalidPrice,
    InvalidStateTransition,
    InvalidTierConfiguration,
    NoBasePriceConfigured,
    NotFound,
    PersistenceFailure,
    PricingError,
)

# single Bearer field for Swagger "Authorize"
auth_scheme = HTTPBearer(auto_error=True)

# ---------------------------
# DB Session Dependency
# ---------------------------
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_settings() -> Settings:
    return settings

# ---------------------------
# Current User DTO
# ---------------------------
class CurrentUser:
    def __init__(self, id: str, role_name: str):
        self.id = id
        self.role_name = role_name

# ---------------------------
# AuthN: Token -> CurrentUser
# ---------------------------
async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> CurrentUser:
    token = credentials.credentials
    try:
        payload = decode_token(token)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id: Optional[str] = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return CurrentUser(id=str(user_id), role_name=payload.get("role") or "")

# ---------------------------
# AuthZ: auto-approve decision
# ---------------------------
def can_auto_approve(current: CurrentUser, cfg: Settings = settings) -> bool:
    """The engine never derives roles; this is the decision it is handed."""
    return (current.role_name or "").lower() in {r.lower() for r in cfg.AUTO_APPROVE_ROLES}

# ---------------------------
# Domain error -> HTTP
# ---------------------------
def http_error(e: PricingError) -> HTTPException:
    if isinstance(e, NotFound):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, (InvalidDuration, InvalidPrice, InvalidTierConfiguration, NoBasePriceConfigured)):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(e, (InvalidStateTransition, DataInconsistency)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(e, PersistenceFailure):
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=e.to_dict())
