# backend/rental_pricing/main.py
from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.logging import setup_logging
from .api.deps import get_current_user, CurrentUser

# ---- Routers ----
from .api.extensions_api import router as extensions_router
from .api.pricing_api import router as pricing_router
from .api.overage_api import router as overage_router

setup_logging()

app = FastAPI(title="Rental Pricing API")

# ---------------------------
# CORS (frontend dev servers)
# ---------------------------
def _allowed_origins(cfg) -> list[str]:
    return [o.strip().rstrip("/") for o in cfg.CORS_ALLOW_ORIGINS if o.strip()]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins(settings),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------
# Health & Current User
# ---------------------------
@app.get("/health", tags=["system"])
def health():
    return {"status": "ok"}


@app.get("/me", tags=["auth"])
def me(current: CurrentUser = Depends(get_current_user)):
    return {"id": current.id, "role": current.role_name}


# ---------------------------
# Routers
# ---------------------------
app.include_router(extensions_router)   # quotes, requests, approvals
app.include_router(pricing_router)      # base prices, tiers, packages
app.include_router(overage_router)      # odometer & km overage
