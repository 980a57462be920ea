from fastapi import APIRouter

from .auth_routes import router as auth_router
from .donor_routes import router as donor_router

router = APIRouter()

router.include_router(auth_router)
router.include_router(donor_router)
