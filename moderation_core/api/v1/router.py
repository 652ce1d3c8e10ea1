from fastapi import APIRouter

from moderation_core.api.v1.endpoints import admin, auth, moderation

router = APIRouter()

router.include_router(auth.router, prefix="/auth")
router.include_router(moderation.router, prefix="/moderation")
router.include_router(admin.router, prefix="/admin")
