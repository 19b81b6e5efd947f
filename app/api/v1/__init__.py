from fastapi import APIRouter
from app.api.v1 import auth, applications, branches, super_admin, metrics

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(applications.router, prefix="/applications", tags=["applications"])
api_router.include_router(branches.router, prefix="/branches", tags=["branches"])
api_router.include_router(super_admin.router, prefix="/super-admin", tags=["super-admin"])
api_router.include_router(metrics.router, tags=["monitoring"])
