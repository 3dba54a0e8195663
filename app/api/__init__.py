from fastapi import APIRouter

from app.api.routes import payments, admin, users

api_router = APIRouter()

api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
api_router.include_router(users.router, prefix="/users", tags=["Users"])
