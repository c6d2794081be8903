"""Admin JSON API under /api/admin, guarded by X-Admin-Secret."""
from fastapi import APIRouter

from voucher_engine.admin.routers import vouchers

admin_router = APIRouter(prefix="/api/admin", tags=["admin"])

admin_router.include_router(vouchers.router, prefix="/vouchers", tags=["admin-vouchers"])
