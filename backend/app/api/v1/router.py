from fastapi import APIRouter

from app.api.v1 import auth, companies, users, categories, approval_rules
from app.api.v1 import expenses, approvals, dashboard

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(companies.router, prefix="/companies", tags=["companies"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(categories.router, prefix="/expense-categories", tags=["expense-categories"])
api_router.include_router(approval_rules.router, prefix="/approval-rules", tags=["approval-rules"])
api_router.include_router(expenses.router, prefix="/expenses", tags=["expenses"])
api_router.include_router(approvals.router, prefix="/approvals", tags=["approvals"])
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
