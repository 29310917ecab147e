from fastapi import APIRouter

from kasledger.api.routers import accounts, auth, categories, ledger, monthly_balances, reports, users

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(categories.router)
api_router.include_router(accounts.router)
api_router.include_router(ledger.router)
api_router.include_router(monthly_balances.router)
api_router.include_router(reports.router)
