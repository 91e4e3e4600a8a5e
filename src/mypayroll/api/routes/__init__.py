"""API routes."""

from mypayroll.api.routes.contributions import router as contributions_router
from mypayroll.api.routes.health import router as health_router
from mypayroll.api.routes.payroll_runs import router as payroll_runs_router
from mypayroll.api.routes.resignations import router as resignations_router

__all__ = [
    "contributions_router",
    "health_router",
    "payroll_runs_router",
    "resignations_router",
]
