"""Centralized v1 API router — all module routers are included here."""

from fastapi import APIRouter

from src.modules.invoice.router import router as invoice_router
from src.modules.workflow.router import milestone_router, report_router
from src.modules.workflow.router import router as workflow_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(invoice_router)
v1_router.include_router(workflow_router)
v1_router.include_router(milestone_router)
v1_router.include_router(report_router)
