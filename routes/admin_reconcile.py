from __future__ import annotations

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from app.container import Services
from deps.ops import require_ops_token
from deps.services import get_services
from schemas import ReconcileRunOut

router = APIRouter(prefix="/v1/admin/reconcile", tags=["admin-reconcile"], dependencies=[Depends(require_ops_token)])


@router.post("/run", response_model=ReconcileRunOut)
async def run_reconcile(services: Services = Depends(get_services)):
    return await run_in_threadpool(services.scheduler.sweep)
