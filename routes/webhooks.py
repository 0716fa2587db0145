# routes/webhooks.py
from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from app.container import Services
from app.webhooks.reconciler import WebhookReject
from deps.services import get_services

router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])


@router.post("/moolre")
async def moolre_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
):
    raw = await request.body()
    result = await run_in_threadpool(services.webhooks.handle, raw, dict(request.headers))

    if isinstance(result, WebhookReject):
        raise HTTPException(status_code=401, detail={"error": result.error})

    # Acknowledge first; the supplier walk runs after the response is sent.
    if result.dispatch_order is not None:
        background_tasks.add_task(services.webhooks.dispatch_paid, result.dispatch_order)
    return result.as_dict()
