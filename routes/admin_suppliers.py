# routes/admin_suppliers.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from app.container import Services
from deps.ops import require_ops_token
from deps.services import get_services
from schemas import SupplierBalanceOut

router = APIRouter(prefix="/v1/admin/suppliers", tags=["admin-suppliers"], dependencies=[Depends(require_ops_token)])
logger = logging.getLogger("bundlepay.suppliers")


@router.get("/balances")
def supplier_balances(services: Services = Depends(get_services)):
    rows: list[SupplierBalanceOut] = []
    for name, supplier in sorted(services.suppliers.items()):
        try:
            result = supplier.get_balance()
        except Exception as exc:
            logger.warning("supplier_balance_error supplier=%s error=%s", name, type(exc).__name__)
            rows.append(
                SupplierBalanceOut(
                    supplier=name,
                    supported=True,
                    healthy=services.health.is_healthy(name),
                    message=f"{type(exc).__name__}",
                )
            )
            continue
        rows.append(
            SupplierBalanceOut(
                supplier=name,
                supported=result.supported,
                healthy=services.health.is_healthy(name),
                balance=result.balance,
                currency=result.currency,
                message=result.message or None,
            )
        )
    return {"suppliers": rows, "cooldowns": services.health.snapshot()}
