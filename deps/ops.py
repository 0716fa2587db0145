# deps/ops.py
import secrets

from fastapi import Depends, Header, HTTPException, status

from app.container import Services
from deps.services import get_services


def require_ops_token(
    x_ops_token: str | None = Header(default=None, alias="X-Ops-Token"),
    services: Services = Depends(get_services),
) -> None:
    expected = services.config.ops_token
    if not expected:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="OPS_DISABLED")
    if not x_ops_token or not secrets.compare_digest(x_ops_token.strip(), expected):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="OPS_TOKEN_REQUIRED")
