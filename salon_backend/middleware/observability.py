from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from salon_backend.core.request_context import clear_request_context, set_request_context
from salon_backend.services.security_audit import client_ip

logger = logging.getLogger(__name__)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        status_code = 500
        response = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            tenant_id = _extract_tenant_id(request)
            staff_id = _extract_staff_id(request)
            duration_ms = round((time.perf_counter() - start) * 1000, 2)

            # the app runs in a child task, so the identity is read back from request.state
            set_request_context(tenant_id=tenant_id, staff_id=staff_id)
            logger.info(
                "request completed",
                extra={
                    "request_id": request_id,
                    "tenant_id": tenant_id,
                    "staff_id": staff_id,
                    "endpoint": request.url.path,
                    "method": request.method,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                    "client_ip": client_ip(request),
                },
            )

            if response is not None:
                response.headers["X-Request-ID"] = request_id

            clear_request_context()


def _extract_tenant_id(request: Request) -> str | None:
    staff = getattr(request.state, "staff", None)
    tenant_id = getattr(staff, "tenant_id", None)
    if tenant_id is not None:
        return str(tenant_id)
    header_tenant = (request.headers.get("X-Tenant-ID") or "").strip()
    return header_tenant or None


def _extract_staff_id(request: Request) -> str | None:
    staff = getattr(request.state, "staff", None)
    if staff is None:
        return None
    staff_id = getattr(staff, "staff_id", None)
    return str(staff_id) if staff_id is not None else None
