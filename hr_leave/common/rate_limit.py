"""Rate limiting configuration using slowapi.

Clients are keyed by the forwarded employee id when present, otherwise by
remote address. Routers decorate write endpoints with ``@limiter.limit``.
"""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from hr_leave.config import settings

SUBMIT_LIMIT = "10/minute"


def employee_or_remote_address(request: Request) -> str:
    employee_id = request.headers.get("X-Employee-Id")
    if employee_id:
        return f"employee:{employee_id}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=employee_or_remote_address,
    default_limits=["60/minute"],
    enabled=settings.RATE_LIMIT_ENABLED,
)
