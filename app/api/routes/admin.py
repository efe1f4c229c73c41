"""Administrative routes: rate limit policies, counters and storage quotas.

All routes require the admin ``X-API-Key`` and are themselves rate limited
under ``settings:get`` / ``settings:put``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status

from app.core.auth import require_admin_api_key
from app.core.container import get_quota_guard, get_rate_limiter
from app.core.rate_limit import rate_limit
from app.schemas.rate_limit import (
    RateLimitPolicyList,
    RateLimitPolicyResponse,
    RateLimitPolicyUpdate,
)
from app.schemas.storage import (
    AllocationResponse,
    AllocationUpdate,
    DepartmentUsageList,
    DepartmentUsageResponse,
)

logger = logging.getLogger(__name__)

READ_ENDPOINT = "settings:get"
WRITE_ENDPOINT = "settings:put"

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin_api_key)],
)


@router.get(
    "/rate-limits",
    response_model=RateLimitPolicyList,
    dependencies=[Depends(rate_limit(READ_ENDPOINT))],
)
def list_rate_limit_policies(request: Request) -> RateLimitPolicyList:
    """List the endpoints that have an explicit policy."""

    policies = get_rate_limiter(request).list_policies()
    return RateLimitPolicyList(
        policies=[RateLimitPolicyResponse.from_policy(p) for p in policies]
    )


@router.get(
    "/rate-limits/{endpoint}",
    response_model=RateLimitPolicyResponse,
    dependencies=[Depends(rate_limit(READ_ENDPOINT))],
)
def get_rate_limit_policy(request: Request, endpoint: str) -> RateLimitPolicyResponse:
    """Return the policy in force for ``endpoint`` (configured or default)."""

    effective = get_rate_limiter(request).get_policy(endpoint)
    return RateLimitPolicyResponse.from_policy(effective.policy, is_default=effective.is_default)


@router.put(
    "/rate-limits/{endpoint}",
    response_model=RateLimitPolicyResponse,
    dependencies=[Depends(rate_limit(WRITE_ENDPOINT))],
)
def put_rate_limit_policy(
    request: Request,
    endpoint: str,
    body: RateLimitPolicyUpdate,
) -> RateLimitPolicyResponse:
    """Create or overwrite the policy for ``endpoint``.

    Takes effect on the next request; live counters keep their windows.
    """

    policy = get_rate_limiter(request).set_policy(
        endpoint,
        max_requests=body.max_requests,
        window_ms=body.window_ms,
        description=body.description,
    )
    return RateLimitPolicyResponse.from_policy(policy)


@router.delete(
    "/rate-limits/{endpoint}/counters/{identifier}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(rate_limit(WRITE_ENDPOINT))],
)
def reset_rate_limit_counter(request: Request, endpoint: str, identifier: str) -> None:
    """Clear the counter of one caller so it starts a fresh window."""

    get_rate_limiter(request).reset(endpoint, identifier)


@router.get(
    "/storage/departments",
    response_model=DepartmentUsageList,
    dependencies=[Depends(rate_limit(READ_ENDPOINT))],
)
def list_department_storage(request: Request) -> DepartmentUsageList:
    """Allocated and live used storage for every department."""

    usage = get_quota_guard(request).usage_report()
    return DepartmentUsageList(
        departments=[DepartmentUsageResponse.from_usage(u) for u in usage]
    )


@router.patch(
    "/storage/departments/{department_id}/allocation",
    response_model=AllocationResponse,
    dependencies=[Depends(rate_limit(WRITE_ENDPOINT))],
)
def update_department_allocation(
    request: Request,
    department_id: str,
    body: AllocationUpdate,
) -> AllocationResponse:
    record = get_quota_guard(request).set_allocation(department_id, body.allocated_storage)
    return AllocationResponse(
        department_id=record.department_id,
        allocated_storage=record.allocated_storage or 0,
    )
