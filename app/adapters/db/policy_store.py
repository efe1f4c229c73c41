"""SQL-backed rate limit policy store (``rate_limits`` table)."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.adapters.db.models import RateLimitPolicyRow
from app.adapters.rate_limit.base import AbstractPolicyStore, RateLimitPolicy
from app.core.errors import InvalidConfigurationError, PolicyStoreUnavailable

logger = logging.getLogger(__name__)


def _to_policy(row: RateLimitPolicyRow) -> RateLimitPolicy:
    return RateLimitPolicy(
        endpoint=row.endpoint,
        max_requests=row.max_requests,
        window_ms=row.window_ms,
        description=row.description,
    )


class SqlRateLimitPolicyStore(AbstractPolicyStore):
    """Policy store reading and upserting rows through SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get(self, endpoint: str) -> RateLimitPolicy | None:
        try:
            with self._session_factory() as session:
                row = session.scalars(
                    select(RateLimitPolicyRow).where(RateLimitPolicyRow.endpoint == endpoint)
                ).first()
                if row is None:
                    return None
                return _to_policy(row)
        except InvalidConfigurationError:
            # Rows written outside this service may hold invalid values
            logger.error(
                "policy_store.invalid_row",
                extra={"endpoint": endpoint},
            )
            return None
        except SQLAlchemyError as exc:
            raise PolicyStoreUnavailable(
                code="policy_store_unavailable",
                message=f"Could not read rate limit policy: {type(exc).__name__}",
                details={"endpoint": endpoint},
            ) from exc

    def upsert(self, policy: RateLimitPolicy) -> RateLimitPolicy:
        try:
            with self._session_factory() as session, session.begin():
                row = session.scalars(
                    select(RateLimitPolicyRow).where(
                        RateLimitPolicyRow.endpoint == policy.endpoint
                    )
                ).first()
                if row is None:
                    row = RateLimitPolicyRow(endpoint=policy.endpoint)
                    session.add(row)
                row.max_requests = policy.max_requests
                row.window_ms = policy.window_ms
                row.description = policy.description or f"Rate limit for {policy.endpoint}"
                session.flush()
                return _to_policy(row)
        except SQLAlchemyError as exc:
            raise PolicyStoreUnavailable(
                code="policy_store_unavailable",
                message=f"Could not write rate limit policy: {type(exc).__name__}",
                details={"endpoint": policy.endpoint},
            ) from exc

    def list(self) -> list[RateLimitPolicy]:
        try:
            with self._session_factory() as session:
                rows = session.scalars(
                    select(RateLimitPolicyRow).order_by(RateLimitPolicyRow.endpoint)
                ).all()
        except SQLAlchemyError as exc:
            raise PolicyStoreUnavailable(
                code="policy_store_unavailable",
                message=f"Could not list rate limit policies: {type(exc).__name__}",
            ) from exc

        policies: list[RateLimitPolicy] = []
        for row in rows:
            try:
                policies.append(_to_policy(row))
            except InvalidConfigurationError:
                logger.error("policy_store.invalid_row", extra={"endpoint": row.endpoint})
        return policies
