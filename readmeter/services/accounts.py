"""
Account Service - Read-only access to billing-relevant account state.

Accounts are owned by the authentication and billing services. This module
only loads them into immutable snapshots for tier resolution.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from readmeter.db.models import Account
from readmeter.exceptions import AccountNotFoundError, StorageUnavailableError
from readmeter.models.domain import AccountSnapshot

logger = get_logger(__name__)


def _account_to_snapshot(account: Account) -> AccountSnapshot:
    """Convert ORM model to domain snapshot."""
    return AccountSnapshot(
        account_id=account.id,
        plan=account.subscription_plan,
        is_trial=bool(account.is_trial),
        trial_end_date=account.trial_end_date,
        subscription_status=account.subscription_status,
        subscription_end_date=account.subscription_end_date,
    )


class AccountService:
    """Loads account snapshots."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize with database session."""
        self.session = session

    async def get_snapshot(self, account_id: UUID) -> AccountSnapshot:
        """
        Load an account snapshot.

        Raises:
            AccountNotFoundError: No account with this id
            StorageUnavailableError: Database error
        """
        stmt = select(Account).where(Account.id == account_id)
        try:
            result = await self.session.execute(stmt)
            account = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("account_lookup_failed", account_id=str(account_id), error=str(exc))
            raise StorageUnavailableError("get_account", str(exc)) from exc

        if account is None:
            raise AccountNotFoundError(account_id)

        return _account_to_snapshot(account)
