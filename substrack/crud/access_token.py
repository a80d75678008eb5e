from typing import Optional
from datetime import datetime
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import and_, update

from substrack.crud.base import CRUDBase
from substrack.models.access_token import AccessToken
from pydantic import BaseModel


class AccessTokenCreate(BaseModel):
    merchant_id: UUID
    subscriber_id: UUID
    token: str
    stripe_session_id: Optional[str] = None
    expires_at: datetime
    used: bool = False


class CRUDAccessToken(CRUDBase[AccessToken, AccessTokenCreate, BaseModel]):
    async def consume(self, db: AsyncSession, session_id: str, now: datetime) -> Optional[AccessToken]:
        """
        Atomically flip used=false -> true for an unexpired token of the session.
        Only one of several concurrent callers gets a row back.
        """
        result = await db.execute(
            update(self.model)
            .where(
                and_(
                    self.model.stripe_session_id == session_id,
                    self.model.used == False,
                    self.model.expires_at > now,
                    self.model.is_deleted == False
                )
            )
            .values(used=True)
            .returning(self.model)
            .execution_options(synchronize_session=False)
        )
        token = result.scalar_one_or_none()
        await db.commit()
        return token


access_token_crud = CRUDAccessToken(AccessToken)
