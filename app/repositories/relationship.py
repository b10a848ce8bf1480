import uuid
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import or_, and_, func, select, update
from sqlalchemy.exc import IntegrityError
from typing import Any, Dict, Iterable, List, Optional, Set

from app.models.relationship import Relationship
from app.schemas.relationship import (
    RelationshipKind, RelationshipStatus, LIVE_STATUSES
)


def _values(statuses: Iterable[RelationshipStatus]) -> List[str]:
    return [RelationshipStatus(s).value for s in statuses]


class RelationshipRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    # Writes

    async def add(self, relationship: Relationship) -> Optional[Relationship]:
        """Insert a relationship; None when a uniqueness constraint rejects it"""
        try:
            self.db.add(relationship)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return None
        await self.db.refresh(relationship)
        return relationship

    async def transition(
        self,
        relationship_id: uuid.UUID,
        from_statuses: Iterable[RelationshipStatus],
        values: Dict[str, Any],
    ) -> int:
        """Conditionally update a record still in one of ``from_statuses``

        Returns the number of rows written (0 or 1). A uniqueness violation is
        rolled back and re-raised as ``IntegrityError``.
        """
        stmt = (
            update(Relationship)
            .where(
                and_(
                    Relationship.id == relationship_id,
                    Relationship.status.in_(_values(from_statuses)),
                )
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise
        return result.rowcount

    async def delete(self, relationship: Relationship) -> None:
        await self.db.delete(relationship)
        await self.db.commit()

    # Point lookups

    async def get(self, relationship_id: uuid.UUID) -> Optional[Relationship]:
        """Get a relationship by id, always reloading from the store"""
        stmt = (
            select(Relationship)
            .where(Relationship.id == relationship_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def find_live_between(
        self, user1_id: str, user2_id: str, kind: RelationshipKind
    ) -> Optional[Relationship]:
        """The live record of ``kind`` for an unordered pair, if any"""
        low, high = sorted((user1_id, user2_id))
        stmt = select(Relationship).where(
            and_(
                Relationship.party_low == low,
                Relationship.party_high == high,
                Relationship.kind == RelationshipKind(kind).value,
                Relationship.status.in_(_values(LIVE_STATUSES)),
            )
        ).limit(1)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def find_active_for_candidate(self, candidate_id: str) -> Optional[Relationship]:
        stmt = select(Relationship).where(
            and_(
                Relationship.candidate_id == candidate_id,
                Relationship.kind == RelationshipKind.CAREER_AGENT.value,
                Relationship.status == RelationshipStatus.ACTIVE.value,
            )
        ).limit(1)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_career_agent_relationship(
        self, agent_id: str, candidate_id: str, status: RelationshipStatus = RelationshipStatus.ACTIVE
    ) -> Optional[Relationship]:
        stmt = select(Relationship).where(
            and_(
                Relationship.kind == RelationshipKind.CAREER_AGENT.value,
                Relationship.agent_id == agent_id,
                Relationship.candidate_id == candidate_id,
                Relationship.status == RelationshipStatus(status).value,
            )
        ).order_by(Relationship.created_at.desc()).limit(1)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    # Listings, filtered by party membership first

    async def list_touching(
        self,
        user_id: str,
        statuses: Iterable[RelationshipStatus],
        kind: Optional[RelationshipKind] = None,
        as_requestor: Optional[bool] = None,
    ) -> List[Relationship]:
        """Relationships the user is a party to, newest first

        ``as_requestor`` narrows to records the user initiated (True) or
        received (False).
        """
        if as_requestor is None:
            membership = or_(
                Relationship.requestor_id == user_id,
                Relationship.recipient_id == user_id,
            )
        elif as_requestor:
            membership = Relationship.requestor_id == user_id
        else:
            membership = Relationship.recipient_id == user_id

        stmt = select(Relationship).where(
            and_(membership, Relationship.status.in_(_values(statuses)))
        )
        if kind is not None:
            stmt = stmt.where(Relationship.kind == RelationshipKind(kind).value)
        stmt = stmt.order_by(Relationship.created_at.desc(), Relationship.id)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_proposals(self, user_id: str, as_candidate: bool, limit: int = 50) -> List[Relationship]:
        role_column = Relationship.candidate_id if as_candidate else Relationship.agent_id
        stmt = select(Relationship).where(
            and_(
                role_column == user_id,
                Relationship.kind == RelationshipKind.CAREER_AGENT.value,
                Relationship.status == RelationshipStatus.PROPOSED.value,
            )
        ).order_by(Relationship.created_at.desc()).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_for_agent(
        self, agent_id: str, status: Optional[RelationshipStatus] = None, limit: int = 50
    ) -> List[Relationship]:
        stmt = select(Relationship).where(
            and_(
                Relationship.agent_id == agent_id,
                Relationship.kind == RelationshipKind.CAREER_AGENT.value,
            )
        )
        if status is not None:
            stmt = stmt.where(Relationship.status == RelationshipStatus(status).value)
        stmt = stmt.order_by(Relationship.created_at.desc()).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_live_for_candidate(self, candidate_id: str) -> List[Relationship]:
        stmt = select(Relationship).where(
            and_(
                Relationship.candidate_id == candidate_id,
                Relationship.kind == RelationshipKind.CAREER_AGENT.value,
                Relationship.status.in_(_values(LIVE_STATUSES)),
            )
        ).order_by(Relationship.created_at.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def candidate_ids_for_agent(self, agent_id: str) -> List[str]:
        stmt = select(Relationship.candidate_id).where(
            and_(
                Relationship.agent_id == agent_id,
                Relationship.kind == RelationshipKind.CAREER_AGENT.value,
            )
        ).distinct().order_by(Relationship.candidate_id)
        result = await self.db.execute(stmt)
        return [candidate_id for candidate_id in result.scalars().all() if candidate_id]

    async def live_partner_ids(self, user_id: str) -> Set[str]:
        """Everyone linked to the user by a live record of any kind"""
        stmt = select(Relationship.requestor_id, Relationship.recipient_id).where(
            and_(
                or_(
                    Relationship.requestor_id == user_id,
                    Relationship.recipient_id == user_id,
                ),
                Relationship.status.in_(_values(LIVE_STATUSES)),
            )
        )
        result = await self.db.execute(stmt)
        partners = set()
        for requestor_id, recipient_id in result.all():
            partners.add(recipient_id if requestor_id == user_id else requestor_id)
        return partners

    # Aggregate counts

    async def count_active_friends(self, user_ids: Iterable[str]) -> Dict[str, int]:
        """Active friend links per user, for each of ``user_ids``"""
        ids = list(set(user_ids))
        counts = {user_id: 0 for user_id in ids}
        if not ids:
            return counts

        for column in (Relationship.requestor_id, Relationship.recipient_id):
            stmt = select(column, func.count()).where(
                and_(
                    column.in_(ids),
                    Relationship.kind == RelationshipKind.FRIEND.value,
                    Relationship.status == RelationshipStatus.ACTIVE.value,
                )
            ).group_by(column)
            result = await self.db.execute(stmt)
            for user_id, count in result.all():
                counts[user_id] += count
        return counts

    async def count_active_candidates(self, agent_ids: Iterable[str]) -> Dict[str, int]:
        """Active career agent links per agent, for each of ``agent_ids``"""
        ids = list(set(agent_ids))
        counts = {agent_id: 0 for agent_id in ids}
        if not ids:
            return counts

        stmt = select(Relationship.agent_id, func.count()).where(
            and_(
                Relationship.agent_id.in_(ids),
                Relationship.kind == RelationshipKind.CAREER_AGENT.value,
                Relationship.status == RelationshipStatus.ACTIVE.value,
            )
        ).group_by(Relationship.agent_id)
        result = await self.db.execute(stmt)
        for agent_id, count in result.all():
            counts[agent_id] = count
        return counts

    async def count_by_status_for_agent(self, agent_id: str) -> Dict[str, int]:
        stmt = select(Relationship.status, func.count()).where(
            and_(
                Relationship.agent_id == agent_id,
                Relationship.kind == RelationshipKind.CAREER_AGENT.value,
            )
        ).group_by(Relationship.status)
        result = await self.db.execute(stmt)
        return {status: count for status, count in result.all()}
