from datetime import datetime, timezone
from typing import Optional, Union
import uuid

from sqlalchemy import Column, String, DateTime, Index, Uuid, text

from app.core.database import Base
from app.schemas.relationship import (
    CareerAgentParties, ConnectionRole, FriendParties, Initiator,
    RelationshipKind, RelationshipStatus, RequestType, LIVE_STATUSES
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


_LIVE_SQL = ", ".join(f"'{s.value}'" for s in sorted(LIVE_STATUSES, key=lambda s: s.value))
LIVE_PAIR_WHERE = text(f"status IN ({_LIVE_SQL})")
ACTIVE_CANDIDATE_WHERE = text("kind = 'career_agent' AND status = 'active'")


class Relationship(Base):
    __tablename__ = "relationships"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    kind = Column(String(20), nullable=False)

    # Nominal pair, set for both kinds; the recipient is always the receiving party
    requestor_id = Column(String(128), nullable=False)
    recipient_id = Column(String(128), nullable=False)

    # Career agent roles, null for friend links
    agent_id = Column(String(128), nullable=True)
    candidate_id = Column(String(128), nullable=True)

    # Unordered pair, min/max of the two parties
    party_low = Column(String(128), nullable=False)
    party_high = Column(String(128), nullable=False)

    status = Column(String(20), nullable=False, default=RelationshipStatus.ACTIVE.value)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    note = Column(String(1000), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    __table_args__ = (
        Index("ix_relationships_requestor", "requestor_id"),
        Index("ix_relationships_recipient", "recipient_id"),
        Index("ix_relationships_agent_status", "agent_id", "status"),
        Index("ix_relationships_candidate_status", "candidate_id", "status"),
        Index("ix_relationships_pair_kind", "party_low", "party_high", "kind"),
        # One live record per unordered pair and kind
        Index(
            "uq_relationship_live_pair", "party_low", "party_high", "kind",
            unique=True,
            postgresql_where=LIVE_PAIR_WHERE,
            sqlite_where=LIVE_PAIR_WHERE,
        ),
        # One active career agent per candidate
        Index(
            "uq_relationship_active_candidate", "candidate_id",
            unique=True,
            postgresql_where=ACTIVE_CANDIDATE_WHERE,
            sqlite_where=ACTIVE_CANDIDATE_WHERE,
        ),
    )

    @classmethod
    def from_parties(
        cls,
        parties: Union[FriendParties, CareerAgentParties],
        status: RelationshipStatus,
        note: Optional[str] = None,
    ) -> "Relationship":
        requestor_id, recipient_id = parties.nominal
        low, high = sorted((requestor_id, recipient_id))
        now = utcnow()
        relationship = cls(
            id=uuid.uuid4(),
            kind=parties.kind,
            requestor_id=requestor_id,
            recipient_id=recipient_id,
            party_low=low,
            party_high=high,
            status=status.value,
            note=note,
            created_at=now,
            start_date=now if status == RelationshipStatus.ACTIVE else None,
        )
        if isinstance(parties, CareerAgentParties):
            relationship.agent_id = parties.agent_id
            relationship.candidate_id = parties.candidate_id
        return relationship

    @property
    def parties(self) -> Union[FriendParties, CareerAgentParties]:
        if self.kind == RelationshipKind.CAREER_AGENT:
            initiated_by = (
                Initiator.CANDIDATE if self.requestor_id == self.candidate_id else Initiator.AGENT
            )
            return CareerAgentParties(
                agent_id=self.agent_id,
                candidate_id=self.candidate_id,
                initiated_by=initiated_by,
            )
        return FriendParties(requestor_id=self.requestor_id, recipient_id=self.recipient_id)

    @property
    def request_type(self) -> RequestType:
        parties = self.parties
        if isinstance(parties, CareerAgentParties):
            if parties.initiated_by == Initiator.CANDIDATE:
                return RequestType.CAREER_AGENT_REQUEST
            return RequestType.CAREER_AGENT_PROPOSAL
        return RequestType.FRIEND_REQUEST

    def involves(self, user_id: str) -> bool:
        return user_id in (self.requestor_id, self.recipient_id)

    def other_party(self, user_id: str) -> str:
        return self.recipient_id if self.requestor_id == user_id else self.requestor_id

    def role_of(self, user_id: str) -> ConnectionRole:
        parties = self.parties
        if isinstance(parties, CareerAgentParties):
            if parties.agent_id == user_id:
                return ConnectionRole.CAREER_AGENT
            return ConnectionRole.CANDIDATE
        if parties.requestor_id == user_id:
            return ConnectionRole.REQUESTOR
        return ConnectionRole.RECIPIENT

    def __repr__(self) -> str:
        return f"<Relationship {self.id} {self.kind} {self.requestor_id}->{self.recipient_id} {self.status}>"
