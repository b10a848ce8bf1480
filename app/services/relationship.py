import logging
import uuid
from typing import Any, Dict, Iterable, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from app.models.relationship import Relationship, utcnow
from app.repositories.profile import ProfileRepository
from app.repositories.relationship import RelationshipRepository
from app.schemas.relationship import (
    CareerAgentParties, FriendParties, Initiator, RelationshipKind,
    RelationshipStatus, RelationshipUpdate, NOTE_MAX_LENGTH, OPEN_STATUSES,
    TERMINAL_STATUSES
)
from app.utils.exceptions import (
    AuthorizationError, ConflictError, NotFoundError, ValidationError
)

logger = logging.getLogger(__name__)

PartiesType = Union[FriendParties, CareerAgentParties]

DIRECT_START_STATUSES = frozenset({
    RelationshipStatus.ACTIVE,
    RelationshipStatus.PENDING,
    RelationshipStatus.REQUESTED,
    RelationshipStatus.PROPOSED,
})

# Forward-only moves allowed through update()
UPDATE_TRANSITIONS = {
    RelationshipStatus.REQUESTED: OPEN_STATUSES | {RelationshipStatus.ACTIVE} | TERMINAL_STATUSES,
    RelationshipStatus.PROPOSED: OPEN_STATUSES | {RelationshipStatus.ACTIVE} | TERMINAL_STATUSES,
    RelationshipStatus.PENDING: OPEN_STATUSES | {RelationshipStatus.ACTIVE} | TERMINAL_STATUSES,
    RelationshipStatus.ACTIVE: frozenset({RelationshipStatus.ACTIVE, RelationshipStatus.INACTIVE}),
    RelationshipStatus.INACTIVE: frozenset({RelationshipStatus.INACTIVE}),
    RelationshipStatus.REJECTED: frozenset({RelationshipStatus.REJECTED}),
}


class RelationshipService:
    """Creates relationships and moves them through their status lifecycle.

    Invariant checks run against the store before each write so callers get a
    precise error, and the store's partial unique indexes re-check pair
    uniqueness and candidate exclusivity at commit, so of two racing writers
    exactly one succeeds and the other gets ``ConflictError``.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = RelationshipRepository(db)
        self.profiles = ProfileRepository(db)

    # Creation

    async def create_direct(
        self,
        parties: PartiesType,
        status: RelationshipStatus = RelationshipStatus.ACTIVE,
        note: Optional[str] = None,
    ) -> Relationship:
        """Create a relationship in a chosen starting status"""
        status = RelationshipStatus(status)
        self._validate_parties(parties)
        self._validate_note(note)
        if status not in DIRECT_START_STATUSES:
            raise ValidationError(f"Relationship cannot start in status '{status.value}'")
        if status == RelationshipStatus.PROPOSED and isinstance(parties, FriendParties):
            raise ValidationError("Friend relationships cannot be proposed")

        await self._ensure_profiles_exist(parties)
        await self._ensure_pair_free(parties)
        if status == RelationshipStatus.ACTIVE and isinstance(parties, CareerAgentParties):
            await self._ensure_candidate_free(parties.candidate_id)

        return await self._insert(parties, status, note)

    async def send_request(
        self,
        kind: RelationshipKind,
        requestor_id: str,
        recipient_id: str,
        note: Optional[str] = None,
    ) -> Relationship:
        """Ask someone to be a friend, or (as a candidate) to be your career agent"""
        kind = RelationshipKind(kind)
        if kind == RelationshipKind.CAREER_AGENT:
            parties = CareerAgentParties(
                agent_id=recipient_id,
                candidate_id=requestor_id,
                initiated_by=Initiator.CANDIDATE,
            )
        else:
            parties = FriendParties(requestor_id=requestor_id, recipient_id=recipient_id)
        return await self._open(parties, RelationshipStatus.REQUESTED, note)

    async def propose(self, agent_id: str, candidate_id: str, note: Optional[str] = None) -> Relationship:
        """Offer to act as someone's career agent"""
        parties = CareerAgentParties(
            agent_id=agent_id,
            candidate_id=candidate_id,
            initiated_by=Initiator.AGENT,
        )
        return await self._open(parties, RelationshipStatus.PROPOSED, note)

    async def _open(self, parties: PartiesType, status: RelationshipStatus, note: Optional[str]) -> Relationship:
        self._validate_parties(parties)
        self._validate_note(note)
        await self._ensure_profiles_exist(parties)
        await self._ensure_pair_free(parties)
        if isinstance(parties, CareerAgentParties):
            await self._ensure_candidate_free(parties.candidate_id)
        return await self._insert(parties, status, note)

    async def _insert(self, parties: PartiesType, status: RelationshipStatus, note: Optional[str]) -> Relationship:
        relationship = await self.repo.add(Relationship.from_parties(parties, status, note))
        if relationship is None:
            # A concurrent writer got there between our check and the commit
            await self._ensure_pair_free(parties)
            if isinstance(parties, CareerAgentParties):
                await self._ensure_candidate_free(parties.candidate_id)
            raise self._conflict("Relationship conflicts with a concurrent change")

        logger.info(
            f"Created {relationship.kind} relationship {relationship.id} "
            f"{relationship.requestor_id} -> {relationship.recipient_id} ({relationship.status})"
        )
        return relationship

    # Transitions

    async def accept(self, relationship_id: uuid.UUID, acting_user_id: str) -> Relationship:
        """Receiving party accepts a requested, proposed or pending relationship"""
        relationship = await self.get(relationship_id)
        self._ensure_receiving_party(relationship, acting_user_id, "accept")
        self._ensure_open(relationship, "accepted")

        await self._activate(relationship, OPEN_STATUSES, {})
        logger.info(f"Relationship {relationship_id} accepted by {acting_user_id}")
        return await self.get(relationship_id)

    async def reject(
        self, relationship_id: uuid.UUID, acting_user_id: str, note: Optional[str] = None
    ) -> Relationship:
        """Receiving party declines a requested, proposed or pending relationship"""
        self._validate_note(note)
        relationship = await self.get(relationship_id)
        self._ensure_receiving_party(relationship, acting_user_id, "reject")
        self._ensure_open(relationship, "rejected")

        values: Dict[str, Any] = {
            "status": RelationshipStatus.REJECTED.value,
            "end_date": utcnow(),
        }
        if note:
            values["note"] = note
        await self._write(relationship, OPEN_STATUSES, values)
        logger.info(f"Relationship {relationship_id} rejected by {acting_user_id}")
        return await self.get(relationship_id)

    async def update(
        self, relationship_id: uuid.UUID, acting_user_id: str, changes: RelationshipUpdate
    ) -> Relationship:
        """Change status, note or end date on behalf of either party"""
        fields = changes.model_fields_set
        if "note" in fields:
            self._validate_note(changes.note)

        relationship = await self.get(relationship_id)
        if not relationship.involves(acting_user_id):
            logger.warning(f"User {acting_user_id} tried to update relationship {relationship_id}")
            raise AuthorizationError("Not authorized to update this relationship")

        current = RelationshipStatus(relationship.status)
        target = RelationshipStatus(changes.status) if changes.status is not None else current
        if target == RelationshipStatus.PROPOSED and relationship.kind == RelationshipKind.FRIEND:
            raise ValidationError("Friend relationships cannot be proposed")
        if target not in UPDATE_TRANSITIONS[current]:
            raise self._conflict(
                f"Relationship cannot move from '{current.value}' to '{target.value}'",
                blocking_id=relationship.id,
            )

        values: Dict[str, Any] = {}
        if "note" in fields:
            values["note"] = changes.note
        if changes.end_date is not None:
            values["end_date"] = changes.end_date
        if target != current:
            values["status"] = target.value
            if target in TERMINAL_STATUSES and changes.end_date is None and relationship.end_date is None:
                values["end_date"] = utcnow()

        if target == RelationshipStatus.ACTIVE and current != RelationshipStatus.ACTIVE:
            await self._activate(relationship, {current}, values)
        elif values:
            await self._write(relationship, {current}, values)

        logger.info(f"Relationship {relationship_id} updated by {acting_user_id}: {sorted(values)}")
        return await self.get(relationship_id)

    async def delete(self, relationship_id: uuid.UUID) -> None:
        """Remove a record outright (cleanup, not an ordinary ending)"""
        relationship = await self.get(relationship_id)
        await self.repo.delete(relationship)
        logger.info(f"Relationship {relationship_id} deleted")

    async def get(self, relationship_id: uuid.UUID) -> Relationship:
        relationship = await self.repo.get(relationship_id)
        if not relationship:
            raise NotFoundError("Relationship not found")
        return relationship

    async def _activate(
        self,
        relationship: Relationship,
        from_statuses: Iterable[RelationshipStatus],
        values: Dict[str, Any],
    ) -> None:
        # Exclusivity is re-checked now: another agent may have gone active meanwhile
        if relationship.kind == RelationshipKind.CAREER_AGENT:
            await self._ensure_candidate_free(relationship.candidate_id)

        values = {
            **values,
            "status": RelationshipStatus.ACTIVE.value,
            "start_date": utcnow(),
        }
        await self._write(relationship, from_statuses, values)

    async def _write(
        self,
        relationship: Relationship,
        from_statuses: Iterable[RelationshipStatus],
        values: Dict[str, Any],
    ) -> None:
        # Read before the write: a rolled back session expires the instance
        relationship_id = relationship.id
        kind = relationship.kind
        candidate_id = relationship.candidate_id

        try:
            written = await self.repo.transition(relationship_id, from_statuses, values)
        except IntegrityError:
            if kind == RelationshipKind.CAREER_AGENT:
                await self._ensure_candidate_free(candidate_id)
            raise self._conflict("Relationship conflicts with a concurrent change")

        if not written:
            current = await self.get(relationship_id)
            raise self._conflict(
                f"Relationship status changed concurrently (now '{current.status}')",
                blocking_id=current.id,
            )

    # Guards

    def _validate_parties(self, parties: PartiesType) -> None:
        if isinstance(parties, CareerAgentParties):
            if not parties.agent_id or not parties.candidate_id:
                raise ValidationError("Career agent relationships need both agent and candidate ids")
            if parties.agent_id == parties.candidate_id:
                raise ValidationError("A person cannot be their own career agent")
        else:
            if not parties.requestor_id or not parties.recipient_id:
                raise ValidationError("Friend relationships need both requestor and recipient ids")
            if parties.requestor_id == parties.recipient_id:
                raise ValidationError("Cannot create a relationship with yourself")

    def _validate_note(self, note: Optional[str]) -> None:
        if note is not None and len(note) > NOTE_MAX_LENGTH:
            raise ValidationError(f"Note must be at most {NOTE_MAX_LENGTH} characters")

    async def _ensure_profiles_exist(self, parties: PartiesType) -> None:
        for user_id in parties.nominal:
            if not await self.profiles.exists(user_id):
                raise NotFoundError(f"Profile not found: {user_id}")

    async def _ensure_pair_free(self, parties: PartiesType) -> None:
        requestor_id, recipient_id = parties.nominal
        existing = await self.repo.find_live_between(requestor_id, recipient_id, parties.kind)
        if existing:
            raise self._conflict(
                f"A {parties.kind} relationship or request already exists between these users",
                blocking_id=existing.id,
            )

    async def _ensure_candidate_free(self, candidate_id: str) -> None:
        active = await self.repo.find_active_for_candidate(candidate_id)
        if active:
            raise self._conflict(
                f"Candidate already has an active career agent ({active.agent_id})",
                blocking_id=active.id,
                blocking_user_id=active.agent_id,
            )

    def _ensure_receiving_party(self, relationship: Relationship, acting_user_id: str, action: str) -> None:
        if relationship.recipient_id != acting_user_id:
            logger.warning(
                f"User {acting_user_id} tried to {action} relationship {relationship.id} "
                f"addressed to {relationship.recipient_id}"
            )
            raise AuthorizationError(f"Not authorized to {action} this relationship")

    def _ensure_open(self, relationship: Relationship, verb: str) -> None:
        if RelationshipStatus(relationship.status) not in OPEN_STATUSES:
            raise self._conflict(
                f"Relationship cannot be {verb} in its current state '{relationship.status}'",
                blocking_id=relationship.id,
            )

    def _conflict(
        self,
        message: str,
        blocking_id: Optional[uuid.UUID] = None,
        blocking_user_id: Optional[str] = None,
    ) -> ConflictError:
        logger.warning(f"Conflict: {message} (blocking={blocking_id})")
        return ConflictError(message, blocking_id=blocking_id, blocking_user_id=blocking_user_id)
