import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.profile import UserProfile
from app.models.relationship import Relationship
from app.repositories.profile import ProfileRepository
from app.repositories.relationship import RelationshipRepository
from app.schemas.profile import ProfileSummary
from app.schemas.relationship import (
    AgentStats, ConnectedContact, ContactSummary, RelationshipDetail,
    RelationshipKind, RelationshipStatus, RequestContact, LIVE_STATUSES,
    OPEN_STATUSES
)
from app.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def _profile_summary(profile: Optional[UserProfile], user_id: str) -> ProfileSummary:
    if profile is None:
        return ProfileSummary(user_id=user_id)
    return ProfileSummary(
        user_id=profile.user_id,
        first_name=profile.first_name,
        last_name=profile.last_name,
        display_name=profile.display_name,
        headline=profile.headline,
        company=profile.company,
        industry=profile.industry,
        profile_picture_url=profile.profile_picture_url,
    )


class RelationshipQueryService:
    """Read-only views over the relationship graph.

    Every listing first narrows the store to records the caller is a party
    to, groups them by the other party, and only then joins the (small)
    result set against the identity directory and the aggregate counts.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = RelationshipRepository(db)
        self.profiles = ProfileRepository(db)

    async def list_connected(
        self,
        user_id: str,
        kind: Optional[RelationshipKind] = None,
        status: RelationshipStatus = RelationshipStatus.ACTIVE,
        limit: int = 50,
    ) -> List[ConnectedContact]:
        """Everyone linked to the user with ``status``, once per person"""
        relationships = await self.repo.list_touching(user_id, [status], kind=kind)
        groups = self._group_by_other_party(user_id, relationships, limit)

        contacts = await self._summaries(groups)
        results = []
        for other_id, records in groups.items():
            latest = records[0]
            results.append(ConnectedContact(
                **contacts[other_id],
                connection_id=latest.id,
                connection_types=self._unique(RelationshipKind(r.kind) for r in records),
                roles=self._unique(r.role_of(user_id) for r in records),
                connection_date=latest.created_at,
            ))
        return results

    async def list_requests_received(
        self, user_id: str, kind: Optional[RelationshipKind] = None, limit: int = 50
    ) -> List[RequestContact]:
        """Pending asks addressed to the user, once per asking person"""
        return await self._list_requests(user_id, as_requestor=False, kind=kind, limit=limit)

    async def list_requests_sent(
        self, user_id: str, kind: Optional[RelationshipKind] = None, limit: int = 50
    ) -> List[RequestContact]:
        """Pending asks the user made, once per asked person"""
        return await self._list_requests(user_id, as_requestor=True, kind=kind, limit=limit)

    async def _list_requests(
        self, user_id: str, as_requestor: bool, kind: Optional[RelationshipKind], limit: int
    ) -> List[RequestContact]:
        relationships = await self.repo.list_touching(
            user_id, OPEN_STATUSES, kind=kind, as_requestor=as_requestor
        )
        groups = self._group_by_other_party(user_id, relationships, limit)

        contacts = await self._summaries(groups)
        results = []
        for other_id, records in groups.items():
            latest = records[0]
            results.append(RequestContact(
                **contacts[other_id],
                connection_id=latest.id,
                request_types=self._unique(r.request_type for r in records),
                connection_types=self._unique(RelationshipKind(r.kind) for r in records),
                request_date=latest.created_at,
                status=RelationshipStatus(latest.status),
                note=latest.note,
            ))
        return results

    async def list_proposals_received(self, user_id: str, limit: int = 50) -> List[RelationshipDetail]:
        """Career agent offers made to the user as candidate"""
        relationships = await self.repo.list_proposals(user_id, as_candidate=True, limit=limit)
        return await self.details(relationships)

    async def list_proposals_sent(self, user_id: str, limit: int = 50) -> List[RelationshipDetail]:
        """Career agent offers the user made as agent"""
        relationships = await self.repo.list_proposals(user_id, as_candidate=False, limit=limit)
        return await self.details(relationships)

    async def list_potential_contacts(self, user_id: str, limit: int = 50) -> List[ContactSummary]:
        """Directory profiles the user has no live relationship with"""
        excluded = await self.repo.live_partner_ids(user_id)
        excluded.add(user_id)
        profiles = await self.profiles.list_excluding(excluded, limit=limit)

        ids = [profile.user_id for profile in profiles]
        friends = await self.repo.count_active_friends(ids)
        candidates = await self.repo.count_active_candidates(ids)
        return [
            ContactSummary(
                **self._contact_fields(profile, profile.user_id),
                mutual_connections=friends.get(profile.user_id, 0),
                candidates_count=candidates.get(profile.user_id, 0),
            )
            for profile in profiles
        ]

    async def get_career_agent_relationship(self, agent_id: str, candidate_id: str) -> Relationship:
        """The active link making ``agent_id`` the career agent of ``candidate_id``"""
        relationship = await self.repo.get_career_agent_relationship(agent_id, candidate_id)
        if not relationship:
            raise NotFoundError("Career agent relationship not found")
        return relationship

    async def can_access_documents(self, viewer_id: str, owner_id: str) -> bool:
        """Owners see their own documents; so does their active career agent"""
        if viewer_id == owner_id:
            return True
        relationship = await self.repo.get_career_agent_relationship(viewer_id, owner_id)
        return relationship is not None

    async def list_candidate_ids(self, agent_id: str) -> List[str]:
        return await self.repo.candidate_ids_for_agent(agent_id)

    async def list_agent_relationships(
        self, agent_id: str, status: Optional[RelationshipStatus] = None, limit: int = 50
    ) -> List[RelationshipDetail]:
        relationships = await self.repo.list_for_agent(agent_id, status=status, limit=limit)
        return await self.details(relationships)

    async def get_candidate_agent(self, candidate_id: str) -> RelationshipDetail:
        """The candidate's active career agent link, else their newest open one"""
        relationships = await self.repo.list_live_for_candidate(candidate_id)
        if not relationships:
            raise NotFoundError("No active or pending career agent relationship found for this candidate")

        active = [r for r in relationships if r.status == RelationshipStatus.ACTIVE]
        chosen = active[0] if active else relationships[0]
        details = await self.details([chosen])
        return details[0]

    async def get_agent_stats(self, agent_id: str) -> AgentStats:
        counts = await self.repo.count_by_status_for_agent(agent_id)
        stats = AgentStats(total_candidates=sum(counts.values()))
        for status, count in counts.items():
            setattr(stats, f"{RelationshipStatus(status).value}_candidates", count)
        return stats

    async def details(self, relationships: Sequence[Relationship]) -> List[RelationshipDetail]:
        """Attach both parties' directory profiles to each record"""
        profiles = await self.profiles.get_many(
            user_id for r in relationships for user_id in (r.requestor_id, r.recipient_id)
        )
        results = []
        for relationship in relationships:
            detail = RelationshipDetail.model_validate(relationship)
            detail.requestor = _profile_summary(profiles.get(relationship.requestor_id), relationship.requestor_id)
            detail.recipient = _profile_summary(profiles.get(relationship.recipient_id), relationship.recipient_id)
            results.append(detail)
        return results

    # Helpers

    def _group_by_other_party(
        self, user_id: str, relationships: Iterable[Relationship], limit: int
    ) -> "OrderedDict[str, List[Relationship]]":
        # Input is newest first, so each group's first record is its latest
        groups: "OrderedDict[str, List[Relationship]]" = OrderedDict()
        for relationship in relationships:
            other_id = relationship.other_party(user_id)
            if other_id not in groups:
                if len(groups) >= limit:
                    continue
                groups[other_id] = []
            groups[other_id].append(relationship)
        return groups

    async def _summaries(self, groups: Dict[str, List[Relationship]]) -> Dict[str, dict]:
        ids = list(groups)
        profiles = await self.profiles.get_many(ids)
        friends = await self.repo.count_active_friends(ids)
        candidates = await self.repo.count_active_candidates(ids)
        return {
            other_id: {
                **self._contact_fields(profiles.get(other_id), other_id),
                "mutual_connections": friends.get(other_id, 0),
                "candidates_count": candidates.get(other_id, 0),
            }
            for other_id in ids
        }

    @staticmethod
    def _contact_fields(profile: Optional[UserProfile], user_id: str) -> dict:
        if profile is None:
            logger.warning(f"Profile missing for related user {user_id}")
            return {"user_id": user_id}
        return {
            "user_id": user_id,
            "first_name": profile.first_name,
            "last_name": profile.last_name,
            "display_name": profile.display_name,
            "headline": profile.headline,
            "company": profile.company or profile.industry,
            "profile_picture_url": profile.profile_picture_url,
        }

    @staticmethod
    def _unique(values: Iterable) -> list:
        return list(OrderedDict.fromkeys(values))
