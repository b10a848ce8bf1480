import pytest

from app.repositories.profile import ProfileRepository
from app.schemas.profile import ProfileCreate
from app.schemas.relationship import (
    CareerAgentParties, ConnectionRole, FriendParties, RelationshipKind,
    RelationshipStatus, RelationshipUpdate, RequestType
)
from app.services.relationship import RelationshipService
from app.services.relationship_query import RelationshipQueryService
from app.utils.exceptions import NotFoundError


@pytest.fixture
def engine_service(db, profiles):
    return RelationshipService(db)


@pytest.fixture
def queries(db, profiles):
    return RelationshipQueryService(db)


class TestListConnected:

    @pytest.mark.asyncio
    async def test_one_row_per_person_across_kinds(self, engine_service, queries):
        await engine_service.create_direct(FriendParties(requestor_id="A1", recipient_id="C1"))
        await engine_service.create_direct(CareerAgentParties(agent_id="A1", candidate_id="C1"))

        connected = await queries.list_connected("C1")

        assert [c.user_id for c in connected] == ["A1"]
        contact = connected[0]
        assert set(contact.connection_types) == {RelationshipKind.FRIEND, RelationshipKind.CAREER_AGENT}
        assert set(contact.roles) == {ConnectionRole.RECIPIENT, ConnectionRole.CANDIDATE}
        assert contact.first_name == "Dana"
        assert contact.display_name == "Dana Diaz"
        assert contact.company == "Talent Co"
        assert contact.candidates_count == 1
        assert contact.mutual_connections == 1

    @pytest.mark.asyncio
    async def test_filters_by_kind_and_status(self, engine_service, queries):
        await engine_service.create_direct(FriendParties(requestor_id="U1", recipient_id="U2"))
        await engine_service.send_request(RelationshipKind.FRIEND, "U1", "U3")

        assert [c.user_id for c in await queries.list_connected("U1")] == ["U2"]
        assert await queries.list_connected("U1", kind=RelationshipKind.CAREER_AGENT) == []
        requested = await queries.list_connected("U1", status=RelationshipStatus.REQUESTED)
        assert [c.user_id for c in requested] == ["U3"]

    @pytest.mark.asyncio
    async def test_newest_first_and_limit(self, engine_service, queries):
        for other in ("U2", "U3", "C1"):
            await engine_service.create_direct(FriendParties(requestor_id="U1", recipient_id=other))

        connected = await queries.list_connected("U1", limit=2)

        assert [c.user_id for c in connected] == ["C1", "U3"]

    @pytest.mark.asyncio
    async def test_company_falls_back_to_industry(self, engine_service, queries):
        await engine_service.create_direct(FriendParties(requestor_id="U1", recipient_id="U2"))

        connected = await queries.list_connected("U1")

        assert connected[0].company == "Media"

    @pytest.mark.asyncio
    async def test_mutual_connections_is_other_partys_friend_count(self, engine_service, queries):
        # U2 has three active friends; only one of them (U1) is the caller
        for other in ("U1", "U3", "C1"):
            await engine_service.create_direct(FriendParties(requestor_id="U2", recipient_id=other))
        await engine_service.send_request(RelationshipKind.FRIEND, "U2", "C2")

        connected = await queries.list_connected("U1")

        assert connected[0].user_id == "U2"
        assert connected[0].mutual_connections == 3


class TestRequests:

    @pytest.mark.asyncio
    async def test_received_aggregates_request_types(self, engine_service, queries):
        await engine_service.send_request(RelationshipKind.FRIEND, "A1", "C1")
        await engine_service.propose("A1", "C1", note="I can help")
        await engine_service.send_request(RelationshipKind.FRIEND, "U1", "C1")

        received = await queries.list_requests_received("C1")

        assert [r.user_id for r in received] == ["U1", "A1"]
        agent_row = received[1]
        assert set(agent_row.request_types) == {
            RequestType.FRIEND_REQUEST, RequestType.CAREER_AGENT_PROPOSAL
        }
        assert agent_row.status == RelationshipStatus.PROPOSED
        assert agent_row.note == "I can help"

    @pytest.mark.asyncio
    async def test_candidate_request_shows_for_agent(self, engine_service, queries):
        await engine_service.send_request(RelationshipKind.CAREER_AGENT, "C1", "A1")

        received = await queries.list_requests_received("A1")
        sent = await queries.list_requests_sent("C1")

        assert [r.user_id for r in received] == ["C1"]
        assert received[0].request_types == [RequestType.CAREER_AGENT_REQUEST]
        assert [r.user_id for r in sent] == ["A1"]
        assert await queries.list_requests_received("C1") == []

    @pytest.mark.asyncio
    async def test_answered_requests_drop_out(self, engine_service, queries):
        request = await engine_service.send_request(RelationshipKind.FRIEND, "U1", "U2")
        rejected = await engine_service.send_request(RelationshipKind.FRIEND, "U3", "U2")
        await engine_service.accept(request.id, "U2")
        await engine_service.reject(rejected.id, "U2")

        assert await queries.list_requests_received("U2") == []
        assert await queries.list_requests_sent("U1") == []

    @pytest.mark.asyncio
    async def test_kind_filter(self, engine_service, queries):
        await engine_service.send_request(RelationshipKind.FRIEND, "A1", "C1")
        await engine_service.propose("A1", "C1")

        received = await queries.list_requests_received("C1", kind=RelationshipKind.FRIEND)

        assert received[0].request_types == [RequestType.FRIEND_REQUEST]
        assert received[0].connection_types == [RelationshipKind.FRIEND]


class TestProposals:

    @pytest.mark.asyncio
    async def test_received_and_sent(self, engine_service, queries):
        await engine_service.propose("A1", "C1")
        await engine_service.propose("A2", "C1")
        await engine_service.send_request(RelationshipKind.CAREER_AGENT, "C2", "A1")

        received = await queries.list_proposals_received("C1")
        sent = await queries.list_proposals_sent("A1")

        assert [p.agent_id for p in received] == ["A2", "A1"]
        assert received[0].requestor.first_name == "Evan"
        assert received[0].recipient.user_id == "C1"
        assert [p.candidate_id for p in sent] == ["C1"]


class TestPotentialContacts:

    @pytest.mark.asyncio
    async def test_sorted_by_name_excluding_self(self, queries):
        contacts = await queries.list_potential_contacts("U1")

        assert [c.user_id for c in contacts] == ["U2", "U3", "A1", "A2", "C1", "C2"]
        assert all(c.connection_id is None for c in contacts)

    @pytest.mark.asyncio
    async def test_sorted_by_display_name_then_id(self, db, queries):
        directory = ProfileRepository(db)
        for user_id, first_name, last_name in [
            ("T9", "Bob", "Baker"),
            ("Z9", "", "Zed"),
            ("B7", "Bob", "Baker"),
            ("Z1", "Amy", "B"),
        ]:
            await directory.create(ProfileCreate(user_id=user_id, first_name=first_name, last_name=last_name))

        contacts = await queries.list_potential_contacts("U1")

        assert [c.user_id for c in contacts] == [
            "Z1", "B7", "T9", "U2", "U3", "A1", "A2", "C1", "C2", "Z9"
        ]
        assert contacts[-1].display_name == "Zed"

    @pytest.mark.asyncio
    async def test_live_relationship_excludes_until_rejected(self, engine_service, queries):
        request = await engine_service.send_request(RelationshipKind.FRIEND, "U1", "U2")

        assert "U2" not in [c.user_id for c in await queries.list_potential_contacts("U1")]
        assert "U1" not in [c.user_id for c in await queries.list_potential_contacts("U2")]

        await engine_service.reject(request.id, "U2")

        assert "U2" in [c.user_id for c in await queries.list_potential_contacts("U1")]

    @pytest.mark.asyncio
    async def test_any_kind_excludes(self, engine_service, queries):
        relationship = await engine_service.create_direct(CareerAgentParties(agent_id="A1", candidate_id="U1"))

        assert "A1" not in [c.user_id for c in await queries.list_potential_contacts("U1")]

        await engine_service.update(relationship.id, "U1", RelationshipUpdate(status=RelationshipStatus.INACTIVE))

        assert "A1" in [c.user_id for c in await queries.list_potential_contacts("U1")]

    @pytest.mark.asyncio
    async def test_enrichment_and_limit(self, engine_service, queries):
        await engine_service.create_direct(CareerAgentParties(agent_id="A1", candidate_id="C1"))
        await engine_service.create_direct(CareerAgentParties(agent_id="A1", candidate_id="C2"))
        await engine_service.create_direct(FriendParties(requestor_id="A1", recipient_id="U3"))

        contacts = await queries.list_potential_contacts("U2", limit=3)

        assert [c.user_id for c in contacts] == ["U1", "U3", "A1"]
        agent = contacts[2]
        assert agent.candidates_count == 2
        assert agent.mutual_connections == 1


class TestCareerAgentLookups:

    @pytest.mark.asyncio
    async def test_relationship_lookup_requires_active(self, engine_service, queries):
        proposal = await engine_service.propose("A1", "C1")

        with pytest.raises(NotFoundError):
            await queries.get_career_agent_relationship("A1", "C1")
        assert await queries.can_access_documents("A1", "C1") is False

        await engine_service.accept(proposal.id, "C1")

        relationship = await queries.get_career_agent_relationship("A1", "C1")
        assert relationship.id == proposal.id
        assert await queries.can_access_documents("A1", "C1") is True
        assert await queries.can_access_documents("C1", "A1") is False
        assert await queries.can_access_documents("U1", "U1") is True

    @pytest.mark.asyncio
    async def test_candidate_ids_and_stats(self, engine_service, queries):
        active = await engine_service.create_direct(CareerAgentParties(agent_id="A1", candidate_id="C1"))
        await engine_service.propose("A1", "C2")
        rejected = await engine_service.propose("A1", "U1")
        await engine_service.reject(rejected.id, "U1")
        await engine_service.create_direct(CareerAgentParties(agent_id="A2", candidate_id="U2"))

        assert await queries.list_candidate_ids("A1") == ["C1", "C2", "U1"]

        stats = await queries.get_agent_stats("A1")
        assert stats.total_candidates == 3
        assert stats.active_candidates == 1
        assert stats.proposed_candidates == 1
        assert stats.rejected_candidates == 1

        relationships = await queries.list_agent_relationships("A1", status=RelationshipStatus.ACTIVE)
        assert [r.id for r in relationships] == [active.id]

    @pytest.mark.asyncio
    async def test_candidate_agent_prefers_active(self, engine_service, queries):
        with pytest.raises(NotFoundError):
            await queries.get_candidate_agent("C1")

        await engine_service.create_direct(CareerAgentParties(agent_id="A1", candidate_id="C1"))
        pending = await engine_service.create_direct(
            CareerAgentParties(agent_id="A2", candidate_id="C1"), RelationshipStatus.PENDING
        )

        current = await queries.get_candidate_agent("C1")
        assert current.agent_id == "A1"
        assert current.id != pending.id
