import asyncio

import pytest
from sqlalchemy import func, select

from app.models.relationship import Relationship
from app.schemas.relationship import RelationshipKind, RelationshipStatus
from app.services.relationship import RelationshipService
from app.utils.exceptions import ConflictError


async def _in_own_session(session_factory, action):
    async with session_factory() as session:
        return await action(RelationshipService(session))


async def _race(session_factory, *actions):
    return await asyncio.gather(
        *(_in_own_session(session_factory, action) for action in actions),
        return_exceptions=True,
    )


def _split(results):
    successes = [r for r in results if isinstance(r, Relationship)]
    failures = [r for r in results if isinstance(r, Exception)]
    return successes, failures


async def _count(session_factory, *criteria):
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(Relationship).where(*criteria))
        return result.scalar_one()


@pytest.mark.asyncio
async def test_duplicate_friend_requests_create_one_record(session_factory, profiles):
    results = await _race(
        session_factory,
        lambda service: service.send_request(RelationshipKind.FRIEND, "U1", "U2"),
        lambda service: service.send_request(RelationshipKind.FRIEND, "U1", "U2"),
    )

    successes, failures = _split(results)
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], ConflictError)
    assert failures[0].blocking_id == successes[0].id
    assert await _count(session_factory, Relationship.kind == RelationshipKind.FRIEND.value) == 1


@pytest.mark.asyncio
async def test_crossed_friend_requests_create_one_record(session_factory, profiles):
    results = await _race(
        session_factory,
        lambda service: service.send_request(RelationshipKind.FRIEND, "U1", "U2"),
        lambda service: service.send_request(RelationshipKind.FRIEND, "U2", "U1"),
    )

    successes, failures = _split(results)
    assert len(successes) == 1
    assert [type(f) for f in failures] == [ConflictError]


@pytest.mark.asyncio
async def test_concurrent_accepts_leave_one_active_agent(session_factory, profiles):
    async with session_factory() as session:
        service = RelationshipService(session)
        first = await service.propose("A1", "C1")
        second = await service.propose("A2", "C1")

    results = await _race(
        session_factory,
        lambda service: service.accept(first.id, "C1"),
        lambda service: service.accept(second.id, "C1"),
    )

    successes, failures = _split(results)
    assert len(successes) == 1
    assert len(failures) == 1
    conflict = failures[0]
    assert isinstance(conflict, ConflictError)
    assert conflict.blocking_id == successes[0].id
    assert conflict.blocking_user_id == successes[0].agent_id

    active = await _count(
        session_factory,
        Relationship.candidate_id == "C1",
        Relationship.status == RelationshipStatus.ACTIVE.value,
    )
    assert active == 1


@pytest.mark.asyncio
async def test_concurrent_direct_activations_for_one_candidate(session_factory, profiles):
    from app.schemas.relationship import CareerAgentParties

    results = await _race(
        session_factory,
        lambda service: service.create_direct(CareerAgentParties(agent_id="A1", candidate_id="C2")),
        lambda service: service.create_direct(CareerAgentParties(agent_id="A2", candidate_id="C2")),
    )

    successes, failures = _split(results)
    assert len(successes) == 1
    assert [type(f) for f in failures] == [ConflictError]
    assert failures[0].blocking_user_id == successes[0].agent_id


@pytest.mark.asyncio
async def test_accept_and_reject_race_on_one_request(session_factory, profiles):
    async with session_factory() as session:
        request = await RelationshipService(session).send_request(RelationshipKind.FRIEND, "U1", "U3")

    results = await _race(
        session_factory,
        lambda service: service.accept(request.id, "U3"),
        lambda service: service.reject(request.id, "U3"),
    )

    successes, failures = _split(results)
    assert len(successes) == 1
    assert [type(f) for f in failures] == [ConflictError]
    assert successes[0].status in (RelationshipStatus.ACTIVE, RelationshipStatus.REJECTED)
