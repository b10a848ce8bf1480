import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.api.deps import get_current_user_id
from app.schemas.relationship import (
    CandidateIds, ConnectedList, ConnectionRequestCreate, ContactList,
    DocumentAccess, ProposalCreate, RelationshipCreate, RelationshipKind,
    RelationshipList, RelationshipRead, RelationshipReject, RelationshipStatus,
    RelationshipUpdate, RequestList
)
from app.services.relationship import RelationshipService
from app.services.relationship_query import RelationshipQueryService

router = APIRouter()

LimitQuery = Query(
    settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT,
    description="Maximum number of results"
)


@router.post("/", response_model=RelationshipRead, status_code=status.HTTP_201_CREATED)
async def create_relationship(
    relationship_data: RelationshipCreate,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Create a relationship directly in a given starting status"""
    service = RelationshipService(db)
    return await service.create_direct(
        relationship_data.parties, relationship_data.status, relationship_data.note
    )


@router.post("/request", response_model=RelationshipRead, status_code=status.HTTP_201_CREATED)
async def send_request(
    request_data: ConnectionRequestCreate,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Send a friend request, or ask someone to be your career agent"""
    service = RelationshipService(db)
    return await service.send_request(
        request_data.kind, current_user_id, request_data.recipient_id, request_data.note
    )


@router.post("/propose", response_model=RelationshipRead, status_code=status.HTTP_201_CREATED)
async def propose(
    proposal_data: ProposalCreate,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Propose yourself as someone's career agent"""
    service = RelationshipService(db)
    return await service.propose(current_user_id, proposal_data.candidate_id, proposal_data.note)


@router.get("/requests/received", response_model=RequestList)
async def get_requests_received(
    kind: Optional[RelationshipKind] = Query(None, description="Filter by relationship kind"),
    limit: int = LimitQuery,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """People waiting on an answer from the current user"""
    service = RelationshipQueryService(db)
    requests = await service.list_requests_received(current_user_id, kind, limit)
    return RequestList(data=requests, count=len(requests))


@router.get("/requests/sent", response_model=RequestList)
async def get_requests_sent(
    kind: Optional[RelationshipKind] = Query(None, description="Filter by relationship kind"),
    limit: int = LimitQuery,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """People the current user is waiting on"""
    service = RelationshipQueryService(db)
    requests = await service.list_requests_sent(current_user_id, kind, limit)
    return RequestList(data=requests, count=len(requests))


@router.get("/proposals/received", response_model=RelationshipList)
async def get_proposals_received(
    limit: int = LimitQuery,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Career agent proposals made to the current user"""
    service = RelationshipQueryService(db)
    proposals = await service.list_proposals_received(current_user_id, limit)
    return RelationshipList(data=proposals, count=len(proposals))


@router.get("/proposals/sent", response_model=RelationshipList)
async def get_proposals_sent(
    limit: int = LimitQuery,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Career agent proposals the current user made"""
    service = RelationshipQueryService(db)
    proposals = await service.list_proposals_sent(current_user_id, limit)
    return RelationshipList(data=proposals, count=len(proposals))


@router.get("/connected", response_model=ConnectedList)
async def get_connected(
    kind: Optional[RelationshipKind] = Query(None, description="Filter by relationship kind"),
    relationship_status: RelationshipStatus = Query(RelationshipStatus.ACTIVE, alias="status"),
    limit: int = LimitQuery,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Everyone connected to the current user, once per person"""
    service = RelationshipQueryService(db)
    connected = await service.list_connected(current_user_id, kind, relationship_status, limit)
    return ConnectedList(data=connected, count=len(connected))


@router.get("/potential-contacts", response_model=ContactList)
async def get_potential_contacts(
    limit: int = LimitQuery,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """People the current user has no live relationship with"""
    service = RelationshipQueryService(db)
    contacts = await service.list_potential_contacts(current_user_id, limit)
    return ContactList(data=contacts, count=len(contacts))


@router.get("/candidates", response_model=CandidateIds)
async def get_candidate_ids(
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Ids of everyone the current user is (or was asked to be) career agent for"""
    service = RelationshipQueryService(db)
    return CandidateIds(candidate_ids=await service.list_candidate_ids(current_user_id))


@router.get("/career-agent/relationship", response_model=RelationshipRead)
async def get_career_agent_relationship(
    for_user_id: str = Query(..., min_length=1, description="Candidate user id"),
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """The current user's active career agent link with a candidate"""
    service = RelationshipQueryService(db)
    return await service.get_career_agent_relationship(current_user_id, for_user_id)


@router.get("/document-access/{owner_id}", response_model=DocumentAccess)
async def get_document_access(
    owner_id: str,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Whether the current user may read another user's documents"""
    service = RelationshipQueryService(db)
    allowed = await service.can_access_documents(current_user_id, owner_id)
    return DocumentAccess(owner_id=owner_id, viewer_id=current_user_id, allowed=allowed)


@router.put("/{relationship_id}/accept", response_model=RelationshipRead)
async def accept_relationship(
    relationship_id: uuid.UUID,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Accept a request or proposal addressed to the current user"""
    service = RelationshipService(db)
    return await service.accept(relationship_id, current_user_id)


@router.put("/{relationship_id}/reject", response_model=RelationshipRead)
async def reject_relationship(
    relationship_id: uuid.UUID,
    reject_data: Optional[RelationshipReject] = None,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Reject a request or proposal addressed to the current user"""
    service = RelationshipService(db)
    note = reject_data.note if reject_data else None
    return await service.reject(relationship_id, current_user_id, note)


@router.put("/{relationship_id}", response_model=RelationshipRead)
async def update_relationship(
    relationship_id: uuid.UUID,
    update_data: RelationshipUpdate,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Update status, note or end date of a relationship you are part of"""
    service = RelationshipService(db)
    return await service.update(relationship_id, current_user_id, update_data)


@router.delete("/{relationship_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_relationship(
    relationship_id: uuid.UUID,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Remove a relationship record outright"""
    service = RelationshipService(db)
    await service.delete(relationship_id)
    return None
