from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.api.deps import get_current_user_id
from app.schemas.relationship import (
    AgentStats, RelationshipDetail, RelationshipList, RelationshipStatus
)
from app.services.relationship_query import RelationshipQueryService

router = APIRouter()


@router.get("/candidate/{candidate_id}", response_model=RelationshipDetail)
async def get_candidate_agent(
    candidate_id: str,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Current career agent (or pending one) for a candidate"""
    service = RelationshipQueryService(db)
    return await service.get_candidate_agent(candidate_id)


@router.get("/{agent_id}/relationships", response_model=RelationshipList)
async def get_agent_relationships(
    agent_id: str,
    relationship_status: Optional[RelationshipStatus] = Query(None, alias="status"),
    limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Career agent relationships of an agent, newest first"""
    service = RelationshipQueryService(db)
    relationships = await service.list_agent_relationships(agent_id, relationship_status, limit)
    return RelationshipList(data=relationships, count=len(relationships))


@router.get("/{agent_id}/stats", response_model=AgentStats)
async def get_agent_stats(
    agent_id: str,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Counts of an agent's candidates by relationship status"""
    service = RelationshipQueryService(db)
    return await service.get_agent_stats(agent_id)
