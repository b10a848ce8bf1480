from fastapi import APIRouter

from app.api.v1.endpoints import connections, career_agents

api_router = APIRouter()

# Include routers
api_router.include_router(connections.router, prefix="/connections", tags=["connections"])
api_router.include_router(career_agents.router, prefix="/career-agents", tags=["career-agents"])
