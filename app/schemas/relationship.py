from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Tuple, Union
from enum import Enum
import uuid

from app.schemas.profile import ProfileSummary

NOTE_MAX_LENGTH = 1000


class RelationshipKind(str, Enum):
    FRIEND = "friend"
    CAREER_AGENT = "career_agent"


class RelationshipStatus(str, Enum):
    REQUESTED = "requested"
    PROPOSED = "proposed"
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    REJECTED = "rejected"


# Waiting on the receiving party
OPEN_STATUSES = frozenset({
    RelationshipStatus.REQUESTED,
    RelationshipStatus.PROPOSED,
    RelationshipStatus.PENDING,
})
TERMINAL_STATUSES = frozenset({RelationshipStatus.INACTIVE, RelationshipStatus.REJECTED})
# At most one live record per pair and kind
LIVE_STATUSES = OPEN_STATUSES | {RelationshipStatus.ACTIVE}


class Initiator(str, Enum):
    AGENT = "agent"
    CANDIDATE = "candidate"


class RequestType(str, Enum):
    FRIEND_REQUEST = "friend_request"
    CAREER_AGENT_REQUEST = "career_agent_request"
    CAREER_AGENT_PROPOSAL = "career_agent_proposal"


class ConnectionRole(str, Enum):
    REQUESTOR = "requestor"
    RECIPIENT = "recipient"
    CAREER_AGENT = "career_agent"
    CANDIDATE = "candidate"


class FriendParties(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["friend"] = "friend"
    requestor_id: str
    recipient_id: str

    @property
    def nominal(self) -> Tuple[str, str]:
        """(requestor, recipient); the recipient is the receiving party"""
        return self.requestor_id, self.recipient_id


class CareerAgentParties(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["career_agent"] = "career_agent"
    agent_id: str
    candidate_id: str
    initiated_by: Initiator = Initiator.AGENT

    @property
    def nominal(self) -> Tuple[str, str]:
        if self.initiated_by == Initiator.CANDIDATE:
            return self.candidate_id, self.agent_id
        return self.agent_id, self.candidate_id


Parties = Annotated[Union[FriendParties, CareerAgentParties], Field(discriminator="kind")]


# Requests

class RelationshipCreate(BaseModel):
    """Direct creation of a relationship with a chosen starting status"""
    parties: Parties
    status: RelationshipStatus = RelationshipStatus.ACTIVE
    note: Optional[str] = Field(None, max_length=NOTE_MAX_LENGTH)


class ConnectionRequestCreate(BaseModel):
    recipient_id: str = Field(..., min_length=1)
    kind: RelationshipKind
    note: Optional[str] = Field(None, max_length=NOTE_MAX_LENGTH)


class ProposalCreate(BaseModel):
    candidate_id: str = Field(..., min_length=1)
    note: Optional[str] = Field(None, max_length=NOTE_MAX_LENGTH)


class RelationshipReject(BaseModel):
    note: Optional[str] = Field(None, max_length=NOTE_MAX_LENGTH)


class RelationshipUpdate(BaseModel):
    status: Optional[RelationshipStatus] = None
    note: Optional[str] = Field(None, max_length=NOTE_MAX_LENGTH)
    end_date: Optional[datetime] = None


# Responses

class RelationshipRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    kind: RelationshipKind
    requestor_id: str
    recipient_id: str
    agent_id: Optional[str] = None
    candidate_id: Optional[str] = None
    status: RelationshipStatus
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    note: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class RelationshipDetail(RelationshipRead):
    requestor: Optional[ProfileSummary] = None
    recipient: Optional[ProfileSummary] = None


class ContactSummary(BaseModel):
    user_id: str
    connection_id: Optional[uuid.UUID] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: Optional[str] = None
    headline: Optional[str] = None
    company: Optional[str] = None
    profile_picture_url: Optional[str] = None
    # Other party's own active friend count, not an intersection with the caller
    mutual_connections: int = 0
    candidates_count: int = 0


class ConnectedContact(ContactSummary):
    connection_types: List[RelationshipKind]
    roles: List[ConnectionRole]
    connection_date: datetime


class RequestContact(ContactSummary):
    request_types: List[RequestType]
    connection_types: List[RelationshipKind]
    request_date: datetime
    status: RelationshipStatus
    note: Optional[str] = None


class ContactList(BaseModel):
    data: List[ContactSummary]
    count: int


class ConnectedList(BaseModel):
    data: List[ConnectedContact]
    count: int


class RequestList(BaseModel):
    data: List[RequestContact]
    count: int


class RelationshipList(BaseModel):
    data: List[RelationshipDetail]
    count: int


class CandidateIds(BaseModel):
    candidate_ids: List[str]


class AgentStats(BaseModel):
    total_candidates: int = 0
    active_candidates: int = 0
    pending_candidates: int = 0
    proposed_candidates: int = 0
    requested_candidates: int = 0
    inactive_candidates: int = 0
    rejected_candidates: int = 0


class DocumentAccess(BaseModel):
    owner_id: str
    viewer_id: str
    allowed: bool
