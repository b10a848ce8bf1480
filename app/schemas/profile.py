from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class ProfileCreate(BaseModel):
    user_id: str = Field(..., min_length=1)
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    headline: Optional[str] = Field(None, max_length=200)
    company: Optional[str] = Field(None, max_length=100)
    industry: Optional[str] = Field(None, max_length=100)
    profile_picture_url: Optional[str] = None


class ProfileSummary(BaseModel):
    """Display fields the relationship views need from the directory"""
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: Optional[str] = None
    headline: Optional[str] = None
    company: Optional[str] = None
    industry: Optional[str] = None
    profile_picture_url: Optional[str] = None
