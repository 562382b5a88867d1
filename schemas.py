"""
Database Schemas for the travel marketplace

Each Pydantic model describes a MongoDB collection. Collection names follow
the existing data: users, guideApplications, packages, bookings, stories.
Request bodies that only carry part of a record live at the bottom.
"""

from pydantic import BaseModel, ConfigDict, Field, EmailStr
from typing import Optional, List, Literal
from datetime import datetime

Role = Literal["tourist", "guide", "admin"]
ApplicationStatus = Literal["pending", "approving", "rejected"]
BookingStatus = Literal["pending", "confirmed", "rejected"]


class User(BaseModel):
    """
    Users collection (collection name: users)
    """
    email: EmailStr = Field(..., description="Email address, unique")
    name: Optional[str] = Field(None, description="Display name")
    photoURL: Optional[str] = Field(None, description="Profile image URL")
    role: Role = Field("tourist", description="tourist, guide or admin")


class GuideApplication(BaseModel):
    """
    Guide applications collection (collection name: guideApplications)

    Any extra fields the applicant submits are kept as-is.
    """
    model_config = ConfigDict(extra="allow")

    email: EmailStr
    status: ApplicationStatus = "pending"
    createdAt: Optional[datetime] = None


class Package(BaseModel):
    """
    Travel packages collection (collection name: packages)
    """
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class Booking(BaseModel):
    """
    Bookings collection (collection name: bookings)
    """
    model_config = ConfigDict(extra="allow")

    touristEmail: EmailStr
    guideEmail: EmailStr
    status: BookingStatus = "pending"
    createdAt: Optional[datetime] = None


class Story(BaseModel):
    """
    Travel stories collection (collection name: stories)
    """
    title: str
    text: str
    images: List[str] = Field(..., min_length=1)
    email: EmailStr
    createdAt: Optional[datetime] = None


# Request bodies

class TokenRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    email: EmailStr


class UserCreate(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    photoURL: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    photoURL: Optional[str] = None


class GuideApplicationCreate(BaseModel):
    model_config = ConfigDict(extra="allow")


class PackageCreate(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str


class PackageUpdate(BaseModel):
    model_config = ConfigDict(extra="allow")


class BookingCreate(BaseModel):
    model_config = ConfigDict(extra="allow")

    guideEmail: EmailStr


class BookingDecision(BaseModel):
    action: str


class StoryCreate(BaseModel):
    title: str
    text: str
    images: List[str] = Field(..., min_length=1)


class StoryUpdate(BaseModel):
    title: Optional[str] = None
    text: Optional[str] = None
    addImages: List[str] = []
    removeImages: List[str] = []
