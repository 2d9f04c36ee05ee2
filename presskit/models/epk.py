"""
presskit/models/epk.py
Press-kit payload models. Nested blocks are stored as JSON documents.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, EmailStr, Field

from presskit.core.security import sanitize
from presskit.models.base import ApiModel


class EPKStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class MediaKind(str, Enum):
    IMAGE = "image"
    AUDIO = "audio"


def check_title(value: str) -> str:
    # length applies to the stored, tag-free title
    value = sanitize(value)
    if not 3 <= len(value) <= 100:
        raise ValueError("Title must be between 3 and 100 characters")
    return value


def check_description(value: str) -> str:
    if len(value) > 5000:
        raise ValueError("Description cannot exceed 5000 characters")
    return value


Title = Annotated[str, AfterValidator(check_title)]
Description = Annotated[str, AfterValidator(check_description)]


class Bio(ApiModel):
    short_bio: Optional[str] = Field(default=None, max_length=300)
    full_bio: Optional[str] = None
    highlights: List[str] = Field(default_factory=list)


class PressKit(ApiModel):
    riders: List[Dict[str, Any]] = Field(default_factory=list)
    press_releases: List[Dict[str, Any]] = Field(default_factory=list)


class Contact(ApiModel):
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    social_links: Dict[str, str] = Field(default_factory=dict)
    booking_inquiries: Dict[str, Any] = Field(default_factory=dict)


class Customization(ApiModel):
    theme: Literal["light", "dark"] = "dark"
    accent_color: str = "#6366f1"
    custom_css: Optional[str] = None
    custom_domain: Optional[str] = None


class Seo(ApiModel):
    meta_title: Optional[str] = Field(default=None, max_length=60)
    meta_description: Optional[str] = Field(default=None, max_length=160)
    keywords: List[str] = Field(default_factory=list)
    og_image: Optional[str] = None


class EPKCreate(ApiModel):
    title: Title
    description: Optional[Description] = None
    status: EPKStatus = EPKStatus.DRAFT
    bio: Bio = Field(default_factory=Bio)
    press_kit: PressKit = Field(default_factory=PressKit)
    contact: Contact = Field(default_factory=Contact)
    customization: Customization = Field(default_factory=Customization)
    seo: Seo = Field(default_factory=Seo)


class EPKUpdate(ApiModel):
    title: Optional[Title] = None
    description: Optional[Description] = None
    status: Optional[EPKStatus] = None
    bio: Optional[Bio] = None
    press_kit: Optional[PressKit] = None
    contact: Optional[Contact] = None
    customization: Optional[Customization] = None
    seo: Optional[Seo] = None


class MediaDeleteRequest(ApiModel):
    public_id: str = Field(min_length=1)
    type: MediaKind


class InteractionRequest(ApiModel):
    type: Literal["click", "scroll", "play", "pause", "download"]
