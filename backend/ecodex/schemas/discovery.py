"""
EcoDex Backend - Discovery Schemas
====================================

What:  Pydantic models for the species description returned by the oracle
       and for the discovery API contract.
How:   SpeciesDescription validates the oracle's JSON (camelCase keys);
       response models are built from ORM rows and serialized by FastAPI.

Design Decision:
    The oracle payload and the stored row are separate models. The oracle
    schema tolerates loose values (numbers where text is expected, missing
    optional sections, "Plant" vs "plant"); the response schema reflects
    exactly what was persisted.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ecodex.services.rarity import normalize_conservation_status


# ══════════════════════════════════════════════════════════════════════════
# Oracle Payload, parsed from the model's free-form reply
# ══════════════════════════════════════════════════════════════════════════


class SpeciesStats(BaseModel):
    """Physical facts. All optional free text."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    size: Optional[str] = None
    weight: Optional[str] = None
    lifespan: Optional[str] = None
    diet: Optional[str] = None


class Ability(BaseModel):
    """A notable characteristic, rendered as a named 'ability' card."""
    name: str
    description: Optional[str] = ""


class SpeciesDescription(BaseModel):
    """
    Structured species identification produced by the oracle.

    Required: name, scientificName, type. Everything else has a default so
    a sparse but well-formed answer still produces a discovery.
    """
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    name: str = Field(min_length=1)
    scientific_name: str = Field(alias="scientificName", min_length=1)
    type: Literal["plant", "animal"]
    description: str = ""
    habitat: str = ""
    region: str = ""
    stats: SpeciesStats = Field(default_factory=SpeciesStats)
    abilities: List[Ability] = Field(default_factory=list)
    fun_facts: List[str] = Field(default_factory=list, alias="funFacts")
    conservation_status: Optional[str] = Field(default=None, alias="conservationStatus")
    commonality: Optional[str] = None
    confidence: Optional[str] = None

    @field_validator("name", "scientific_name", mode="before")
    @classmethod
    def strip_names(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("type", mode="before")
    @classmethod
    def lowercase_type(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("description", "habitat", "region", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator("stats", mode="before")
    @classmethod
    def none_to_empty_stats(cls, v):
        return {} if v is None else v

    @field_validator("abilities", "fun_facts", mode="before")
    @classmethod
    def none_to_empty_list(cls, v):
        return [] if v is None else v

    @field_validator("conservation_status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        # Unrecognized statuses become None and fall through the rarity table
        return normalize_conservation_status(v)


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class Location(BaseModel):
    """Where the photo was taken, as reported by the client."""
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    address: Optional[str] = Field(default=None, max_length=500)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class DiscoveryResponse(BaseModel):
    """
    Full representation of a discovery entry.
    Returned by POST /api/ecodex/identify and GET /api/ecodex/entries/{id}.
    """
    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    scientific_name: str
    description: str
    type: str
    rarity: str
    habitat: str
    region: str
    conservation_status: str
    image: str = Field(description="Normalized JPEG, base64")
    original_image: str = Field(description="Original upload, base64")
    stats: SpeciesStats
    abilities: List[Ability]
    fun_facts: List[str]
    experience_points: int
    location: Optional[Location] = None
    confidence: Optional[str] = None
    discovered_at: datetime
    is_first_discovery: bool

    @classmethod
    def from_model(cls, entry) -> "DiscoveryResponse":
        location = None
        if entry.latitude is not None or entry.longitude is not None or entry.address:
            location = Location(
                latitude=entry.latitude,
                longitude=entry.longitude,
                address=entry.address,
            )
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            name=entry.name,
            scientific_name=entry.scientific_name,
            description=entry.description,
            type=entry.type,
            rarity=entry.rarity,
            habitat=entry.habitat,
            region=entry.region,
            conservation_status=entry.conservation_status,
            image=entry.image,
            original_image=entry.original_image,
            stats=SpeciesStats(**(entry.stats or {})),
            abilities=[Ability(**a) for a in (entry.abilities or [])],
            fun_facts=list(entry.fun_facts or []),
            experience_points=entry.experience_points,
            location=location,
            confidence=entry.confidence,
            discovered_at=entry.discovered_at,
            is_first_discovery=entry.is_first_discovery,
        )


class DiscoveryListItem(BaseModel):
    """
    Compact entry for collection grids. Omits the original upload and the
    long-form facts to keep list payloads small.
    """
    id: uuid.UUID
    name: str
    scientific_name: str
    type: str
    rarity: str
    image: str
    experience_points: int
    is_first_discovery: bool
    discovered_at: datetime

    model_config = {"from_attributes": True}


class DiscoveryListResponse(BaseModel):
    """Cursor-paginated list of the caller's discoveries."""
    entries: List[DiscoveryListItem]
    total_count: int = Field(description="Entries matching the filters")
    next_cursor: Optional[str] = Field(
        default=None,
        description="Cursor for next page (ISO datetime). Null if no more pages."
    )
    has_more: bool


class DiscoveryStatsResponse(BaseModel):
    """Collection summary for the caller's profile page."""
    total_entries: int
    by_type: Dict[str, int]
    by_rarity: Dict[str, int]
    recent_entries: List[DiscoveryListItem]


class IdentifyResponse(BaseModel):
    """
    Result of one successful discovery pipeline run.

    confidence is the oracle's own label (High / Medium / Low), passed through
    for display; it never blocks persistence.
    """
    success: bool = True
    entry: DiscoveryResponse
    xp_gained: int
    is_first_discovery: bool
    confidence: Optional[str] = None
    new_level: int
    total_xp: int


class ChatResponse(BaseModel):
    """Reply from the companion ecologist."""
    success: bool = True
    response: str
