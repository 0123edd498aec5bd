from pydantic import BaseModel, Field


class EvidenceLocation(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class MilestoneEvidence(BaseModel):
    description: str
    photos: list[str] = []
    location: EvidenceLocation | None = None
