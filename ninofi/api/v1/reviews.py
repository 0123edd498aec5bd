"""Contractor reviews as submitted from the homeowner's review form."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from ninofi.api.access import get_project_or_404, is_admin
from ninofi.api.deps import get_current_user, get_db
from ninofi.common.schemas import CamelModel
from ninofi.core.reviews.service import ReviewService
from ninofi.db.base import as_utc
from ninofi.db.models.review import Review
from ninofi.db.models.user import User

router = APIRouter(tags=["Reviews"])

reviews = ReviewService()


# ---------- Schemas ----------


class ReviewCreate(CamelModel):
    project_id: uuid.UUID
    contractor_id: uuid.UUID | None = None
    rating_overall: int = Field(ge=1, le=5)
    rating_quality: int | None = Field(default=None, ge=1, le=5)
    rating_timeliness: int | None = Field(default=None, ge=1, le=5)
    rating_communication: int | None = Field(default=None, ge=1, le=5)
    rating_budget: int | None = Field(default=None, ge=1, le=5)
    comment: str = ""


class ReviewReply(CamelModel):
    response_text: str


class ReviewFlag(CamelModel):
    reason: str | None = None


class ReviewResponse(CamelModel):
    id: uuid.UUID
    project_id: uuid.UUID
    contractor_id: uuid.UUID
    reviewer_id: uuid.UUID
    rating_overall: int
    rating_quality: int | None
    rating_timeliness: int | None
    rating_communication: int | None
    rating_budget: int | None
    comment: str
    response_text: str | None
    responded_at: str | None
    is_flagged: bool
    created_at: str


class ContractorReviews(CamelModel):
    contractor_id: uuid.UUID
    average_rating: float | None
    total: int
    reviews: list[ReviewResponse]


def _review_response(r: Review) -> ReviewResponse:
    return ReviewResponse(
        id=r.id,
        project_id=r.project_id,
        contractor_id=r.contractor_id,
        reviewer_id=r.reviewer_id,
        rating_overall=r.rating_overall,
        rating_quality=r.rating_quality,
        rating_timeliness=r.rating_timeliness,
        rating_communication=r.rating_communication,
        rating_budget=r.rating_budget,
        comment=r.comment,
        response_text=r.response_text,
        responded_at=as_utc(r.responded_at).isoformat() if r.responded_at else None,
        is_flagged=r.is_flagged,
        created_at=r.created_at.isoformat(),
    )


# ---------- Endpoints ----------


@router.post("/reviews", response_model=ReviewResponse, status_code=201)
async def submit_review(
    body: ReviewCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_or_404(db, body.project_id)
    ratings = body.model_dump(include={
        "rating_overall", "rating_quality", "rating_timeliness", "rating_communication", "rating_budget",
    })
    review = await reviews.submit(db, project, current_user, ratings, body.comment, body.contractor_id)
    return _review_response(review)


@router.get("/contractors/{contractor_id}/reviews", response_model=ContractorReviews)
async def list_contractor_reviews(
    contractor_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items, average = await reviews.for_contractor(db, contractor_id, include_flagged=is_admin(current_user))
    return ContractorReviews(
        contractor_id=contractor_id,
        average_rating=average,
        total=len(items),
        reviews=[_review_response(r) for r in items],
    )


@router.post("/reviews/{review_id}/respond", response_model=ReviewResponse)
async def respond_to_review(
    review_id: uuid.UUID,
    body: ReviewReply,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    review = await reviews.get(db, review_id)
    return _review_response(await reviews.respond(db, review, current_user, body.response_text))


@router.post("/reviews/{review_id}/flag", response_model=ReviewResponse)
async def flag_review(
    review_id: uuid.UUID,
    body: ReviewFlag | None = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    review = await reviews.get(db, review_id)
    reason = body.reason if body else None
    return _review_response(await reviews.flag(db, review, current_user, reason))
