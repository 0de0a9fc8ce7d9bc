from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ListingRef(BaseModel):
    """One search hit from the listing source; only `id` is needed downstream."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(default="", validation_alias=AliasChoices("id", "job_id"))
    position_title: Optional[str] = Field(default=None, validation_alias=AliasChoices("position_title", "job_position"))
    company_name: Optional[str] = None
    location_hint: Optional[str] = Field(default=None, validation_alias=AliasChoices("location_hint", "job_location"))
    link: Optional[str] = Field(default=None, validation_alias=AliasChoices("link", "job_link"))
    posted_date: Optional[str] = Field(default=None, validation_alias=AliasChoices("posted_date", "job_posting_date"))

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        # The listing API sometimes hands out numeric ids.
        return "" if v is None else str(v).strip()


class RelatedListing(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    position_title: Optional[str] = Field(default=None, validation_alias=AliasChoices("position_title", "job_position"))
    company_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("company_name", "job_company", "company")
    )
    location: Optional[str] = Field(default=None, validation_alias=AliasChoices("location", "job_location"))
    posting_time: Optional[str] = Field(default=None, validation_alias=AliasChoices("posting_time", "job_posting_time"))
    link: Optional[str] = Field(default=None, validation_alias=AliasChoices("link", "job_link"))


class Description(BaseModel):
    # Source keys are a mix of snake_case and Capitalised_snake (Seniority_level, ...).
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    position_title: Optional[str] = Field(default=None, validation_alias=AliasChoices("position_title", "job_position"))
    company_name: Optional[str] = None
    location: Optional[str] = Field(default=None, validation_alias=AliasChoices("location", "job_location"))
    posting_time: Optional[str] = Field(default=None, validation_alias=AliasChoices("posting_time", "job_posting_time"))
    description_text: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("description_text", "job_description")
    )
    apply_link: Optional[str] = Field(default=None, validation_alias=AliasChoices("apply_link", "job_apply_link"))
    employment_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("employment_type", "Employment_type")
    )
    seniority_level: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("seniority_level", "Seniority_level")
    )
    job_function: Optional[str] = Field(default=None, validation_alias=AliasChoices("job_function", "Job_function"))
    industries: Optional[str] = Field(default=None, validation_alias=AliasChoices("industries", "Industries"))
    base_pay: Optional[str] = None
    similar_jobs: List[RelatedListing] = Field(default_factory=list)
    people_also_viewed: List[RelatedListing] = Field(default_factory=list)

    @field_validator("similar_jobs", "people_also_viewed", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return v or []

    @field_validator("base_pay", "industries", "job_function", mode="before")
    @classmethod
    def _flatten(cls, v):
        if isinstance(v, (list, tuple)):
            return ", ".join(str(x) for x in v if x)
        return v

    def is_empty(self) -> bool:
        return not (self.position_title or "").strip() and not (self.description_text or "").strip()

    def to_prompt_text(self) -> str:
        lines = [
            f"Title: {self.position_title or 'Unknown'}",
            f"Company: {self.company_name or 'Unknown'}",
            f"Location: {self.location or 'Unknown'}",
            f"Posted: {self.posting_time or 'Unknown'}",
            f"Seniority: {self.seniority_level or 'Unknown'}",
            f"Employment Type: {self.employment_type or 'Unknown'}",
            f"Function: {self.job_function or 'Unknown'}",
            f"Industries: {self.industries or 'Unknown'}",
            f"Apply Link: {self.apply_link or 'N/A'}",
            f"Description: {(self.description_text or '').strip()}",
        ]
        return "\n".join(lines)


class ResolutionOutcome(BaseModel):
    """Result of resolving one submitted listing; exactly one per submission."""

    model_config = ConfigDict(frozen=True)

    listing: ListingRef
    index: int
    description: Optional[Description] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    attempts: int = 0
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.description is not None


class FailedListing(BaseModel):
    model_config = ConfigDict(frozen=True)

    listing_id: str
    stage: str
    error_type: Optional[str] = None
    error_message: Optional[str] = None


class EvaluationRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: int = Field(default=0, ge=0, le=100)
    rendered_text: str
    source_index: int
    listing_id: Optional[str] = None
    position_title: Optional[str] = None
    company_name: Optional[str] = None
    apply_link: Optional[str] = None
    score_parsed: bool = True


class RankedReport(BaseModel):
    records: List[EvaluationRecord] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=_utcnow)
    resolved_count: int = 0
    failed_listings: List[FailedListing] = Field(default_factory=list)

    @property
    def scores(self) -> List[int]:
        return [r.score for r in self.records]

    def summary(self) -> dict[str, Any]:
        return {
            "records": len(self.records),
            "resolved": self.resolved_count,
            "failed": len(self.failed_listings),
            "top_score": self.records[0].score if self.records else None,
        }
