from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _Base(BaseModel):
    model_config = ConfigDict(extra="allow")


# --- Requests --------------------------------------------------------------


class StartRunRequest(_Base):
    """
    Either explicit job ids or a search field. When both are empty the
    configured default search field is used.
    """

    model_config = ConfigDict(extra="forbid")

    job_ids: List[str] = Field(default_factory=list)
    field: Optional[str] = None
    max_pages: Optional[int] = Field(default=None, ge=1, le=20)
    send_email: Optional[bool] = None
    deadline_sec: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _clean_ids(self) -> "StartRunRequest":
        cleaned = [str(j).strip() for j in self.job_ids if str(j).strip()]
        if self.job_ids and not cleaned:
            raise ValueError("job_ids must contain at least one non-empty id")
        self.job_ids = cleaned
        if self.field is not None and not self.field.strip():
            raise ValueError("field must not be blank")
        return self


# --- Responses --------------------------------------------------------------


class Health(_Base):
    ok: bool
    cache_backend: str
    cache_ok: bool
    llm_provider: str
    llm_model: str
    message: Optional[str] = None


class RunStatus(_Base):
    run_id: str
    status: str
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    summary: Optional[Dict[str, Any]] = None
    report_path: Optional[str] = None
    emailed: bool = False
    error: Optional[str] = None
