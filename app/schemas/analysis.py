from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

TOP_ROLES_MAX = 5
SKILLS_MAX = 30
RED_FLAGS_MAX = 8
NEXT_STEPS_MAX = 6

SCORE_MIN = 1
SCORE_MAX = 10
SCORE_DEFAULT = 5

DEFAULT_INDUSTRY = "General"
DEFAULT_SENIORITY = "No determinado"

AnalysisTier = Literal["remote", "recovered", "local_heuristic"]


class AnalysisResult(BaseModel):
    industry: str = DEFAULT_INDUSTRY
    role_seniority: str = DEFAULT_SENIORITY
    top_roles: list[str] = Field(default_factory=list, max_length=TOP_ROLES_MAX)
    skills: list[str] = Field(default_factory=list, max_length=SKILLS_MAX)
    score: float = Field(default=SCORE_DEFAULT, ge=SCORE_MIN, le=SCORE_MAX)
    red_flags: list[str] = Field(default_factory=list, max_length=RED_FLAGS_MAX)
    summary: str = ""
    next_steps: list[str] = Field(default_factory=list, max_length=NEXT_STEPS_MAX)


class CallToAction(BaseModel):
    message: str
    url: str


class PublicAnalyzeRequest(BaseModel):
    cv_text: str | None = None
    email: str | None = None

    @field_validator("email", mode="before")
    @classmethod
    def _non_string_email_is_anonymous(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None


class PublicAnalyzeResponse(BaseModel):
    ok: Literal[True] = True
    cv_hash: str
    remaining: int = Field(ge=0)
    analysis: AnalysisResult
    cta: CallToAction


class PublicErrorResponse(BaseModel):
    ok: Literal[False] = False
    code: str
    message: str
    remaining: int | None = None
    cta: CallToAction | None = None
