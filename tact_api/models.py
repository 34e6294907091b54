from __future__ import annotations

import enum
import math
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_serializer

MAX_ANALYZE_CHARS = 2500
MAX_PARALLAX_CHARS = 5000
REWRITE_SCORE_CEILING = 85


class ProviderIdentity(str, enum.Enum):
    GROQ = "groq"
    GEMINI = "gemini"


def _clamp_score(v: Any) -> Any:
    # Models occasionally answer 72.5 or "72"; keep 0-100 integers
    if v is None or isinstance(v, bool):
        return v
    if isinstance(v, str):
        try:
            v = float(v.strip())
        except ValueError:
            return v
    if isinstance(v, (int, float)):
        if isinstance(v, float) and not math.isfinite(v):
            return v
        return max(0, min(100, int(round(v))))
    return v


# ---------------------------------------------------------------------------
# Request bodies. Fields stay optional here so that missing/blank values are
# reported by the handlers as 400 {"error": ...} instead of FastAPI's 422.
# ---------------------------------------------------------------------------


class AnalysisSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    receiverType: str = Field("General Audience", description="Who will read the message")
    intendedTone: str = Field("Neutral", description="Tone the sender is aiming for")
    userTraits: str = Field("None", description="Free-form notes about the sender")

    @field_validator("receiverType", "intendedTone", "userTraits", mode="before")
    @classmethod
    def none_to_default(cls, v: Any, info) -> Any:
        if v is None:
            return cls.model_fields[info.field_name].default
        return v


class AnalysisRequest(BaseModel):
    text: Optional[str] = None
    settings: Optional[AnalysisSettings] = None


class ParallaxChatRequest(BaseModel):
    message: Optional[str] = None


# ---------------------------------------------------------------------------
# Model output shapes. The dispatcher validates provider JSON against these;
# a mismatch counts as a failed attempt.
# ---------------------------------------------------------------------------


class AudiencePerception(BaseModel):
    primary_receiver: str = ""
    neutral_observer: str = ""


class Highlight(BaseModel):
    """Both highlight dialects are accepted: substring/severity/reason and text/type/suggestion."""

    model_config = ConfigDict(extra="allow")

    substring: Optional[str] = None
    text: Optional[str] = None
    severity: Optional[str] = None
    type: Optional[str] = None
    reason: Optional[str] = None
    suggestion: Optional[str] = None
    better_alternative: Optional[str] = None

    @model_serializer(mode="wrap")
    def drop_missing(self, handler):
        # Only echo back the keys the model actually produced
        return {k: v for k, v in handler(self).items() if v is not None}


class AnalysisResult(BaseModel):
    score: int = Field(..., ge=0, le=100)
    summary: str = ""
    audience_perception: AudiencePerception = Field(default_factory=AudiencePerception)
    highlights: List[Highlight] = Field(default_factory=list)
    rewritten_message: Optional[str] = None
    rewritten_score: Optional[int] = Field(default=None, ge=0, le=100)

    @field_validator("score", "rewritten_score", mode="before")
    @classmethod
    def coerce_score(cls, v: Any) -> Any:
        return _clamp_score(v)

    @field_validator("rewritten_message", mode="before")
    @classmethod
    def blank_rewrite_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ParallaxOption(BaseModel):
    id: str
    title: str
    description: str = ""
    risk_level: Literal["Low", "Medium", "High"]
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)
    dos: List[str] = Field(default_factory=list)
    donts: List[str] = Field(default_factory=list)
    recommended: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def id_as_str(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("risk_level", mode="before")
    @classmethod
    def title_case_risk(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().capitalize()
        return v


class ParallaxAnalysis(BaseModel):
    internal_monologue: str = ""
    panic_check: str = ""


class ParallaxResponse(BaseModel):
    analysis: ParallaxAnalysis
    options: List[ParallaxOption] = Field(..., min_length=1)
    advice: str = ""


class ParallaxDraftRequest(BaseModel):
    situation: Optional[str] = None
    strategy: Optional[ParallaxOption] = None
    receiver: Optional[str] = None


class ParallaxDraftResponse(BaseModel):
    draft: str = Field(..., min_length=1)


class HealthResponse(BaseModel):
    status: str
    provider: str
