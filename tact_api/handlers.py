from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

from tact_api.dispatch import Dispatcher
from tact_api.errors import InputValidationError
from tact_api.models import (
    MAX_ANALYZE_CHARS,
    MAX_PARALLAX_CHARS,
    REWRITE_SCORE_CEILING,
    AnalysisResult,
    AnalysisSettings,
    ParallaxDraftResponse,
    ParallaxOption,
    ParallaxResponse,
)
from tact_api.prompts import (
    build_analyze_prompts,
    build_parallax_chat_prompts,
    build_parallax_draft_prompts,
)

log = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>?")


def sanitize_input(text: Optional[str]) -> str:
    """Strip HTML-like tags; None becomes ""."""
    if not text:
        return ""
    return _TAG_RE.sub("", text)


def _require_text(value: Optional[str], field: str, max_chars: int) -> str:
    clean = sanitize_input(value)
    if not clean.strip():
        raise InputValidationError(f"{field} is required.")
    if len(clean) > max_chars:
        raise InputValidationError(f"{field} is too long (max {max_chars} characters).")
    return clean


def apply_rewrite_policy(result: AnalysisResult) -> AnalysisResult:
    """A message scoring above the ceiling gets no rewrite suggestion."""
    if result.score > REWRITE_SCORE_CEILING:
        return result.model_copy(update={"rewritten_message": None, "rewritten_score": None})
    return result


async def analyze(dispatcher: Dispatcher, text: Optional[str], settings: Optional[AnalysisSettings] = None) -> Dict[str, Any]:
    clean = _require_text(text, "Text", MAX_ANALYZE_CHARS)
    settings = settings or AnalysisSettings()
    settings = AnalysisSettings(
        receiverType=sanitize_input(settings.receiverType) or "General Audience",
        intendedTone=sanitize_input(settings.intendedTone) or "Neutral",
        userTraits=sanitize_input(settings.userTraits) or "None",
    )
    system_prompt, user_prompt = build_analyze_prompts(clean, settings)
    result = await dispatcher.dispatch(system_prompt, user_prompt, shape=AnalysisResult)
    result = apply_rewrite_policy(result)
    log.info(
        "analyze: receiver=%s score=%d rewrite=%s",
        settings.receiverType,
        result.score,
        result.rewritten_message is not None,
    )
    return result.model_dump()


async def parallax_chat(dispatcher: Dispatcher, message: Optional[str]) -> Dict[str, Any]:
    clean = _require_text(message, "Message", MAX_PARALLAX_CHARS)
    system_prompt, user_prompt = build_parallax_chat_prompts(clean)
    response = await dispatcher.dispatch(system_prompt, user_prompt, shape=ParallaxResponse)
    log.info("parallax.chat: options=%d", len(response.options))
    return response.model_dump()


async def parallax_draft(
    dispatcher: Dispatcher,
    situation: Optional[str],
    strategy: Optional[ParallaxOption],
    receiver: Optional[str] = None,
) -> Dict[str, Any]:
    clean = _require_text(situation, "Situation", MAX_PARALLAX_CHARS)
    if strategy is None:
        raise InputValidationError("Strategy is required.")
    system_prompt, user_prompt = build_parallax_draft_prompts(clean, strategy, sanitize_input(receiver) or None)
    response = await dispatcher.dispatch(system_prompt, user_prompt, shape=ParallaxDraftResponse)
    log.info("parallax.draft: strategy=%s chars=%d", strategy.id, len(response.draft))
    return response.model_dump()
