from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from tact_api.errors import ProviderError
from tact_api.models import ProviderIdentity

log = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)) or default)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)) or default)
    except ValueError:
        return default


GROQ_API_KEY = os.getenv("GROQ_API_KEY", "").strip()
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile").strip()
GROQ_MAX_TOKENS = _env_int("GROQ_MAX_TOKENS", 1024)
GROQ_ENDPOINT = "https://api.groq.com/openai/v1/chat/completions"
GROQ_SEED = 123456

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "").strip()
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash").strip()
GEMINI_MAX_TOKENS = _env_int("GEMINI_MAX_TOKENS", 2048)
GEMINI_ENDPOINT_TMPL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

LLM_TIMEOUT_SECS = _env_float("LLM_TIMEOUT_SECS", 30.0)
PROVIDER_ORDER = os.getenv("PROVIDER_ORDER", "groq,gemini")


class Provider:
    """One vendor endpoint behind the uniform (user_prompt, system_prompt) -> text contract.

    Subclasses build the vendor request body and pull the text back out of
    the vendor response; transport, timeout and error mapping live here.
    Adapters never retry: failover is the dispatcher's job.
    """

    identity: ProviderIdentity

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = LLM_TIMEOUT_SECS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.model = model
        self.timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return self.identity.value

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def call(self, user_prompt: str, system_prompt: str) -> str:
        if not self.is_available():
            raise ProviderError(self.name, "missing API key")
        url, kwargs = self._build_request(user_prompt, system_prompt)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(url, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderError(self.name, f"request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"request error: {e!r}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            raise ProviderError(self.name, f"HTTP {resp.status_code}: {resp.text[:400]}")

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(self.name, "non-JSON HTTP body") from e

        text = self._extract_text(data) if isinstance(data, dict) else None
        if not text:
            raise ProviderError(self.name, "empty response text")
        return text

    def _build_request(self, user_prompt: str, system_prompt: str) -> tuple[str, Dict[str, Any]]:
        raise NotImplementedError

    def _extract_text(self, data: Dict[str, Any]) -> Optional[str]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r}, available={self.is_available()})"


class GroqProvider(Provider):
    """Groq (OpenAI-compatible) chat completions with JSON mode."""

    identity = ProviderIdentity.GROQ

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = LLM_TIMEOUT_SECS,
        max_tokens: int = GROQ_MAX_TOKENS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(GROQ_API_KEY if api_key is None else api_key, model or GROQ_MODEL, timeout, transport)
        self.max_tokens = max_tokens

    def _build_request(self, user_prompt: str, system_prompt: str) -> tuple[str, Dict[str, Any]]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": 0,
            "top_p": 1,
            "seed": GROQ_SEED,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
        }
        return GROQ_ENDPOINT, {"headers": headers, "json": body}

    def _extract_text(self, data: Dict[str, Any]) -> Optional[str]:
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return None
        content = (choices[0].get("message") or {}).get("content")
        if isinstance(content, str) and content.strip():
            return content
        return None


class GeminiProvider(Provider):
    """Google Gemini generateContent with a JSON response mime type."""

    identity = ProviderIdentity.GEMINI

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = LLM_TIMEOUT_SECS,
        max_tokens: int = GEMINI_MAX_TOKENS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(GEMINI_API_KEY if api_key is None else api_key, model or GEMINI_MODEL, timeout, transport)
        self.max_tokens = max_tokens

    @property
    def endpoint(self) -> str:
        return GEMINI_ENDPOINT_TMPL.format(model=self.model)

    def _build_request(self, user_prompt: str, system_prompt: str) -> tuple[str, Dict[str, Any]]:
        body = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
            "generationConfig": {
                "temperature": 0,
                "maxOutputTokens": self.max_tokens,
                "responseMimeType": "application/json",
            },
        }
        return self.endpoint, {"params": {"key": self.api_key}, "json": body}

    def _extract_text(self, data: Dict[str, Any]) -> Optional[str]:
        for cand in data.get("candidates") or []:
            if not isinstance(cand, dict):
                continue
            parts = (cand.get("content") or {}).get("parts") or []
            for part in parts:
                if not isinstance(part, dict):
                    continue
                txt = part.get("text")
                if isinstance(txt, str) and txt.strip():
                    return txt
                function_call = part.get("functionCall")
                if isinstance(function_call, dict) and function_call.get("args"):
                    return json.dumps(function_call["args"], ensure_ascii=False)
        return None


_PROVIDER_CLASSES = {
    ProviderIdentity.GROQ: GroqProvider,
    ProviderIdentity.GEMINI: GeminiProvider,
}


def build_providers(order: Optional[str] = None) -> List[Provider]:
    """Instantiate the providers named in PROVIDER_ORDER, unknown names skipped.

    Providers without a key are still returned; the dispatcher skips them via
    is_available() so the rotation slots stay stable.
    """
    names = [n.strip().lower() for n in (order or PROVIDER_ORDER).split(",") if n.strip()]
    out: List[Provider] = []
    seen = set()
    for n in names:
        try:
            ident = ProviderIdentity(n)
        except ValueError:
            log.warning("providers: ignoring unknown provider name %r", n)
            continue
        if ident in seen:
            continue
        seen.add(ident)
        out.append(_PROVIDER_CLASSES[ident]())
    if not out:
        log.warning("providers: PROVIDER_ORDER=%r named no known provider; using defaults", order or PROVIDER_ORDER)
        out = [GroqProvider(), GeminiProvider()]
    for p in out:
        if not p.is_available():
            log.warning("providers: %s has no API key configured; it will be skipped", p.name)
    return out
