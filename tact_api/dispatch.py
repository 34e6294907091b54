from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Type

from pydantic import BaseModel, ValidationError

from tact_api.errors import AllProvidersFailedError, ParseError, ProviderError, TactError
from tact_api.llm_parsing import normalize
from tact_api.providers import Provider

log = logging.getLogger(__name__)

MAX_ATTEMPTS = 2


@dataclass
class DispatchState:
    """Round-robin cursor into the provider list.

    Advanced by one slot per dispatch whatever the outcome; only a new
    instance starts over.
    """

    size: int
    cursor: int = 0

    def __post_init__(self) -> None:
        if self.size <= 0:
            raise ValueError("DispatchState needs at least one provider slot")
        self.cursor %= self.size

    def take(self) -> int:
        """Return the current slot and move the cursor to the next one."""
        slot = self.cursor
        self.cursor = (slot + 1) % self.size
        return slot


class Dispatcher:
    """Primary/failover dispatch across LLM providers.

    Each logical request starts on the provider under the cursor (or the
    next available one when that provider has no credentials) and, on any
    failure, moves to the following available provider. At most
    ``max_attempts`` provider calls are made per request.
    """

    def __init__(
        self,
        providers: Sequence[Provider],
        state: Optional[DispatchState] = None,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        if not providers:
            raise ValueError("Dispatcher needs at least one provider")
        self.providers: List[Provider] = list(providers)
        self.state = state if state is not None else DispatchState(len(self.providers))
        if self.state.size != len(self.providers):
            raise ValueError("DispatchState size does not match provider count")
        self.max_attempts = max(1, max_attempts)

    def available_names(self) -> List[str]:
        return [p.name for p in self.providers if p.is_available()]

    def plan(self, slot: int) -> List[Provider]:
        """Providers to try for a request whose round-robin slot is ``slot``."""
        n = len(self.providers)
        rotated = [self.providers[(slot + i) % n] for i in range(n)]
        return [p for p in rotated if p.is_available()][: self.max_attempts]

    async def dispatch(
        self,
        system_prompt: str,
        user_prompt: str,
        shape: Optional[Type[BaseModel]] = None,
    ) -> Any:
        """Run one logical request; returns the parsed dict, or a ``shape`` instance.

        Raises AllProvidersFailedError once every planned attempt failed.
        """
        # Cursor moves before the first await so overlapping requests get distinct slots
        slot = self.state.take()
        attempts = self.plan(slot)
        if not attempts:
            log.error("dispatch: no provider is configured (slot=%d)", slot)
            raise AllProvidersFailedError([])
        log.info(
            "dispatch: slot=%d primary=%s fallback=%s",
            slot,
            attempts[0].name,
            attempts[1].name if len(attempts) > 1 else None,
        )

        errors: List[TactError] = []
        for idx, provider in enumerate(attempts, start=1):
            try:
                result = await self._attempt(provider, system_prompt, user_prompt, shape)
            except ParseError as e:
                log.warning(
                    "dispatch: attempt %d provider=%s unparsable output (%s); raw=%r",
                    idx,
                    provider.name,
                    e.reason,
                    (e.raw_text or "")[:400],
                )
                errors.append(e)
                continue
            except ProviderError as e:
                log.warning("dispatch: attempt %d provider=%s failed: %s", idx, provider.name, e.cause)
                errors.append(e)
                continue
            if idx > 1:
                log.info("dispatch: recovered via failover provider=%s", provider.name)
            return result

        log.error("dispatch: all %d attempt(s) failed", len(errors))
        raise AllProvidersFailedError(errors)

    async def _attempt(
        self,
        provider: Provider,
        system_prompt: str,
        user_prompt: str,
        shape: Optional[Type[BaseModel]],
    ) -> Any:
        raw = await provider.call(user_prompt, system_prompt)
        try:
            parsed = normalize(raw)
        except ParseError as e:
            e.provider = provider.name
            raise
        if shape is None:
            return parsed
        try:
            return shape.model_validate(parsed)
        except ValidationError as e:
            raise ParseError(raw, f"response does not match {shape.__name__}: {e.error_count()} error(s)", provider.name) from e
