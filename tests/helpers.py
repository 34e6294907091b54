"""Provider doubles and canned model replies shared by the tests."""

import asyncio
import json
from typing import Callable, List, Optional, Union

from tact_api.errors import ProviderError
from tact_api.models import ProviderIdentity
from tact_api.providers import Provider

Reply = Union[str, Exception, Callable[[str, str], str]]


class FakeProvider(Provider):
    """In-memory provider: replays canned replies and records every call."""

    def __init__(self, identity: ProviderIdentity, replies: Optional[List[Reply]] = None, available: bool = True) -> None:
        super().__init__(api_key="fake-key" if available else "", model=f"fake-{identity.value}")
        self.identity = identity
        self.replies: List[Reply] = list(replies or [])
        self.default: Optional[Reply] = None
        self.calls: List[tuple] = []

    async def call(self, user_prompt: str, system_prompt: str) -> str:
        if not self.is_available():
            raise AssertionError(f"{self.name} has no key and must not be called")
        self.calls.append((user_prompt, system_prompt))
        # Yield like a real network call so overlapping requests interleave
        await asyncio.sleep(0)
        reply = self.replies.pop(0) if self.replies else self.default
        if reply is None:
            raise ProviderError(self.name, "no canned reply")
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(user_prompt, system_prompt)
        return reply


def analysis_json(score: int = 42, rewrite: Optional[str] = "Hello, thank you.", rewritten_score: Optional[int] = 90) -> str:
    return json.dumps(
        {
            "score": score,
            "summary": "Too casual for the receiver.",
            "audience_perception": {
                "primary_receiver": "Unprofessional.",
                "neutral_observer": "Flippant.",
            },
            "highlights": [
                {
                    "substring": "lol",
                    "severity": "high",
                    "reason": "Slang to a superior.",
                    "better_alternative": "",
                }
            ],
            "rewritten_message": rewrite,
            "rewritten_score": rewritten_score,
        }
    )


def parallax_option(option_id: str = "A", recommended: bool = False, risk: str = "Low") -> dict:
    return {
        "id": option_id,
        "title": f"Option {option_id}",
        "description": "Talk to them directly.",
        "risk_level": risk,
        "pros": ["Clears the air"],
        "cons": ["Awkward"],
        "dos": ["Stay calm"],
        "donts": ["Blame"],
        "recommended": recommended,
    }


def parallax_json() -> str:
    return json.dumps(
        {
            "analysis": {
                "internal_monologue": "I am going to get fired.",
                "panic_check": "One missed deadline rarely ends a job.",
            },
            "options": [
                parallax_option("A", True, "Low"),
                parallax_option("B", False, "Medium"),
                parallax_option("C", False, "High"),
            ],
            "advice": "Own it early and bring a plan.",
        }
    )


