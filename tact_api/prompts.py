from __future__ import annotations

import json
from typing import Optional, Tuple

from tact_api.models import AnalysisSettings, ParallaxOption

_JSON_ONLY = "Output valid JSON only. No backticks. No explanations. No text before or after the JSON object."

_ANALYSIS_SHAPE_HINT = """
Return a JSON object with the following structure:
{
  "score": number,                 // 0-100 score.
  "summary": string,               // One sentence summary.
  "audience_perception": {
    "primary_receiver": string,    // How the intended receiver will read it.
    "neutral_observer": string     // How a neutral third party would read it.
  },
  "highlights": [
    {
      "substring": string,         // The exact matching substring from the user text.
      "severity": "high" | "medium" | "low",
      "reason": string,
      "better_alternative": string
    }
  ],
  "rewritten_message": string,     // Improved version matching the intended tone.
  "rewritten_score": number        // Score of the rewritten message, 0-100.
}
"""

_STRICT_SCORING_RULES = """
Strict Scoring Rules:
- Score < 50: DANGEROUS. Contains insults, wildly inappropriate slang for the receiver (e.g. 'lol' to a boss), or hostility.
- Score 50-69: Risky, passive-aggressive, or too casual.
- Score 70-85: Acceptable but could be sharper.
- Score > 85: Strong. Only award this when nothing meaningful needs to change.
- If input has slang (lol, u, thx) directed at Boss/Client, score MUST be < 50.
"""

_PARALLAX_SHAPE_HINT = """
Return a JSON object with the following structure:
{
  "analysis": {
    "internal_monologue": string,  // What the user is probably telling themselves right now.
    "panic_check": string          // A calm, grounded reassurance about the real stakes.
  },
  "options": [
    {
      "id": "A" | "B" | "C",
      "title": string,
      "description": string,
      "risk_level": "Low" | "Medium" | "High",
      "pros": [string],
      "cons": [string],
      "dos": [string],
      "donts": [string],
      "recommended": boolean
    }
  ],
  "advice": string                 // One or two sentences of overall guidance.
}
Provide exactly three options with ids "A", "B" and "C", covering meaningfully
different strategies (for example cautious, direct, and escalating).
Exactly one option must have "recommended": true.
"""

_DRAFT_SHAPE_HINT = """
Return a JSON object with exactly one key:
{"draft": string}  // The full message, ready to send, with no placeholders left unresolved.
"""


def build_analyze_prompts(text: str, settings: AnalysisSettings) -> Tuple[str, str]:
    """Return (system_prompt, user_prompt) for a tone analysis."""
    system = f"""
Act as a strict, high-stakes communication coach. Your job is to save the user from embarrassment, job loss, or damaged relationships.

Context:
- Receiver: {settings.receiverType}
- Intended Tone: {settings.intendedTone}
- User Traits: {settings.userTraits}
{_ANALYSIS_SHAPE_HINT}{_STRICT_SCORING_RULES}
{_JSON_ONLY}

Task:
Analyze the text the user provides.
"""
    user = f'Text to analyze: "{text}"'
    return system.strip(), user


def build_parallax_chat_prompts(message: str) -> Tuple[str, str]:
    system = f"""
You are Parallax, a calm and pragmatic workplace strategist. The user describes a stressful situation.
First separate the catastrophising from the facts, then lay out distinct ways to respond, weighing the risk of each honestly.
Never recommend deception, retaliation, or anything that could get the user fired or sued.
{_PARALLAX_SHAPE_HINT}
{_JSON_ONLY}
"""
    user = f'Situation: "{message}"'
    return system.strip(), user


def build_parallax_draft_prompts(
    situation: str,
    strategy: ParallaxOption,
    receiver: Optional[str] = None,
) -> Tuple[str, str]:
    strategy_json = json.dumps(strategy.model_dump(), ensure_ascii=False, indent=2)
    audience = (receiver or "").strip() or "the person involved in the situation"
    system = f"""
You are a communication ghostwriter. Write the message the user should send to {audience}, following the chosen strategy exactly.
Respect every "dos" item and avoid every "donts" item of the strategy. Keep it concise, human, and free of corporate filler.
{_DRAFT_SHAPE_HINT}
{_JSON_ONLY}
"""
    user = f'Situation: "{situation}"\n\nChosen strategy:\n{strategy_json}'
    return system.strip(), user
