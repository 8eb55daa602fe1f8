"""
Convocate - Style Scorer
Rates how closely a generated reply matches the persona's voice.
"""

import json
import logging
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field

from ..config import ModelConfig
from ..models.profile import StyleProfile
from ..models.runtime import OllamaRuntime, ModelError

logger = logging.getLogger(__name__)

MAX_TIPS = 3
MAX_TIP_LENGTH = 140

SCORE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["score", "tips"],
    "additionalProperties": False,
    "properties": {
        "score": {"type": "number", "minimum": 0, "maximum": 100},
        "tips": {
            "type": "array",
            "minItems": 2,
            "maxItems": MAX_TIPS,
            "items": {"type": "string", "maxLength": MAX_TIP_LENGTH}
        }
    }
}


@dataclass
class ScoreResult:
    """Authenticity score for one reply."""
    score: int = 0
    tips: List[str] = field(default_factory=list)
    scored: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "tips": list(self.tips), "scored": self.scored}

    @classmethod
    def unscored(cls) -> "ScoreResult":
        """The single sentinel used whenever scoring did not happen."""
        return cls(score=0, tips=[], scored=False)

    @classmethod
    def from_json(cls, text: str) -> "ScoreResult":
        """Parse scorer output; any wrong shape yields the unscored sentinel."""
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, TypeError):
            return cls.unscored()

        if not isinstance(data, dict):
            return cls.unscored()

        score = data.get("score")
        tips = data.get("tips")
        # bool is an int subclass but never a valid score
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            return cls.unscored()
        if not isinstance(tips, list):
            return cls.unscored()

        cleaned = [tip.strip()[:MAX_TIP_LENGTH] for tip in tips if isinstance(tip, str) and tip.strip()]
        return cls(
            score=int(round(min(100, max(0, score)))),
            tips=cleaned[:MAX_TIPS],
            scored=True
        )


class StyleScorer:
    """Independent judge call, run after the reply exists."""

    SYSTEM_PROMPT = "Score how well this AI response matches the person's authentic messaging style. Return JSON only."

    SCORE_PROMPT = """Score {name}'s style match (0-100):

STYLE: {tone}, {formality}
VOCAB: {vocabulary}
QUIRKS: {quirks}
{previous}

RESPONSE: "{reply}"

Rate: voice authenticity, vocabulary match, quirks/patterns, engagement. Give 2-3 tips (max 140 chars each).

Respond with only this JSON object:
{{
    "score": 0 to 100,
    "tips": ["tip 1", "tip 2", "tip 3"]
}}"""

    def __init__(self, runtime: OllamaRuntime, model_config: ModelConfig):
        self.runtime = runtime
        self.model_config = model_config

    def build_prompt(self, persona_name: str, profile: StyleProfile, reply: str,
                     previous_score: Optional[float] = None) -> str:
        return self.SCORE_PROMPT.format(
            name=persona_name,
            tone=profile.tone,
            formality=profile.formality,
            vocabulary=", ".join(profile.vocabulary[:5]) or "natural",
            quirks=", ".join(profile.quirks[:3]) or "none",
            previous=f"PREVIOUS: {previous_score:g}" if previous_score is not None else "FIRST EVAL",
            reply=reply
        )

    def score(self, persona_name: str, profile: StyleProfile, reply: str,
              previous_score: Optional[float] = None) -> ScoreResult:
        """
        Score a reply against the persona's profile.

        Never raises: a failed call or unusable output returns
        ScoreResult.unscored().
        """
        try:
            result = self.runtime.generate(
                model=self.model_config.model,
                prompt=self.build_prompt(persona_name, profile, reply, previous_score),
                system=self.SYSTEM_PROMPT,
                max_tokens=self.model_config.max_output_tokens,
                temperature=self.model_config.temperature,
                schema=SCORE_SCHEMA
            )
            parsed = ScoreResult.from_json(result.text)
        except ModelError as e:
            logger.warning("Scoring call for %s failed: %s", persona_name, e)
            return ScoreResult.unscored()
        except Exception:
            logger.exception("Unexpected error scoring reply for %s", persona_name)
            return ScoreResult.unscored()

        if not parsed.scored:
            logger.warning("Scorer returned unusable output for %s", persona_name)
        return parsed
