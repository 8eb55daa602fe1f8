"""
Convocate - Style Profile Extractor
Asks the model for a structured style profile and never lets a bad answer through.
"""

import logging
from typing import Any, Dict, List, Optional

from ..config import ModelConfig
from ..models.message import Message
from ..models.profile import (
    StyleProfile,
    FORMALITY_LEVELS,
    MESSAGE_LENGTHS,
    PUNCTUATION_STYLES,
    CAPITALIZATION_STYLES,
    validate_profile_payload,
)
from ..models.runtime import OllamaRuntime, ModelError
from .repair import load_json_object

logger = logging.getLogger(__name__)


def _string_array(max_length: Optional[int] = None, min_items: Optional[int] = None,
                  max_items: Optional[int] = None) -> Dict[str, Any]:
    items: Dict[str, Any] = {"type": "string"}
    if max_length:
        items["maxLength"] = max_length
    schema: Dict[str, Any] = {"type": "array", "items": items}
    if min_items is not None:
        schema["minItems"] = min_items
    if max_items is not None:
        schema["maxItems"] = max_items
    return schema


def _object(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "object",
        "additionalProperties": False,
        "required": list(properties),
        "properties": properties,
    }


TRAIT_SCHEMA = {"type": "number", "minimum": 1, "maximum": 10}

STYLE_SCHEMA: Dict[str, Any] = _object({
    "tone": {"type": "string", "maxLength": 400},
    "formality": {"type": "string", "enum": list(FORMALITY_LEVELS)},
    "pacing": {"type": "string", "maxLength": 300},
    "vocabulary": _string_array(80, 3, 15),
    "quirks": _string_array(120, 1, 12),
    "examples": _string_array(140, 2, 8),
    "traits": _object({
        name: TRAIT_SCHEMA
        for name in ("openness", "expressiveness", "humor", "empathy", "directness", "enthusiasm")
    }),
    "emotions": _object({
        "primary": {"type": "string"},
        "secondary": _string_array(),
        "triggers": _object({"positive": _string_array(), "negative": _string_array()}),
        "mood_patterns": _object({
            "typical_mood": {"type": "string"},
            "mood_indicators": _string_array(),
            "stress_indicators": _string_array(),
        }),
    }),
    "preferences": _object({
        "topics": _string_array(),
        "avoids": _string_array(),
        "engagement": _string_array(),
        "relationship_dynamics": _object({
            "power_position": {"type": "string"},
            "trust_indicators": _string_array(),
            "boundary_style": {"type": "string"},
        }),
        "context_preferences": _object({
            "formal_contexts": _string_array(),
            "casual_contexts": _string_array(),
            "work_contexts": _string_array(),
        }),
    }),
    "communication_patterns": _object({
        "message_length": {"type": "string", "enum": list(MESSAGE_LENGTHS)},
        "punctuation_style": {"type": "string", "enum": list(PUNCTUATION_STYLES)},
        "capitalization": {"type": "string", "enum": list(CAPITALIZATION_STYLES)},
        "abbreviations": _string_array(),
        "unique_expressions": _string_array(),
    }),
})


class StyleProfileExtractor:
    """
    Turns a sample of one speaker's messages into a StyleProfile.

    Workflow:
    1. Build the analysis prompt for the detected formality context
    2. Call the model with STYLE_SCHEMA as structured output
    3. Repair a truncated object, validate the required fields
    4. Merge the payload over the defaults

    Any failure along the way yields StyleProfile.fallback().
    """

    SYSTEM_PROMPT = """You are an expert in authentic communication analysis. Create a detailed personality profile that captures how this person ACTUALLY communicates. Base every value on evidence in the messages. {context}"""

    CONTEXT_GUIDANCE = {
        "formal": "This appears to be formal communication (emails, professional messages). Focus on professional tone, structured responses, and appropriate business etiquette.",
        "casual": "This appears to be casual communication (texts, chats). Focus on natural speech patterns, informal expressions, and personal communication style.",
        "mixed": "This appears to be mixed communication styles. Note when they switch between formal and casual, and what triggers these changes.",
    }

    ANALYSIS_PROMPT = """Analyze {name}'s authentic communication style from these {count} messages ({formality} context):

{messages}

ANALYSIS FOCUS:
- HOW do they express emotions? (word choice, punctuation, emojis)
- WHAT is their typical response length and structure?
- HOW do they handle different topics? (enthusiasm levels, depth)
- WHAT makes their voice unique? (specific phrases, habits, quirks)
- HOW do they build relationships through communication? (supportive, playful, direct)
{extra_focus}
Extract behavioral patterns that match their communication context. Respond with a single JSON object following the create_style_profile schema: tone, formality (formal|casual|mixed), pacing, vocabulary, quirks, examples (real snippets from the messages), traits (1-10 each), emotions, preferences, communication_patterns."""

    EXTRA_FOCUS = {
        "formal": "- WHEN do they use professional vs personal language?\n",
        "mixed": "- WHEN do they switch between formal and casual styles?\n",
    }

    def __init__(self, runtime: OllamaRuntime, model_config: ModelConfig):
        """
        Initialize the extractor.

        Args:
            runtime: Model runtime used for the profiling call.
            model_config: Model name and generation knobs for profiling.
        """
        self.runtime = runtime
        self.model_config = model_config

    def build_prompts(self, sample: List[Message], speaker_name: str, formality_context: str) -> Dict[str, str]:
        """Build the system and user prompts for one speaker."""
        context = formality_context if formality_context in FORMALITY_LEVELS else "casual"
        numbered = "\n".join(f"{i}. {m.text}" for i, m in enumerate(sample, start=1))
        return {
            "system": self.SYSTEM_PROMPT.format(context=self.CONTEXT_GUIDANCE[context]),
            "user": self.ANALYSIS_PROMPT.format(
                name=speaker_name,
                count=len(sample),
                formality=context,
                messages=numbered,
                extra_focus=self.EXTRA_FOCUS.get(context, "")
            )
        }

    def parse_profile(self, text: str, formality_context: str) -> Optional[StyleProfile]:
        """
        Repair, validate and complete a raw model payload.

        Returns None when the payload cannot be trusted; callers substitute
        the fallback profile wholesale.
        """
        data = load_json_object(text)
        if data is None:
            logger.warning("Style profile payload is not a repairable JSON object")
            return None

        problems = validate_profile_payload(data)
        if problems:
            logger.warning("Style profile payload rejected: %s", "; ".join(problems))
            return None

        return StyleProfile.from_partial(data, formality_context=formality_context)

    def extract(self, sample: List[Message], speaker_name: str, formality_context: str = "casual") -> StyleProfile:
        """
        Derive a style profile for one speaker.

        Args:
            sample: The speaker's sampled messages.
            speaker_name: Name shown to the model.
            formality_context: Detected formality of the speaker's messages.

        Returns:
            A complete StyleProfile; never raises.
        """
        try:
            prompts = self.build_prompts(sample, speaker_name, formality_context)
            result = self.runtime.generate(
                model=self.model_config.model,
                prompt=prompts["user"],
                system=prompts["system"],
                max_tokens=self.model_config.max_output_tokens,
                temperature=self.model_config.temperature,
                schema=STYLE_SCHEMA
            )
            profile = self.parse_profile(result.text, formality_context)
        except ModelError as e:
            logger.warning("Style extraction for %s failed, using fallback profile: %s", speaker_name, e)
            return StyleProfile.fallback(formality_context)
        except Exception:
            logger.exception("Unexpected error extracting style for %s, using fallback profile", speaker_name)
            return StyleProfile.fallback(formality_context)

        if profile is None:
            logger.warning("Using fallback profile for %s", speaker_name)
            return StyleProfile.fallback(formality_context)
        return profile
