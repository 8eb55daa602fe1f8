"""
Convocate - Style Profile Models
Canonical nested record describing a persona's voice.

Every nested type has a from_partial() constructor that merges whatever the
model returned over that type's defaults, so a profile is always complete.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


FORMALITY_LEVELS = ("formal", "casual", "mixed")
MESSAGE_LENGTHS = ("short", "medium", "long")
PUNCTUATION_STYLES = ("standard", "emojis", "abbreviations", "formal", "casual")
CAPITALIZATION_STYLES = ("proper", "all caps", "mixed", "formal", "casual")

TRAIT_MIN = 1
TRAIT_MAX = 10
TRAIT_DEFAULT = 5

FALLBACK_TONE = "Neutral and professional"


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _str_or(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return default


def _str_list(value: Any, default: Optional[List[str]] = None) -> List[str]:
    if not isinstance(value, list):
        return list(default or [])
    return [str(item) for item in value if isinstance(item, (str, int, float)) and str(item).strip()]


def _choice(value: Any, allowed: tuple, default: str) -> str:
    if isinstance(value, str) and value.lower() in allowed:
        return value.lower()
    return default


def _trait(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return TRAIT_DEFAULT
    return max(TRAIT_MIN, min(TRAIT_MAX, value))


@dataclass
class Traits:
    """Personality dials, 1-10."""
    openness: float = TRAIT_DEFAULT
    expressiveness: float = TRAIT_DEFAULT
    humor: float = TRAIT_DEFAULT
    empathy: float = TRAIT_DEFAULT
    directness: float = TRAIT_DEFAULT
    enthusiasm: float = TRAIT_DEFAULT

    @classmethod
    def from_partial(cls, data: Any) -> "Traits":
        data = _as_dict(data)
        return cls(**{name: _trait(data.get(name)) for name in cls.__dataclass_fields__})


@dataclass
class EmotionTriggers:
    positive: List[str] = field(default_factory=list)
    negative: List[str] = field(default_factory=list)

    @classmethod
    def from_partial(cls, data: Any) -> "EmotionTriggers":
        data = _as_dict(data)
        return cls(positive=_str_list(data.get("positive")), negative=_str_list(data.get("negative")))


@dataclass
class MoodPatterns:
    typical_mood: str = "neutral"
    mood_indicators: List[str] = field(default_factory=list)
    stress_indicators: List[str] = field(default_factory=list)

    @classmethod
    def from_partial(cls, data: Any) -> "MoodPatterns":
        data = _as_dict(data)
        return cls(
            typical_mood=_str_or(data.get("typical_mood"), "neutral"),
            mood_indicators=_str_list(data.get("mood_indicators")),
            stress_indicators=_str_list(data.get("stress_indicators"))
        )


@dataclass
class Emotions:
    primary: str = "neutral"
    secondary: List[str] = field(default_factory=list)
    triggers: EmotionTriggers = field(default_factory=EmotionTriggers)
    mood_patterns: MoodPatterns = field(default_factory=MoodPatterns)

    @classmethod
    def from_partial(cls, data: Any) -> "Emotions":
        data = _as_dict(data)
        return cls(
            primary=_str_or(data.get("primary"), "neutral"),
            secondary=_str_list(data.get("secondary")),
            triggers=EmotionTriggers.from_partial(data.get("triggers")),
            mood_patterns=MoodPatterns.from_partial(data.get("mood_patterns"))
        )


@dataclass
class RelationshipDynamics:
    power_position: str = "equal"
    trust_indicators: List[str] = field(default_factory=list)
    boundary_style: str = "mixed"

    @classmethod
    def from_partial(cls, data: Any) -> "RelationshipDynamics":
        data = _as_dict(data)
        return cls(
            power_position=_str_or(data.get("power_position"), "equal"),
            trust_indicators=_str_list(data.get("trust_indicators")),
            boundary_style=_str_or(data.get("boundary_style"), "mixed")
        )


@dataclass
class ContextPreferences:
    formal_contexts: List[str] = field(default_factory=list)
    casual_contexts: List[str] = field(default_factory=list)
    work_contexts: List[str] = field(default_factory=list)

    @classmethod
    def from_partial(cls, data: Any) -> "ContextPreferences":
        data = _as_dict(data)
        return cls(
            formal_contexts=_str_list(data.get("formal_contexts")),
            casual_contexts=_str_list(data.get("casual_contexts")),
            work_contexts=_str_list(data.get("work_contexts"))
        )


@dataclass
class Preferences:
    topics: List[str] = field(default_factory=list)
    avoids: List[str] = field(default_factory=list)
    engagement: List[str] = field(default_factory=list)
    relationship_dynamics: RelationshipDynamics = field(default_factory=RelationshipDynamics)
    context_preferences: ContextPreferences = field(default_factory=ContextPreferences)

    @classmethod
    def from_partial(cls, data: Any) -> "Preferences":
        data = _as_dict(data)
        return cls(
            topics=_str_list(data.get("topics")),
            avoids=_str_list(data.get("avoids")),
            engagement=_str_list(data.get("engagement")),
            relationship_dynamics=RelationshipDynamics.from_partial(data.get("relationship_dynamics")),
            context_preferences=ContextPreferences.from_partial(data.get("context_preferences"))
        )


@dataclass
class CommunicationPatterns:
    message_length: str = "medium"
    punctuation_style: str = "standard"
    capitalization: str = "proper"
    abbreviations: List[str] = field(default_factory=list)
    unique_expressions: List[str] = field(default_factory=list)

    @classmethod
    def from_partial(cls, data: Any) -> "CommunicationPatterns":
        data = _as_dict(data)
        return cls(
            message_length=_choice(data.get("message_length"), MESSAGE_LENGTHS, "medium"),
            punctuation_style=_choice(data.get("punctuation_style"), PUNCTUATION_STYLES, "standard"),
            capitalization=_choice(data.get("capitalization"), CAPITALIZATION_STYLES, "proper"),
            abbreviations=_str_list(data.get("abbreviations")),
            unique_expressions=_str_list(data.get("unique_expressions"))
        )


@dataclass
class StyleProfile:
    """A persona's complete, schema-complete voice description."""
    tone: str
    formality: str
    pacing: str = "Varies with context"
    vocabulary: List[str] = field(default_factory=list)
    quirks: List[str] = field(default_factory=list)
    examples: List[str] = field(default_factory=list)
    formality_context: str = "casual"
    traits: Traits = field(default_factory=Traits)
    emotions: Emotions = field(default_factory=Emotions)
    preferences: Preferences = field(default_factory=Preferences)
    communication_patterns: CommunicationPatterns = field(default_factory=CommunicationPatterns)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_partial(cls, data: Any, formality_context: Optional[str] = None) -> "StyleProfile":
        """
        Merge a (possibly partial) payload over the defaults.

        Top-level scalars fall back to the fallback profile's values; callers
        that need strict validation run it before calling this.
        """
        data = _as_dict(data)
        context = formality_context or _choice(data.get("formality_context"), FORMALITY_LEVELS, "casual")
        return cls(
            tone=_str_or(data.get("tone"), FALLBACK_TONE),
            formality=_choice(data.get("formality"), FORMALITY_LEVELS, "casual"),
            pacing=_str_or(data.get("pacing"), "Varies with context"),
            vocabulary=_str_list(data.get("vocabulary")),
            quirks=_str_list(data.get("quirks")),
            examples=_str_list(data.get("examples")),
            formality_context=_choice(context, FORMALITY_LEVELS, "casual"),
            traits=Traits.from_partial(data.get("traits")),
            emotions=Emotions.from_partial(data.get("emotions")),
            preferences=Preferences.from_partial(data.get("preferences")),
            communication_patterns=CommunicationPatterns.from_partial(data.get("communication_patterns"))
        )

    @classmethod
    def fallback(cls, formality_context: str = "casual") -> "StyleProfile":
        """The single fixed profile used whenever extraction cannot be trusted."""
        return cls(
            tone=FALLBACK_TONE,
            formality="casual",
            pacing="Varies with context",
            formality_context=_choice(formality_context, FORMALITY_LEVELS, "casual"),
            emotions=Emotions(
                primary="neutral",
                secondary=["calm"],
                triggers=EmotionTriggers(positive=["friendly interaction"], negative=["disrespect"])
            ),
            preferences=Preferences(
                topics=["general conversation"],
                avoids=["controversial topics"],
                engagement=["responds thoughtfully"]
            )
        )


def validate_profile_payload(data: Any) -> List[str]:
    """
    Check the required top-level fields of a raw model payload.

    Returns a list of problems; an empty list means the payload is usable.
    Missing list fields are allowed (they default to empty), present ones
    must be lists.
    """
    if not isinstance(data, dict):
        return ["payload is not an object"]

    problems = []
    tone = data.get("tone")
    if not isinstance(tone, str) or not tone.strip():
        problems.append("tone must be a non-empty string")
    if data.get("formality") not in FORMALITY_LEVELS:
        problems.append(f"formality must be one of {', '.join(FORMALITY_LEVELS)}")
    for name in ("vocabulary", "quirks", "examples"):
        if name in data and not isinstance(data[name], list):
            problems.append(f"{name} must be an array")
    return problems
