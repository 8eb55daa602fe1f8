"""
Convocate - Twin Agent
Replies in the voice of a persona, conditioned on its style profile and the chat so far.
"""

import re
from typing import Dict, List
from dataclasses import dataclass

from ..config import ModelConfig
from ..models.message import Message
from ..models.profile import StyleProfile
from ..models.runtime import OllamaRuntime, ModelError

DEFAULT_TRANSCRIPT_CONTEXT = 15

EXCITED_MARKS = re.compile("[!\U0001F602\U0001F62D\U0001F480]")
EXCITED_WORDS = re.compile(r'\b(excited|amazing|awesome|love)\b', re.IGNORECASE)
STRESSED_WORDS = re.compile(r'\b(tired|stressed|busy|ugh)\b', re.IGNORECASE)
BORED_WORDS = re.compile(r'\b(bored|nothing|idk)\b', re.IGNORECASE)

TOPIC_HINTS = (
    (re.compile(r'(work|job|boss)'), " Relate to work stuff."),
    (re.compile(r'(weekend|plans|tonight)'), " Talk about plans."),
    (re.compile(r'(family|mom|dad)'), " Be understanding about family."),
)


def deduplicate(messages: List[Message]) -> List[Message]:
    """Drop repeated (sender, text) pairs, keeping the first occurrence."""
    seen = set()
    unique = []
    for message in messages:
        key = (message.sender, message.text)
        if key in seen:
            continue
        seen.add(key)
        unique.append(message)
    return unique


def to_role(sender: str, persona_name: str) -> str:
    return "assistant" if sender == persona_name else "user"


@dataclass
class TwinReply:
    """A generated reply and how much context went into it."""
    text: str
    context_messages: int
    duration_ms: float = 0.0


class TwinAgent:
    """
    Impersonates a persona for one chat turn.

    The model sees a system prompt built from the style profile, the tail of
    the persona's transcript, the practice chat so far and the new message.
    """

    SYSTEM_PROMPT = """You are {name}. Embody their authentic communication personality:

COMMUNICATION CONTEXT:
{formality_instructions}

STYLE PROFILE:
- Tone: {tone}
- Formality preference: {formality}
- Typical vocab: {vocabulary}
- Signature quirks: {quirks}

BEHAVIORAL PROFILE:
{behavioral}

RESPONSE GUIDELINES:
- Match their typical message length and rhythm
- {punctuation}
- {capitalization}
- {closing}
- Stay in character at all times. Never mention being an AI, a model or a simulation.
- Do not introduce facts about {name}'s life that are not supported by the conversation.

{examples}CRITICAL: Don't just copy their style. BE them. Think like they think, react like they react.{enhancement}"""

    FORMALITY_INSTRUCTIONS = {
        "formal": "This person communicates formally (emails, professional messages). Use proper structure, professional courtesy, and appropriate business etiquette. Responses should be well-structured and complete.",
        "mixed": "This person switches between formal and casual styles depending on context. Match the user's current formality level: be professional when they're professional, casual when they're casual.",
        "casual": "This person communicates casually (texts, chats). Use natural, conversational language and keep responses authentic to casual communication.",
    }

    def __init__(self, runtime: OllamaRuntime, model_config: ModelConfig,
                 transcript_context: int = DEFAULT_TRANSCRIPT_CONTEXT):
        """
        Initialize the twin agent.

        Args:
            runtime: Model runtime used for the reply call.
            model_config: Model name and generation knobs for replies.
            transcript_context: How many trailing transcript messages to include.
        """
        self.runtime = runtime
        self.model_config = model_config
        self.transcript_context = transcript_context

    # ========================================================================
    # Prompt building
    # ========================================================================

    @staticmethod
    def behavioral_profile(profile: StyleProfile) -> str:
        """Translate trait scores and message-length habits into plain instructions."""
        traits = profile.traits
        parts = []
        if traits.openness > 7:
            parts.append("Share personal thoughts openly.")
        if traits.expressiveness > 7:
            parts.append("Use expressive language and reactions.")
        if traits.humor > 6:
            parts.append("Make jokes or witty comments when natural.")
        if traits.enthusiasm < 4:
            parts.append("Stay measured and understated.")
        if traits.directness > 7:
            parts.append("Be direct and to-the-point.")
        if traits.directness < 4:
            parts.append("Be diplomatic and indirect.")

        length = profile.communication_patterns.message_length
        if length == "short":
            parts.append("Keep responses brief and punchy.")
        elif length == "long":
            parts.append("Give detailed, thoughtful responses.")

        return " ".join(parts)

    @staticmethod
    def contextual_enhancement(context: List[Dict[str, str]], user_message: str) -> str:
        """Short nudges derived from the latest user message and recent rhythm."""
        recent = context[-6:]
        persona_turns = [m for m in recent if m["role"] == "assistant"]
        user_turns = [m["content"] for m in recent if m["role"] == "user"] + [user_message]
        last = user_message
        hints = ""

        if EXCITED_MARKS.search(last):
            hints += " Match their energy."
        if len(last) < 20:
            hints += " Keep it brief."
        if len(last) > 100:
            hints += " Give a thoughtful response."
        if EXCITED_WORDS.search(last):
            hints += " Share their excitement."
        if STRESSED_WORDS.search(last):
            hints += " Be supportive."
        if BORED_WORDS.search(last):
            hints += " Suggest something or relate."

        if any("?" in turn for turn in user_turns):
            hints += " Answer directly."
        last_two = persona_turns[-2:]
        if len(last_two) > 1 and any(len(m["content"]) > 80 for m in last_two):
            hints += " Vary response length."

        if len(recent) < 3:
            hints += " Build connection."
        elif len(recent) > 8:
            hints += " Continue the natural flow."

        lowered = last.lower()
        for pattern, hint in TOPIC_HINTS:
            if pattern.search(lowered):
                hints += hint

        return hints

    def build_context(self, persona_name: str, transcript: List[Message],
                      chat_history: List[Message]) -> List[Dict[str, str]]:
        """
        Role-mapped prior turns: the last transcript messages then the whole
        practice history, each deduplicated, with repeats across the two dropped.
        """
        tail = deduplicate(transcript)[-self.transcript_context:] if self.transcript_context > 0 else []
        history = deduplicate(chat_history)

        seen = set()
        context = []
        for message in tail + history:
            entry = {"role": to_role(message.sender, persona_name), "content": message.text}
            key = (entry["role"], entry["content"])
            if key in seen:
                continue
            seen.add(key)
            context.append(entry)
        return context

    def build_system_prompt(self, persona_name: str, profile: StyleProfile,
                            context: List[Dict[str, str]], user_message: str) -> str:
        patterns = profile.communication_patterns
        examples = profile.examples[:2]
        example_block = ""
        if examples:
            example_block = "AUTHENTIC EXAMPLES:\n" + "\n".join(f'"{ex}"' for ex in examples) + "\n\n"

        return self.SYSTEM_PROMPT.format(
            name=persona_name,
            formality_instructions=self.FORMALITY_INSTRUCTIONS.get(
                profile.formality_context, self.FORMALITY_INSTRUCTIONS["casual"]),
            tone=profile.tone,
            formality=profile.formality,
            vocabulary=", ".join(profile.vocabulary[:5]) or "natural",
            quirks=", ".join(profile.quirks[:3]) or "none",
            behavioral=self.behavioral_profile(profile) or "Respond the way they usually do.",
            punctuation="Use emojis naturally" if patterns.punctuation_style == "emojis" else "Use punctuation like they do",
            capitalization="Use casual capitalization" if patterns.capitalization == "casual" else "Follow their caps style",
            closing=("Include appropriate greetings/closings when natural"
                     if profile.formality_context == "formal" else "Keep responses conversational"),
            examples=example_block,
            enhancement=self.contextual_enhancement(context, user_message)
        )

    # ========================================================================
    # Reply
    # ========================================================================

    def reply(
        self,
        persona_name: str,
        profile: StyleProfile,
        transcript: List[Message],
        chat_history: List[Message],
        user_message: str
    ) -> TwinReply:
        """
        Generate the persona's next message.

        Raises:
            ModelError (or a subclass) when the call fails or returns nothing.
        """
        context = self.build_context(persona_name, transcript, chat_history)
        messages = [{"role": "system", "content": self.build_system_prompt(persona_name, profile, context, user_message)}]
        messages.extend(context)
        messages.append({"role": "user", "content": user_message})

        result = self.runtime.chat(
            model=self.model_config.model,
            messages=messages,
            max_tokens=self.model_config.max_output_tokens,
            temperature=self.model_config.temperature
        )

        text = result.text.strip()
        if not text:
            raise ModelError("Model returned an empty reply")
        return TwinReply(text=text, context_messages=len(context), duration_ms=result.duration_ms)
