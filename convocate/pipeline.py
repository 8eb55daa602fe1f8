"""
Convocate - Upload Pipeline
Turns a batch of chat exports into persona records.

Stages:
1. Quota gate - refuse early when the client has no persona slots left
2. Validate and parse every file
3. Aggregate by sender, drop thin senders, keep the top two
4. Re-check the quota against the selection
5. Reconstruct the two-party conversation
6. Per participant: reserve a slot, sample, detect formality, extract a style profile
"""

import logging
import uuid
from datetime import timedelta
from typing import Dict, List, Optional, Any, Sequence
from dataclasses import dataclass, field

from .config import AppConfig
from .errors import NoFilesError, TooManyFilesError, QuotaExceededError
from .ingest.parsers import parse_file, validate_upload
from .ingest.aggregator import aggregate, filter_by_minimum, select_top, merge_messages
from .ingest.threads import reconstruct
from .ingest.sampler import sample, trim_to_budget
from .ingest.formality import detect_formality
from .models.message import Message
from .models.runtime import OllamaRuntime
from .personas.extractor import StyleProfileExtractor
from .personas.persona import Persona
from .store.ledger import QuotaLedger

logger = logging.getLogger(__name__)


@dataclass
class UploadedFile:
    """One file from the multipart request."""
    filename: str
    data: bytes


@dataclass
class UploadResult:
    """Everything the client needs to store the new personas."""
    session_id: str
    personas: List[Persona]
    total_personas_created: int
    limit_info: Optional[Dict[str, Any]] = None
    excluded_info: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "personas": [p.to_dict() for p in self.personas],
            "totalPersonasCreated": self.total_personas_created,
            "limitInfo": self.limit_info,
            "excludedInfo": self.excluded_info
        }


@dataclass
class ParticipantPlan:
    """A selected speaker and the messages the pipeline works from."""
    name: str
    messages: List[Message]
    threaded: List[Message] = field(default_factory=list)


class UploadPipeline:
    """
    Thin orchestrator over the ingest stages, the quota ledger and the extractor.

    Holds no per-request state, so one instance serves concurrent uploads.
    """

    def __init__(self, config: AppConfig, runtime: OllamaRuntime, ledger: QuotaLedger,
                 extractor: Optional[StyleProfileExtractor] = None):
        """
        Initialize the pipeline.

        Args:
            config: Application configuration.
            runtime: Model runtime for style extraction.
            ledger: Per-client quota ledger.
            extractor: Optional extractor override (defaults to the configured style model).
        """
        self.config = config
        self.runtime = runtime
        self.ledger = ledger
        self.extractor = extractor or StyleProfileExtractor(runtime, config.models.style)

    # ========================================================================
    # Stages
    # ========================================================================

    def check_quota(self, client_id: str):
        decision = self.ledger.check(client_id)
        if not decision.allowed:
            raise QuotaExceededError(decision.reason)

    def parse_files(self, files: Sequence[UploadedFile]) -> List[List[Message]]:
        """Validate the whole batch first, then parse each file."""
        upload = self.config.upload
        if not files:
            raise NoFilesError()
        if len(files) > upload.max_files:
            raise TooManyFilesError(upload.max_files)

        for f in files:
            validate_upload(f.filename, len(f.data), upload.max_file_bytes, upload.allowed_extensions)

        parsed = []
        for f in files:
            messages = parse_file(f.data, f.filename, upload.max_file_bytes, upload.allowed_extensions)
            logger.info("Parsed %d messages from %s", len(messages), f.filename)
            parsed.append(messages)
        return parsed

    def select_participants(self, parsed: List[List[Message]]):
        """Returns (selected buckets, excluded buckets)."""
        buckets = aggregate(parsed)
        kept, excluded = filter_by_minimum(buckets, self.config.upload.min_messages_per_sender)
        return select_top(kept), excluded

    def plan_participants(self, selected: Dict[str, List[Message]]) -> List[Message]:
        """Rebuild the dialogue between the selected speakers."""
        threading_config = self.config.threading
        stream = merge_messages(list(selected.values()))
        conversation = reconstruct(
            stream,
            window=timedelta(minutes=threading_config.thread_window_minutes),
            burst_window=timedelta(minutes=threading_config.burst_window_minutes)
        )
        logger.info("Reconstructed %d of %d messages into dialogue threads", len(conversation), len(stream))
        return conversation

    def build_persona(self, plan: ParticipantPlan, conversation: List[Message]) -> Persona:
        """Sample one speaker's messages and extract their style profile."""
        sampling = self.config.sampling
        source = plan.threaded or plan.messages
        style_sample = trim_to_budget(
            sample(source, sampling.max_sample_lines),
            sampling.chars_budget,
            sampling.max_sample_lines
        )
        formality = detect_formality(plan.messages)
        logger.info("Extracting style for %s from %d sampled messages (%s)",
                    plan.name, len(style_sample), formality)

        profile = self.extractor.extract(style_sample, plan.name, formality)
        return Persona(
            name=plan.name,
            message_count=len(plan.messages),
            transcript=list(conversation),
            style_profile=profile
        )

    # ========================================================================
    # Run
    # ========================================================================

    def run(self, client_id: str, files: Sequence[UploadedFile]) -> UploadResult:
        """
        Process one upload end to end.

        Raises:
            QuotaExceededError: no persona slot is left for this client.
            InputError: any rejected file or an unusable message set.
            ModelQuotaError: the model endpoint's quota ran out mid-upload.
        """
        self.check_quota(client_id)

        parsed = self.parse_files(files)
        selected, excluded = self.select_participants(parsed)

        # Another upload may have used the last slot while this one parsed
        self.check_quota(client_id)
        logger.info("%d persona slots left for %s, %d participants selected",
                    self.ledger.remaining_personas(client_id), client_id, len(selected))

        conversation = self.plan_participants(selected)
        plans = [
            ParticipantPlan(
                name=name,
                messages=messages,
                threaded=[m for m in conversation if m.sender == name]
            )
            for name, messages in selected.items()
        ]

        personas = []
        for plan in plans:
            reservation = self.ledger.check_and_reserve(client_id)
            if not reservation.allowed:
                logger.info("Skipping %s: persona limit reached for this client", plan.name)
                continue
            personas.append(self.build_persona(plan, conversation))

        record = self.ledger.get_record(client_id)
        return UploadResult(
            session_id=str(uuid.uuid4()),
            personas=personas,
            total_personas_created=record.persona_count,
            limit_info=self.limit_info(len(personas), len(plans)),
            excluded_info=self.excluded_info(excluded)
        )

    # ========================================================================
    # Response metadata
    # ========================================================================

    @staticmethod
    def limit_info(processed: int, total: int) -> Optional[Dict[str, Any]]:
        skipped = total - processed
        if skipped <= 0:
            return None
        return {
            "message": f"Processed {processed} out of {total} participants due to persona limit",
            "skippedCount": skipped,
            "totalParticipants": total
        }

    def excluded_info(self, excluded: Dict[str, List[Message]]) -> Optional[Dict[str, Any]]:
        if not excluded:
            return None
        minimum = self.config.upload.min_messages_per_sender
        return {
            "message": (f"Excluded {len(excluded)} participants with insufficient messages. "
                        f"Each person needs at least {minimum} messages to create a persona."),
            "excludedCount": len(excluded),
            "excludedParticipants": [
                {"sender": sender, "messageCount": len(msgs), "needed": minimum - len(msgs)}
                for sender, msgs in excluded.items()
            ]
        }
