"""
EcoDex Backend - Discovery Pipeline (Orchestrator)
====================================================

What:  Runs one identification request end-to-end, and one companion chat turn.
Why:   Keeps sequencing and input validation out of the HTTP layer.
How:   Composes the normalizer, the oracle, the parser, the rarity rules and
       the ledger. Each step runs once, in order; there is no speculative or
       parallel work inside a run.
Who:   Called by the /api/ecodex route handlers.

Identify Flow (POST /api/ecodex/identify):
    ┌──────────┐   ┌───────────┐   ┌──────────┐   ┌──────────┐   ┌─────────┐   ┌──────────┐
    │ Validate │──▶│ Normalize │──▶│  Oracle  │──▶│  Parse   │──▶│ Rarity  │──▶│  Ledger  │
    └──────────┘   └───────────┘   └──────────┘   └──────────┘   └─────────┘   └──────────┘

    Failure at any step aborts the run with that step's exception; nothing is
    persisted unless the ledger step commits.

Design Decision:
    Collaborators are injected through the constructor so tests can swap the
    oracle for a mock. The module-level `discovery_pipeline` wires the
    production singletons.
"""

import logging
import time
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ecodex.config import settings
from ecodex.exceptions import InputValidationError, MalformedOracleResponseError
from ecodex.schemas.discovery import (
    ChatResponse,
    DiscoveryResponse,
    IdentifyResponse,
    Location,
)
from ecodex.services.discovery_ledger import DiscoveryLedger, discovery_ledger
from ecodex.services.gemini_oracle import gemini_oracle
from ecodex.services.image_normalizer import ImageNormalizer, image_normalizer
from ecodex.services.oracle_base import SpeciesOracle
from ecodex.services.oracle_parser import parse_species_description
from ecodex.services.rarity import classify_rarity

logger = logging.getLogger(__name__)


class DiscoveryPipeline:
    """
    Orchestrates identify and chat requests.

    Args:
        normalizer:    Image resizer / re-encoder
        oracle:        Multimodal species oracle
        ledger:        Discovery and progression store
        max_file_size: Upload size limit in bytes (defaults to settings)
    """

    def __init__(
        self,
        normalizer: ImageNormalizer,
        oracle: SpeciesOracle,
        ledger: DiscoveryLedger,
        max_file_size: Optional[int] = None,
    ):
        self.normalizer = normalizer
        self.oracle = oracle
        self.ledger = ledger
        self.max_file_size = max_file_size or settings.max_file_size

    def _validate_upload(self, content: Optional[bytes], content_type: Optional[str], field: str) -> bytes:
        """Presence, declared MIME type and size. Decoding is the normalizer's job."""
        if not content:
            raise InputValidationError(
                message="No image provided. Please attach a photo of a plant or animal.",
                field=field,
            )
        if content_type and not content_type.lower().startswith("image/"):
            raise InputValidationError(
                message=f"Invalid file type '{content_type}'. Please upload an image file.",
                field=field,
                context={"content_type": content_type},
            )
        if len(content) > self.max_file_size:
            limit_mb = self.max_file_size / (1024 * 1024)
            raise InputValidationError(
                message=f"Image exceeds the {limit_mb:.0f} MB size limit.",
                field=field,
                context={"size_bytes": len(content), "max_bytes": self.max_file_size},
            )
        return content

    async def identify(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        image_bytes: Optional[bytes],
        content_type: Optional[str] = None,
        location: Optional[Location] = None,
    ) -> IdentifyResponse:
        """
        Identify the species in a photo and record it as a discovery.

        Returns:
            IdentifyResponse with the stored entry and the progression outcome.

        Raises:
            InputValidationError: Missing, non-image or oversized upload
            ImageDecodeError: Bytes are not a readable image
            OracleUnavailableError: Oracle unreachable (incl. circuit open)
            MalformedOracleResponseError: Oracle reply unusable
            NotFoundError: Unknown user
            PersistenceError: Storage failed; see its stage/persisted detail
        """
        start_time = time.perf_counter()
        content = self._validate_upload(image_bytes, content_type, field="image")

        image = await self.normalizer.normalize_async(content)

        raw = await self.oracle.describe_species(image.normalized_bytes, mime_type=image.mime_type)
        species = parse_species_description(raw)

        rarity = classify_rarity(species.conservation_status, species.commonality)

        # Confidence is informational: a "Low" answer is still recorded
        result = await self.ledger.record_discovery(
            db,
            user_id=user_id,
            species=species,
            rarity=rarity,
            image=image,
            location=location,
            confidence=species.confidence,
        )

        logger.info(
            "Identify completed for user %s in %.0fms: %s -> %s",
            user_id,
            (time.perf_counter() - start_time) * 1000,
            species.scientific_name,
            rarity,
        )

        return IdentifyResponse(
            entry=DiscoveryResponse.from_model(result.entry),
            xp_gained=result.xp_gained,
            is_first_discovery=result.is_first_discovery,
            confidence=species.confidence,
            new_level=result.new_level,
            total_xp=result.total_xp,
        )

    async def chat(
        self,
        message: Optional[str] = None,
        image_bytes: Optional[bytes] = None,
        content_type: Optional[str] = None,
    ) -> ChatResponse:
        """
        One companion chat turn: text, image, or both.

        Raises:
            InputValidationError: Neither message nor image, or a bad upload
            ImageDecodeError: Image bytes unreadable
            OracleUnavailableError: Oracle unreachable
            MalformedOracleResponseError: Oracle returned an empty reply
        """
        message = message.strip() if message else None
        if not message and not image_bytes:
            raise InputValidationError(
                message="Please provide a message or an image.",
                field="message",
            )

        if image_bytes:
            content = self._validate_upload(image_bytes, content_type, field="image")
            image = await self.normalizer.normalize_async(content)
            reply = await self.oracle.chat(message, image.normalized_bytes, mime_type=image.mime_type)
        else:
            reply = await self.oracle.chat(message)

        reply = reply.strip() if reply else ""
        if not reply:
            raise MalformedOracleResponseError(
                message="The companion returned an empty reply. Please try again.",
                raw_response="",
            )
        return ChatResponse(response=reply)


# ── Singleton Instance ────────────────────────────────────────────────────
discovery_pipeline = DiscoveryPipeline(
    normalizer=image_normalizer,
    oracle=gemini_oracle,
    ledger=discovery_ledger,
)
