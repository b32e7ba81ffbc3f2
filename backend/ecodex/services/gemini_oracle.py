"""
EcoDex Backend - Google Gemini Species Oracle
===============================================

What:  Concrete SpeciesOracle backed by the Google Gemini multimodal API.
Why:   Gemini accepts inline image bytes next to text, supports a system
       instruction for the companion persona, and gemini-1.5-flash answers
       a species question in a few seconds.
How:   Builds a user-role content list (text + inline JPEG), sends it with
       per-call generation limits, and returns the reply text. Transient
       failures are retried with tenacity; repeated failures open a circuit
       breaker so callers fail fast while the service recovers.
Who:   Singleton `gemini_oracle`, used by DiscoveryPipeline and /health.
When:  After image normalization, before parsing.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter, transient errors only
    2. Circuit breaker shared by identify and chat calls
    3. Per-call timeout passed through request_options
    4. Every failure surfaces as OracleUnavailableError (with Retry-After)
"""

import logging
import time
import uuid
from typing import Dict, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from ecodex.config import settings
from ecodex.exceptions import CircuitBreakerOpenError, OracleUnavailableError
from ecodex.services.oracle_base import OracleTurn, SpeciesOracle

logger = logging.getLogger(__name__)


# Errors that may resolve on their own. Auth and permission errors are not
# retried: the same request would fail the same way.
TRANSIENT_ERRORS = (
    ConnectionError,
    TimeoutError,
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.ResourceExhausted,
    google_exceptions.InternalServerError,
)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker around oracle calls.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow ONE request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Thread Safety:
        Plain counters. State is shared by the coroutines of one uvicorn
        worker; each worker process keeps its own breaker.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        """
        Args:
            failure_threshold: Consecutive failures before opening circuit
            recovery_timeout: Seconds to wait before testing recovery
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through the circuit breaker.

        Raises:
            CircuitBreakerOpenError if circuit is OPEN and recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = max(1, int(self.recovery_timeout - elapsed))
            raise CircuitBreakerOpenError(recovery_time=remaining)

        # HALF_OPEN: allow the test request through
        return True

    def record_success(self) -> None:
        """Record a successful call. Resets the breaker to CLOSED."""
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        """Record a failed call. May trigger CLOSED → OPEN transition."""
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Gemini Oracle
# ══════════════════════════════════════════════════════════════════════════

class GeminiOracleClient(SpeciesOracle):
    """
    Google Gemini implementation of the species oracle.

    Error Handling Chain:
        API call fails with a transient error → tenacity retries with backoff
        → All retries fail → record circuit breaker failure → OracleUnavailableError
        Non-transient API error (auth, permission, bad request)
        → record circuit breaker failure → OracleUnavailableError immediately
        Breaker OPEN → CircuitBreakerOpenError before any network I/O

    Args:
        model_name:     Gemini model id. Defaults to settings.gemini_model.
        retry_attempts: Total attempts per call, including the first.
        retry_min_wait: Initial backoff in seconds.
        retry_max_wait: Backoff cap in seconds (jitter included).
        circuit_breaker: Breaker to share; a new one is built from settings otherwise.
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        retry_attempts: Optional[int] = None,
        retry_min_wait: Optional[float] = None,
        retry_max_wait: Optional[float] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        if settings.gemini_api_key and settings.gemini_api_key != "your_gemini_api_key_here":
            genai.configure(api_key=settings.gemini_api_key)

        self.model_name = model_name or settings.gemini_model
        self.retry_attempts = retry_attempts if retry_attempts is not None else settings.retry_max_attempts
        self.retry_min_wait = retry_min_wait if retry_min_wait is not None else settings.retry_min_wait
        self.retry_max_wait = retry_max_wait if retry_max_wait is not None else settings.retry_max_wait

        self.identify_max_output_tokens = settings.identify_max_output_tokens
        self.identify_temperature = settings.identify_temperature
        self.chat_max_output_tokens = settings.chat_max_output_tokens
        self.chat_temperature = settings.chat_temperature

        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

        # One GenerativeModel per system instruction (None for identify)
        self._models: Dict[Optional[str], "genai.GenerativeModel"] = {}

        logger.info(
            "GeminiOracleClient initialized with model=%s, retries=%d, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            self.model_name,
            self.retry_attempts,
            self.circuit_breaker.failure_threshold,
            self.circuit_breaker.recovery_timeout,
        )

    def _model_for(self, system_prompt: Optional[str]):
        model = self._models.get(system_prompt)
        if model is None:
            if system_prompt:
                model = genai.GenerativeModel(self.model_name, system_instruction=system_prompt)
            else:
                model = genai.GenerativeModel(self.model_name)
            self._models[system_prompt] = model
        return model

    @staticmethod
    def _build_contents(turns: List[OracleTurn]) -> List[dict]:
        """Converts turns to Gemini's content format, image part after the text."""
        contents = []
        for turn in turns:
            parts: list = []
            if turn.text:
                parts.append(turn.text)
            if turn.image is not None:
                parts.append({"mime_type": turn.mime_type, "data": turn.image})
            contents.append({"role": "user", "parts": parts})
        return contents

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            stop=stop_after_attempt(self.retry_attempts),
            # wait = min(max_wait, min_wait * 2^(attempt-1) + jitter)
            wait=wait_exponential_jitter(
                initial=self.retry_min_wait,
                max=self.retry_max_wait,
                jitter=1,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def send(
        self,
        turns: List[OracleTurn],
        system_prompt: Optional[str] = None,
        max_output_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> str:
        """
        Send one multimodal conversation to Gemini and return the reply text.

        Flow:
            1. Check circuit breaker → may raise CircuitBreakerOpenError
            2. Call Gemini with retry on transient errors
            3. Record success/failure in circuit breaker
            4. Return reply text ("" when the reply was blocked or empty)

        Raises:
            CircuitBreakerOpenError: Circuit is open (too many recent failures)
            OracleUnavailableError: Gemini failed after all retry attempts
        """
        request_id = str(uuid.uuid4())[:8]

        self.circuit_breaker.can_execute()

        contents = self._build_contents(turns)
        model = self._model_for(system_prompt)
        generation_config = {
            "max_output_tokens": max_output_tokens,
            "temperature": temperature,
        }

        logger.info(
            "[%s] Oracle call: %d turn(s), images=%d, persona=%s",
            request_id,
            len(turns),
            sum(1 for t in turns if t.image is not None),
            bool(system_prompt),
        )

        try:
            async for attempt in self._retrying():
                with attempt:
                    text = await self._generate(model, contents, generation_config, request_id)
        except TRANSIENT_ERRORS as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] All oracle retries exhausted: %s",
                request_id,
                str(e),
            )
            raise OracleUnavailableError(
                message="Species identification failed after multiple attempts. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"request_id": request_id, "attempts": self.retry_attempts},
            ) from e
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Oracle call failed: %s",
                request_id,
                str(e),
                exc_info=True,
            )
            raise OracleUnavailableError(
                message="The species identification service rejected the request.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"request_id": request_id, "error_type": type(e).__name__},
            ) from e

        self.circuit_breaker.record_success()
        return text

    async def _generate(self, model, contents: List[dict], generation_config: dict, request_id: str) -> str:
        """A single Gemini round trip, timed and logged."""
        start_time = time.time()
        try:
            response = await model.generate_content_async(
                contents,
                generation_config=generation_config,
                request_options={"timeout": settings.oracle_timeout},
            )
        except Exception as e:
            logger.warning(
                "[%s] Gemini API call failed after %.0fms: %s",
                request_id,
                (time.time() - start_time) * 1000,
                str(e),
            )
            raise

        try:
            text = response.text or ""
        except ValueError as e:
            # Raised by the SDK when the candidate has no text part (safety block)
            logger.warning("[%s] Gemini reply carried no text: %s", request_id, str(e))
            text = ""

        logger.info(
            "[%s] Gemini call completed in %.0fms, %d chars",
            request_id,
            (time.time() - start_time) * 1000,
            len(text),
        )
        return text

    async def health_check(self) -> bool:
        """
        Check if Gemini API is reachable.

        Lists available models (no token cost). Returns True if reachable and
        authenticated, False otherwise.
        """
        try:
            model_names = [m.name for m in genai.list_models()]
            target = f"models/{self.model_name}"
            if target not in model_names:
                logger.warning("Configured model %s not found in available models", target)
            return True
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False


# ── Singleton Instance ────────────────────────────────────────────────────
# The circuit breaker state must be shared across all requests.
gemini_oracle = GeminiOracleClient()
