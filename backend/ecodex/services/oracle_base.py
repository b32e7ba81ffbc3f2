"""
EcoDex Backend - Abstract Species Oracle Interface
====================================================

What:  Abstract base class for the external multimodal model that identifies
       species and powers the companion chat.
Why:   One capability, "send a multimodal conversation, get text back",
       shared by two call sites with different prompts and post-processing:
         - describe_species(): fixed schema prompt, reply parsed as JSON
         - chat(): persona system prompt, reply returned as-is
How:   Concrete providers implement send() and health_check(); the two call
       sites are implemented once here on top of send().
Who:   DiscoveryPipeline.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


SPECIES_PROMPT = """You are an expert biologist and naturalist. Analyze this image and identify the plant or animal species.
Provide a detailed response in the following JSON format:

{
  "name": "Common name of the species",
  "scientificName": "Scientific name (Genus species)",
  "type": "plant" or "animal",
  "description": "Detailed description (2-3 sentences)",
  "habitat": "Natural habitat description",
  "region": "Geographic region where commonly found",
  "stats": {
    "size": "Size range (e.g., '10-15 cm' or '2-3 meters')",
    "weight": "Weight range (if applicable)",
    "lifespan": "Typical lifespan",
    "diet": "Diet type (for animals) or growth requirements (for plants)"
  },
  "abilities": [
    {
      "name": "Special ability or characteristic",
      "description": "Description of the ability"
    }
  ],
  "funFacts": [
    "Interesting fact 1",
    "Interesting fact 2",
    "Interesting fact 3"
  ],
  "conservationStatus": "least_concern|near_threatened|vulnerable|endangered|critically_endangered|extinct",
  "commonality": "very common|common|uncommon|rare|very rare",
  "confidence": "High|Medium|Low"
}

Make the description engaging and Pokemon-style without being too childish. Focus on the species' unique characteristics, behaviors, and ecological importance. If you cannot identify the species with confidence, indicate this in the confidence field and provide your best guess with appropriate caveats."""


COMPANION_PROMPT = """You are Dr. Maya Chen, a friendly and enthusiastic field ecologist with over 15 years of experience studying biodiversity around the world. You're passionate about nature education and love helping people learn about plants, animals, and ecosystems.

Your personality:
- Warm, encouraging, and patient
- Uses emojis occasionally to make conversations engaging
- Explains complex concepts in simple, accessible terms
- Always excited to share interesting facts about nature
- Encourages conservation and environmental awareness
- Sometimes shares personal anecdotes from field research

When users ask questions or share images:
- Provide detailed, educational responses about species, ecosystems, or nature topics
- If they share an image, analyze it and provide insights about what you see
- Always encourage their curiosity and learning
- Suggest related topics they might find interesting
- Keep responses conversational but informative (2-4 paragraphs typically)

Remember: You're not just an AI, you're Dr. Maya Chen, a real person who cares deeply about nature education and conservation."""


DEFAULT_IMAGE_QUESTION = "What can you tell me about this image?"


@dataclass(frozen=True)
class OracleTurn:
    """One user turn: text, an inline image, or both."""

    text: Optional[str] = None
    image: Optional[bytes] = None
    mime_type: str = "image/jpeg"


class SpeciesOracle(ABC):
    """
    Abstract multimodal oracle.

    Contract:
        - send() returns the model's raw reply text (possibly empty)
        - Transport, auth, quota and timeout failures surface as
          OracleUnavailableError (or its CircuitBreakerOpenError subclass)
        - Implementations handle their own retry logic
    """

    #: Generation limits for each call site, overridable per provider
    identify_max_output_tokens: int = 1500
    identify_temperature: float = 0.7
    chat_max_output_tokens: int = 800
    chat_temperature: float = 0.8

    @abstractmethod
    async def send(
        self,
        turns: List[OracleTurn],
        system_prompt: Optional[str] = None,
        max_output_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> str:
        """
        Send a conversation of user turns and return the reply text.

        Raises:
            OracleUnavailableError: The service failed after all retries.
            CircuitBreakerOpenError: Too many recent consecutive failures.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight connectivity test. Returns True if reachable."""
        ...

    async def describe_species(self, image: bytes, mime_type: str = "image/jpeg") -> str:
        """Ask for a structured species description of one image. Returns raw text."""
        return await self.send(
            [OracleTurn(text=SPECIES_PROMPT, image=image, mime_type=mime_type)],
            max_output_tokens=self.identify_max_output_tokens,
            temperature=self.identify_temperature,
        )

    async def chat(
        self,
        message: Optional[str] = None,
        image: Optional[bytes] = None,
        mime_type: str = "image/jpeg",
    ) -> str:
        """One companion-chat turn, text only or image plus text."""
        if image is not None:
            turn = OracleTurn(text=message or DEFAULT_IMAGE_QUESTION, image=image, mime_type=mime_type)
        else:
            turn = OracleTurn(text=message)
        return await self.send(
            [turn],
            system_prompt=COMPANION_PROMPT,
            max_output_tokens=self.chat_max_output_tokens,
            temperature=self.chat_temperature,
        )
