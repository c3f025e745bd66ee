"""
collaborator.py - AI provider boundary for the Dot feedback service.

Components:
  AICollaborator       - the three capabilities the core depends on
  MistralCollaborator  - implementation on the mistralai async SDK

Capabilities:
  generate_text()     - free text from a system prompt + message list
  parse_structured()  - JSON-mode completion validated against a Pydantic schema
                        (the decision classifier and the idea graph both use it)
  transcribe()        - speech-to-text for recorded answers

Every call runs under a shared asyncio.Semaphore and a timeout. Any provider
failure, timeout, empty completion, or schema mismatch raises
AICollaboratorError; callers decide whether a fallback exists.

No module-level asyncio.Semaphore - it is created in main.py lifespan and
passed in (avoids RuntimeError: no running event loop at import).
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, List, Type, TypeVar

from mistralai import Mistral
from pydantic import BaseModel, ValidationError

from dotfeedback.exceptions import AICollaboratorError

logger = logging.getLogger(__name__)

T = TypeVar("T")
SchemaT = TypeVar("SchemaT", bound=BaseModel)

Message = Dict[str, str]

STRUCTURED_TEMPERATURE = 0.2
TEXT_TEMPERATURE = 0.7
STRUCTURED_MAX_TOKENS = 4096


class AICollaborator(ABC):
    @abstractmethod
    async def generate_text(
        self, system_prompt: str, messages: List[Message], max_tokens: int
    ) -> str:
        ...

    @abstractmethod
    async def parse_structured(
        self, system_prompt: str, messages: List[Message], schema: Type[SchemaT]
    ) -> SchemaT:
        ...

    @abstractmethod
    async def transcribe(self, audio: bytes, filename: str) -> str:
        ...


def schema_instructions(schema: Type[BaseModel]) -> str:
    """Append-to-system-prompt block describing the required JSON output."""
    return (
        "Respond ONLY with a single JSON object that validates against this JSON Schema. "
        "Do not wrap it in markdown.\n"
        f"{json.dumps(schema.model_json_schema(by_alias=True))}"
    )


class MistralCollaborator(AICollaborator):
    def __init__(
        self,
        client: Mistral,
        semaphore: asyncio.Semaphore,
        *,
        model: str,
        transcription_model: str,
        timeout: float,
    ) -> None:
        self.client = client
        self.semaphore = semaphore
        self.model = model
        self.transcription_model = transcription_model
        self.timeout = timeout

    async def _call(self, operation: str, factory: Callable[[], Awaitable[T]]) -> T:
        async with self.semaphore:
            try:
                return await asyncio.wait_for(factory(), timeout=self.timeout)
            except asyncio.TimeoutError as exc:
                logger.error("Mistral %s timed out after %.1fs", operation, self.timeout)
                raise AICollaboratorError(f"AI provider timed out during {operation}") from exc
            except Exception as exc:
                logger.error("Mistral %s failed: %s", operation, type(exc).__name__, exc_info=True)
                raise AICollaboratorError(
                    f"AI provider failed during {operation}",
                    details=[{"issue": f"{type(exc).__name__}: {exc}"}],
                ) from exc

    @staticmethod
    def _content(response) -> str:
        content = response.choices[0].message.content if response.choices else None
        if not isinstance(content, str) or not content.strip():
            raise AICollaboratorError("AI provider returned an empty completion")
        return content.strip()

    async def generate_text(
        self, system_prompt: str, messages: List[Message], max_tokens: int
    ) -> str:
        logger.info("Calling Mistral text model=%s messages=%d", self.model, len(messages))
        response = await self._call(
            "text generation",
            lambda: self.client.chat.complete_async(
                model=self.model,
                messages=[{"role": "system", "content": system_prompt}, *messages],
                temperature=TEXT_TEMPERATURE,
                max_tokens=max_tokens,
            ),
        )
        return self._content(response)

    async def parse_structured(
        self, system_prompt: str, messages: List[Message], schema: Type[SchemaT]
    ) -> SchemaT:
        logger.info(
            "Calling Mistral structured model=%s schema=%s messages=%d",
            self.model, schema.__name__, len(messages),
        )
        response = await self._call(
            f"{schema.__name__} extraction",
            lambda: self.client.chat.complete_async(
                model=self.model,
                messages=[
                    {"role": "system", "content": f"{system_prompt}\n\n{schema_instructions(schema)}"},
                    *messages,
                ],
                temperature=STRUCTURED_TEMPERATURE,
                max_tokens=STRUCTURED_MAX_TOKENS,
                response_format={"type": "json_object"},
            ),
        )
        content = self._content(response)
        try:
            return schema.model_validate_json(content)
        except ValidationError as exc:
            logger.warning("Mistral output failed %s validation errors=%d", schema.__name__, exc.error_count())
            raise AICollaboratorError(
                f"AI provider returned output that does not match {schema.__name__}",
                details=[
                    {"field": ".".join(str(p) for p in err["loc"]) or None, "issue": err["msg"]}
                    for err in exc.errors()
                ],
            ) from exc

    async def transcribe(self, audio: bytes, filename: str) -> str:
        logger.info("Calling Mistral transcription model=%s bytes=%d", self.transcription_model, len(audio))
        response = await self._call(
            "transcription",
            lambda: self.client.audio.transcriptions.complete_async(
                model=self.transcription_model,
                file={"content": audio, "file_name": filename},
            ),
        )
        text = (getattr(response, "text", None) or "").strip()
        if not text:
            raise AICollaboratorError("Transcription returned no text")
        return text
