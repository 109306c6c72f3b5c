"""OpenAI content generation for intervention realization."""

import json
import logging
import re
from typing import Optional

from openai import OpenAI, OpenAIError

from learning_brain.config import settings
from learning_brain.models import ParseFailed, Parsed, ParseResult

log = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_INVALID_ESCAPE = re.compile(r'\\(?!["\\/bfnrtu])')


class GenerationError(RuntimeError):
    """Raised when a completion cannot be produced."""


def parse_structured(raw_text: str) -> ParseResult:
    """Parse model output as JSON, tolerating code fences and stray escapes."""
    candidates = [raw_text]
    fence = _CODE_FENCE.search(raw_text)
    if fence:
        candidates.append(fence.group(1))

    for candidate in candidates:
        for text in (candidate, _INVALID_ESCAPE.sub(r"\\\\", candidate)):
            try:
                return Parsed(content=json.loads(text))
            except json.JSONDecodeError:
                continue
    return ParseFailed(raw_text=raw_text)


class LLMService:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[OpenAI] = None,
    ):
        key = api_key or settings.OPENAI_API_KEY
        if client is None and key:
            client = OpenAI(
                api_key=key,
                timeout=timeout or settings.GENERATION_TIMEOUT_SECONDS,
                max_retries=1,
            )
        self.client = client
        self.model = model or settings.OPENAI_MODEL

    def generate_completion(self, prompt: str, temperature: float, max_tokens: int) -> str:
        """Return the raw completion text for a single system prompt."""
        if self.client is None:
            raise GenerationError("OPENAI_API_KEY is not set")
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "system", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as e:
            raise GenerationError(f"Completion failed: {e}") from e

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise GenerationError("Completion returned no content")
        return text
