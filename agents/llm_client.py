# agents/llm_client.py
import logging
import os
import google.generativeai as genai
from dotenv import load_dotenv
from typing import Optional

load_dotenv()

logger = logging.getLogger(__name__)

_configured = False


def _configure(api_key: Optional[str]):
    global _configured
    if _configured:
        return
    api_key = api_key or os.getenv("GEMINI_API_KEY")
    if not api_key:
        raise ValueError("GEMINI_API_KEY is missing in .env file")
    genai.configure(api_key=api_key)
    _configured = True


class GeminiBot:
    """
    Model-call wrapper. `chat()` returns the stripped response text, or ""
    when the model produced nothing; transport and API errors propagate.
    """

    def __init__(
        self,
        model: str,
        max_tokens: int = 4000,
        system_message: str = "",
        temperature: float = 0.0,
        api_key: Optional[str] = None,
    ):
        _configure(api_key)
        self.model_name = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.model = genai.GenerativeModel(model, system_instruction=system_message or None)

    async def chat(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        if not prompt:
            return ""
        response = await self.model.generate_content_async(
            prompt,
            generation_config=genai.types.GenerationConfig(
                max_output_tokens=max_tokens or self.max_tokens,
                temperature=self.temperature,
            ),
        )
        if not response.candidates or not response.parts:
            logger.warning("%s returned no content", self.model_name)
            return ""
        return response.text.strip()
