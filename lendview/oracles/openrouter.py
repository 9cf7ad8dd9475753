"""OpenRouter chat-completions client returning parsed JSON answers."""
import json
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ..config import MarketConfig

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert DeFi analyst specializing in yield optimization and risk "
    "assessment for cryptocurrency lending protocols. Answer with a single JSON "
    "document and nothing else."
)


def extract_json(content: str) -> Any:
    """Parse a model answer, tolerating a fenced ```json block around it."""
    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        raise ValueError("No JSON object in model answer")
    return json.loads(text[start : end + 1])


class OpenRouterClient:
    """Ask a hosted model for a JSON analysis."""

    def __init__(self, config: MarketConfig) -> None:
        self.url = config.openrouter_url
        self.api_key = config.openrouter_api_key
        self.model = config.model
        self.timeout = config.timeout

    async def complete_json(self, prompt: str) -> Any:
        """Model answer as parsed JSON, or None when unavailable or malformed."""
        if not self.api_key:
            logger.debug("OpenRouter API key not configured")
            return None

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": 2000,
            "temperature": 0.7,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.post(
                    self.url,
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status != 200:
                        logger.warning("OpenRouter returned HTTP %s", response.status)
                        return None
                    data = await response.json()
        except Exception as e:
            logger.warning("OpenRouter request failed: %s", e)
            return None

        try:
            content = data["choices"][0]["message"]["content"]
            return extract_json(content)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning("Malformed OpenRouter answer: %s", e)
            return None
