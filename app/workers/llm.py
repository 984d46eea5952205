from __future__ import annotations

import asyncio
from typing import Any, Optional

from pydantic_ai import Agent
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.litellm import LiteLLMProvider

from app.config import get_settings
from app.exceptions import AnalysisFailure, ExternalServiceTimeout
from app.infra.logging_config import get_logger

logger = get_logger("llm")


class LLMRunner:
    """Opaque text completion: prompt in, reply text out, bounded by a timeout."""

    def __init__(
        self,
        model_name: str,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout_seconds: float = 60.0,
        system_prompt: Optional[str] = None,
    ) -> None:
        provider = LiteLLMProvider(api_key=api_key, api_base=api_base)
        model = OpenAIChatModel(model_name, provider=provider)
        logger.info(f"Initializing LLM runner with model {model_name}")
        self.model_name = model_name
        self._timeout = timeout_seconds
        self._agent = Agent(model, system_prompt=system_prompt or ())

    async def complete(self, prompt: str, **options: Any) -> str:
        """
        Run the prompt and return the reply text.

        options are passed as model settings (e.g. temperature, max_tokens).

        Raises:
            ExternalServiceTimeout: no reply within the timeout.
            AnalysisFailure: the provider call failed.
        """
        try:
            result = await asyncio.wait_for(
                self._agent.run(prompt, model_settings=options or None),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExternalServiceTimeout(
                f"LLM call exceeded {self._timeout}s"
            ) from e
        except Exception as e:
            raise AnalysisFailure(f"LLM call failed: {e}") from e
        return str(result.output)


def build_llm_runner_from_env() -> LLMRunner:
    settings = get_settings()
    logger.info(
        "LLM runner config: model=%s, api_key=%s, api_base=%s",
        settings.llm_model,
        "set" if settings.litellm_api_key else "not set",
        settings.litellm_api_base or "(default)",
    )
    if not settings.litellm_api_key:
        logger.warning(
            "LITELLM_API_KEY is not set; sentiment and insight calls will fail until it is."
        )
    return LLMRunner(
        model_name=settings.llm_model,
        api_key=settings.litellm_api_key,
        api_base=settings.litellm_api_base,
        timeout_seconds=settings.llm_timeout_seconds,
    )
