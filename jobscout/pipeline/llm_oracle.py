from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import httpx
import openai
from loguru import logger
from openai import AsyncOpenAI

from jobscout.config.settings import Settings

from .errors import RateLimited, SetupError, TransportError, UpstreamError, parse_retry_after

SYSTEM_INSTRUCTION = (
    "You are an expert career advisor and resume evaluator. "
    "You return strict but accurate feedback with practical suggestions."
)

EVALUATION_PROMPT = """I will provide:
1. My resume.
2. A job listing.

Your task is to evaluate my exact fit for the job based strictly on the information provided.

Requirements:
- Be extremely detailed and realistic in your scoring.
- Do NOT inflate the score.
- Use the full range from 0 to 100.
- Deduct points for each missing qualification or mismatch.
- Provide actionable, specific suggestions, not generic tips.
- Return the result content in an HTML format (eg. <a> for links)

Format your response EXACTLY as follows:
---
Job Title: <title>

Company: <company>

Job Application Link:
<url>

Fit Score: <score>/100

Explanation:
<why this score was given, be specific and refer to the resume and job listing directly>

Suggested Resume Changes:
- <specific change 1>
- <specific change 2>

Missing Qualifications:
- <missing 1>
- <missing 2>
---

Here is my resume:
===
{profile}
===

Here is the job listing:
===
{listing}
===
"""

OLLAMA_THROTTLE_STATUSES = frozenset({429, 503})


def build_evaluation_prompt(profile_text: str, listing_text: str) -> str:
    return EVALUATION_PROMPT.format(profile=profile_text.strip(), listing=listing_text.strip())


@dataclass(frozen=True)
class OracleRequest:
    model: str
    messages: List[Dict[str, str]]
    temperature: float = 0.3
    stream: bool = False

    @classmethod
    def for_evaluation(cls, *, model: str, temperature: float, prompt: str) -> "OracleRequest":
        return cls(
            model=model,
            temperature=temperature,
            messages=[
                {"role": "system", "content": SYSTEM_INSTRUCTION},
                {"role": "user", "content": prompt},
            ],
        )


@dataclass(frozen=True)
class OracleResponse:
    text: str
    model: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class EvaluationOracle(Protocol):
    async def complete(self, request: OracleRequest) -> OracleResponse: ...


class OllamaOracle:
    """Local Ollama chat endpoint; the whole completion arrives in one response."""

    def __init__(
        self,
        url: str = "http://localhost:11434/api/chat",
        *,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def complete(self, request: OracleRequest) -> OracleResponse:
        body = {
            "model": request.model,
            "messages": request.messages,
            "stream": False,
            "options": {"temperature": request.temperature},
        }
        start = time.perf_counter()
        try:
            resp = await self._client.post(self.url, json=body)
        except httpx.RequestError as exc:
            raise TransportError(f"ollama request failed: {exc}") from exc

        status = resp.status_code
        logger.debug(
            "ollama status={} bytes={} elapsed={:.1f}s",
            status,
            len(resp.content),
            time.perf_counter() - start,
        )
        if status in OLLAMA_THROTTLE_STATUSES:
            raise RateLimited(
                f"ollama busy (HTTP {status})",
                retry_after=parse_retry_after(resp.headers.get("Retry-After")),
                status=status,
            )
        if status != 200:
            raise UpstreamError(f"unexpected status {status}: {resp.text[:300]}", status=status)

        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamError(f"ollama response is not JSON: {exc}", status=status) from exc

        if not isinstance(data, dict):
            raise UpstreamError(f"ollama response is not an object: {type(data).__name__}", status=status)
        message = data.get("message") or {}
        if not isinstance(message, dict):
            raise UpstreamError("ollama response has no message object", status=status)
        metadata = {
            k: data.get(k)
            for k in (
                "created_at",
                "done",
                "total_duration",
                "load_duration",
                "prompt_eval_count",
                "prompt_eval_duration",
                "eval_count",
                "eval_duration",
            )
            if k in data
        }
        return OracleResponse(text=message.get("content") or "", model=data.get("model"), metadata=metadata)


class OpenAIOracle:
    """Hosted chat-completions backend through the official SDK."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, *, api_key: Optional[str] = None) -> None:
        self._client = client
        self._api_key = api_key

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            try:
                self._client = AsyncOpenAI(api_key=self._api_key)
            except openai.OpenAIError as exc:
                raise SetupError(f"openai client unavailable: {exc}") from exc
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and hasattr(self._client, "close"):
            await self._client.close()

    async def complete(self, request: OracleRequest) -> OracleResponse:
        client = self._get_client()
        try:
            resp = await client.chat.completions.create(
                model=request.model,
                temperature=request.temperature,
                messages=request.messages,
                stream=False,
            )
        except openai.RateLimitError as exc:
            raise RateLimited(f"openai rate limit: {exc}", status=429) from exc
        except (openai.APITimeoutError, openai.APIConnectionError) as exc:
            raise TransportError(f"openai connection failed: {exc}") from exc
        except openai.APIStatusError as exc:
            raise UpstreamError(f"openai HTTP {exc.status_code}: {exc}", status=exc.status_code) from exc
        except openai.OpenAIError as exc:
            raise UpstreamError(f"openai call failed: {exc}") from exc

        content = resp.choices[0].message.content or ""
        usage = getattr(resp, "usage", None)
        metadata: Dict[str, Any] = {}
        if usage is not None:
            metadata = {
                "prompt_tokens": getattr(usage, "prompt_tokens", None),
                "completion_tokens": getattr(usage, "completion_tokens", None),
            }
        return OracleResponse(text=content, model=getattr(resp, "model", request.model), metadata=metadata)


def build_oracle(cfg: Settings) -> EvaluationOracle:
    if cfg.llm_provider == "openai":
        logger.info("evaluation oracle: openai model={}", cfg.llm_model)
        return OpenAIOracle(api_key=cfg.openai_api_key)
    if cfg.llm_provider == "ollama":
        logger.info("evaluation oracle: ollama at {} model={}", cfg.ollama_url, cfg.llm_model)
        return OllamaOracle(cfg.ollama_url, timeout=cfg.llm_timeout_sec)
    raise ValueError(f"Unsupported llm provider '{cfg.llm_provider}'")
