# External Service Gateway - Gemini generateContent over a persistent httpx client
# Two operations: structured recommendations and free-form counselor chat.
# Every failure reaches callers as one opaque GatewayError with a user-facing message.

import json
import logging
import time
from abc import ABC, abstractmethod
from contextlib import suppress
from typing import Any, Dict, List, Optional

import httpx
from prometheus_client import Counter, Histogram

from ..config import GatewaySettings
from ..models import RecommendationList, RecommendationRequest, SchoolRecommendation
from ..utils.schema_enforcer import enforce_recommendations, to_provider_schema
from .prompts import COUNSELOR_SYSTEM_INSTRUCTION, build_recommendation_prompt

logger = logging.getLogger(__name__)

RECOMMENDATION_FAILURE_MESSAGE = (
    "Failed to get recommendations. The AI model may be temporarily unavailable. "
    "Please try again later."
)
CHAT_FAILURE_MESSAGE = "Sorry, I'm having trouble connecting right now. Please try again later."

try:
    gateway_request_seconds = Histogram(
        "gateway_request_seconds", "Provider call latency", ["operation"],
        buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    )
    gateway_failures_total = Counter("gateway_failures_total", "Failed provider calls", ["operation", "stage"])
except ValueError:
    # metrics already registered
    from prometheus_client import REGISTRY
    gateway_request_seconds = REGISTRY._names_to_collectors["gateway_request_seconds"]
    gateway_failures_total = REGISTRY._names_to_collectors["gateway_failures_total"]


class GatewayError(Exception):
    """Opaque gateway failure. `message` is safe to show to the student."""
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ProviderResponseError(Exception):
    """The provider answered but not with usable content"""
    def __init__(self, stage: str, detail: str):
        super().__init__(f"{stage}: {detail}")
        self.stage = stage
        self.detail = detail


class RecommendationGateway(ABC):
    """Contract the orchestrators depend on"""

    @abstractmethod
    async def get_recommendations(self, request: RecommendationRequest) -> List[SchoolRecommendation]:
        """Return institutions in provider order or raise GatewayError"""

    @abstractmethod
    async def send_message(self, text: str) -> str:
        """Return the counselor reply or raise GatewayError"""

    def reset_history(self):
        """Forget the counselor conversation. Stateless gateways have nothing to forget."""


class GeminiClient:
    """
    Thin client for the Gemini REST API.

    - Persistent httpx.AsyncClient shared by every session
    - Request timeout enforced by httpx
    - Schema-constrained JSON generation via generationConfig.responseSchema
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        temperature: float = 0.5,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.client = httpx.AsyncClient(
            timeout=timeout_seconds,
            headers={"x-goog-api-key": api_key, "Content-Type": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> "GeminiClient":
        return cls(
            api_key=settings.require_api_key(),
            model=settings.model,
            base_url=settings.base_url,
            temperature=settings.temperature,
            timeout_seconds=settings.timeout_seconds,
        )

    @property
    def generate_url(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def _generate(self, payload: Dict[str, Any]) -> str:
        response = await self.client.post(self.generate_url, json=payload)
        response.raise_for_status()
        return self.candidate_text(response.json())

    @staticmethod
    def candidate_text(body: Dict[str, Any]) -> str:
        """Concatenate the text parts of the first candidate"""
        feedback = body.get("promptFeedback") or {}
        if feedback.get("blockReason"):
            raise ProviderResponseError("blocked", str(feedback["blockReason"]))

        candidates = body.get("candidates") or []
        if not candidates:
            raise ProviderResponseError("no_candidates", "response contained no candidates")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        if not text.strip():
            reason = candidates[0].get("finishReason", "unknown")
            raise ProviderResponseError("empty", f"candidate had no text (finishReason={reason})")
        return text

    async def generate_json(self, prompt: str, response_schema: Dict[str, Any]) -> str:
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": response_schema,
                "temperature": self.temperature,
            },
        }
        return await self._generate(payload)

    async def generate_chat(self, contents: List[Dict[str, Any]], system_instruction: str) -> str:
        payload = {
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "contents": contents,
        }
        return await self._generate(payload)

    async def health_check(self) -> Dict[str, Any]:
        """Check provider reachability for the configured model"""
        try:
            t0 = time.perf_counter()
            response = await self.client.get(f"{self.base_url}/models/{self.model}")
            latency = (time.perf_counter() - t0) * 1000
            return {
                "status": "healthy" if response.status_code == 200 else "error",
                "latency_ms": round(latency, 1),
                "model": self.model,
            }
        except httpx.HTTPError as e:
            return {"status": "error", "error": str(e), "model": self.model}

    async def close(self):
        """Clean up persistent HTTP client"""
        with suppress(Exception):
            await self.client.aclose()


def _failure_stage(exc: BaseException) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return "timeout"
    if isinstance(exc, httpx.HTTPStatusError):
        return f"http_{exc.response.status_code}"
    if isinstance(exc, httpx.HTTPError):
        return "transport"
    return getattr(exc, "stage", type(exc).__name__)


class GeminiGateway(RecommendationGateway):
    """
    Per-session gateway. Shares the GeminiClient, owns the chat history for one
    counselor conversation. A turn enters the history only when the provider
    answered it.
    """

    RESPONSE_SCHEMA = to_provider_schema(RecommendationList)

    def __init__(self, client: GeminiClient):
        self.client = client
        self.history: List[Dict[str, Any]] = []
        self._generation = 0

    async def get_recommendations(self, request: RecommendationRequest) -> List[SchoolRecommendation]:
        prompt = build_recommendation_prompt(request.subject_marks, request.average_mark)
        logger.debug(f"Requesting recommendations for {dump_request(request)}")
        t0 = time.perf_counter()
        try:
            text = await self.client.generate_json(prompt, self.RESPONSE_SCHEMA)
            result = enforce_recommendations(text)
        except Exception as e:
            gateway_failures_total.labels(operation="recommendations", stage=_failure_stage(e)).inc()
            logger.exception(f"Error calling Gemini API for recommendations: {e}")
            raise GatewayError(RECOMMENDATION_FAILURE_MESSAGE, cause=e) from e
        finally:
            gateway_request_seconds.labels(operation="recommendations").observe(time.perf_counter() - t0)

        logger.info(f"Gemini returned {len(result.root)} institutions for {len(request.subject_marks)} subjects")
        return list(result.root)

    async def send_message(self, text: str) -> str:
        user_turn = {"role": "user", "parts": [{"text": text}]}
        generation = self._generation
        t0 = time.perf_counter()
        try:
            reply = await self.client.generate_chat(self.history + [user_turn], COUNSELOR_SYSTEM_INSTRUCTION)
        except Exception as e:
            gateway_failures_total.labels(operation="chat", stage=_failure_stage(e)).inc()
            logger.exception(f"Error calling Gemini API for chat: {e}")
            raise GatewayError(CHAT_FAILURE_MESSAGE, cause=e) from e
        finally:
            gateway_request_seconds.labels(operation="chat").observe(time.perf_counter() - t0)

        if generation == self._generation:
            self.history.extend([user_turn, {"role": "model", "parts": [{"text": reply}]}])
        return reply

    def reset_history(self):
        self._generation += 1
        self.history = []


def paragraphs(reply: str) -> List[str]:
    """Split a reply into display paragraphs, dropping blank lines"""
    return [p for p in reply.split("\n") if p.strip()]


def dump_request(request: RecommendationRequest) -> str:
    """Wire form of a request, camelCase as the provider contract names it"""
    return json.dumps(request.model_dump(by_alias=True))
