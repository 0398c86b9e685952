"""
Advisory recommendation text for members.

The provider is an opaque external call. Callers go through
fetch_recommendation, which bounds the call and degrades to FALLBACK_TEXT on
any error, timeout or empty answer.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Protocol, Sequence

from openai import OpenAI, OpenAIError

from careledger.core.config import get_settings

logger = logging.getLogger(__name__)

FALLBACK_TEXT = "추천 준비 중"
NO_HISTORY_TEXT = "최근 관리 내역 없음"

SYSTEM_PROMPT = (
    "You are a senior wellness consultant at a premium spa in Hannam-dong, Seoul. "
    "Answer in refined, polite Korean."
)


class RecommendationError(Exception):
    """Raised by providers when no usable recommendation was produced."""


class RecommendationProvider(Protocol):
    def recommend(self, goal: str, history: Sequence[str]) -> str:
        ...


def build_prompt(goal: str, history: Sequence[str]) -> str:
    history_text = ", ".join(h for h in history if h) or NO_HISTORY_TEXT
    return (
        "다음 고객 정보를 바탕으로 맞춤형 테라피 추천을 한국어로 작성해 주세요.\n\n"
        f"고객의 핵심 건강 목표: {goal or '일반 웰니스 관리'}\n"
        f"최근 센터 이용 내역: {history_text}\n\n"
        "작성 지침:\n"
        "1. 전문적이고 세심한 어조를 유지하세요.\n"
        "2. 고객의 목표에 맞는 다음 단계의 테라피를 제안하세요.\n"
        "3. 2문장 내외로 작성하고 머리말 없이 본문만 반환하세요."
    )


class OpenAIRecommendationProvider:
    """Chat-completions backed provider."""

    def __init__(self, api_key: str | None = None, model: str | None = None, timeout: float | None = None) -> None:
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.model = model or settings.recommendation_model
        self.timeout = timeout if timeout is not None else settings.recommendation_timeout_seconds
        self._client: OpenAI | None = None

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self.api_key:
                raise RecommendationError("OPENAI_API_KEY is not configured")
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def recommend(self, goal: str, history: Sequence[str]) -> str:
        client = self._get_client()
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(goal, history)},
                ],
                temperature=0.7,
                top_p=0.95,
            )
        except OpenAIError as exc:
            raise RecommendationError(str(exc)) from exc
        text = ""
        if response.choices:
            text = (response.choices[0].message.content or "").strip()
        if not text:
            raise RecommendationError("empty recommendation")
        return text


_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="recommend")


def fetch_recommendation(
    provider: RecommendationProvider | None,
    goal: str,
    history: Sequence[str],
    *,
    timeout: float | None = None,
) -> str:
    """Never raises: returns FALLBACK_TEXT when the provider fails or is too slow."""
    if provider is None:
        return FALLBACK_TEXT
    limit = timeout if timeout is not None else get_settings().recommendation_timeout_seconds
    future = _executor.submit(provider.recommend, goal, list(history))
    try:
        text = future.result(timeout=limit)
    except FutureTimeout:
        future.cancel()
        logger.warning("Recommendation provider timed out after %.1fs", limit)
        return FALLBACK_TEXT
    except Exception:  # opaque provider
        logger.warning("Recommendation provider failed", exc_info=True)
        return FALLBACK_TEXT
    text = (text or "").strip() if isinstance(text, str) else ""
    return text or FALLBACK_TEXT
