import logging
import re
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from openai import OpenAI

from billing.catalog import Catalog
from billing.models import Package
from config import settings
from .models import PlanRecommendation, SupportAnswer, SupportTurn

logger = logging.getLogger(__name__)

MAX_QUESTION_CHARS = 2000
MAX_HISTORY_TURNS = 20

# Rough bandwidth need (Mbps) by usage keyword.
USAGE_SPEED_HINTS = {
    "4k": 60,
    "gaming": 40,
    "game": 40,
    "stream": 30,
    "youtube": 25,
    "office": 25,
    "work from home": 25,
    "family": 30,
    "video call": 20,
    "zoom": 20,
    "browsing": 10,
    "facebook": 10,
}


def get_openai_client(api_key: str) -> Optional[OpenAI]:
    """Get OpenAI client, handling placeholders."""
    if not api_key or "your_" in api_key or api_key == "test-key":
        return None
    return OpenAI(api_key=api_key, timeout=settings.SUPPORT_TIMEOUT_SECONDS, max_retries=0)


class SupportAssistant(ABC):
    """Answers free-form support questions. Implementations never raise to the caller."""

    @abstractmethod
    def ask(self, question: str, prior_turns: Sequence[SupportTurn] = ()) -> SupportAnswer:
        raise NotImplementedError

    @abstractmethod
    def recommend_plan(self, profile: str, catalog: Catalog) -> PlanRecommendation:
        raise NotImplementedError


def _fallback_answer() -> SupportAnswer:
    return SupportAnswer(answer=settings.SUPPORT_FALLBACK_MESSAGE, used_fallback=True, provider="fallback")


def suggest_package(profile: str, catalog: Catalog) -> Optional[Package]:
    """Cheapest internet package that covers the bandwidth hinted at by the profile."""
    text = (profile or "").lower()
    needed = max([speed for keyword, speed in USAGE_SPEED_HINTS.items() if keyword in text] or [10])
    people = re.search(r"(\d+)\s*(people|person|members|users|devices)", text)
    if people:
        needed = max(needed, min(int(people.group(1)) * 8, 100))

    candidates = sorted(catalog.internet_packages(), key=lambda package: (package.price, package.speed))
    for package in candidates:
        if package.speed >= needed:
            return package
    return max(candidates, key=lambda package: package.speed) if candidates else None


def _catalog_lines(catalog: Catalog) -> str:
    return "\n".join(
        f"- {package.name} ({package.speed}Mbps, ৳{package.price:g}/month)"
        for package in catalog.internet_packages()
    )


class OpenAISupportAssistant(SupportAssistant):
    def __init__(self, client: Optional[OpenAI] = None, model: Optional[str] = None):
        self.client = client
        self.model = model or settings.SUPPORT_MODEL

    def ask(self, question: str, prior_turns: Sequence[SupportTurn] = ()) -> SupportAnswer:
        text = (question or "").strip()[:MAX_QUESTION_CHARS]
        if not text:
            return _fallback_answer()
        if self.client is None:
            logger.warning("Support assistant has no OpenAI key; returning fallback.")
            return _fallback_answer()

        messages: List[dict] = [{"role": "system", "content": settings.SUPPORT_SYSTEM_PROMPT}]
        for turn in list(prior_turns)[-MAX_HISTORY_TURNS:]:
            messages.append({
                "role": "user" if turn.role == "user" else "assistant",
                "content": turn.text,
            })
        messages.append({"role": "user", "content": text})

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=400,
            )
            answer = (response.choices[0].message.content or "").strip()
        except Exception as e:
            logger.error(f"Error in support assistant: {e}")
            return _fallback_answer()

        if not answer:
            return _fallback_answer()
        return SupportAnswer(answer=answer, provider="openai")

    def recommend_plan(self, profile: str, catalog: Catalog) -> PlanRecommendation:
        suggested = suggest_package(profile, catalog)
        if self.client is None:
            if suggested is None:
                return PlanRecommendation(recommendation=settings.PLAN_FALLBACK_MESSAGE, used_fallback=True, provider="fallback")
            return PlanRecommendation(
                recommendation=(
                    f"প্যাকেজ: {suggested.name}\n"
                    f"মূল্য: ৳{suggested.price:g}/মাস\n"
                    f"কারণ: {suggested.speed} Mbps আপনার ব্যবহারের জন্য যথেষ্ট।"
                ),
                package_id=suggested.id,
                used_fallback=True,
                provider="deterministic",
            )

        prompt = (
            "Based on the following user profile, recommend exactly one of our packages "
            "and explain briefly in Bengali.\n"
            f"Packages:\n{_catalog_lines(catalog)}\n\n"
            f"Profile: {(profile or '').strip()[:MAX_QUESTION_CHARS]}\n\n"
            "Reply format:\nপ্যাকেজ: [নাম]\nমূল্য: ৳[টাকা]/মাস\nকারণ: [সংক্ষিপ্ত ব্যাখ্যা]"
        )
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=300,
            )
            text = (response.choices[0].message.content or "").strip()
        except Exception as e:
            logger.error(f"Error in plan recommendation: {e}")
            return PlanRecommendation(recommendation=settings.PLAN_FALLBACK_MESSAGE, used_fallback=True, provider="fallback")

        matched = next((package for package in catalog.list() if package.name in text), None)
        return PlanRecommendation(
            recommendation=text or settings.PLAN_FALLBACK_MESSAGE,
            package_id=matched.id if matched else None,
            used_fallback=not text,
            provider="openai",
        )


def get_support_assistant() -> SupportAssistant:
    """FastAPI dependency; tests override it with a stub assistant."""
    return OpenAISupportAssistant(client=get_openai_client(settings.OPENAI_API_KEY))
