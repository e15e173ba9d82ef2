"""Support assistant router. Always answers; failures become the fallback text."""

import asyncio
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from assistant.llm import SupportAssistant, get_support_assistant
from assistant.models import PlanRecommendation, SupportAnswer, SupportTurn
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.portal import catalog

router = APIRouter()


class SupportQuestionRequest(BaseModel):
    question: str = Field(max_length=4000)
    history: List[SupportTurn] = []


class PlanRequest(BaseModel):
    profile: str = Field(max_length=4000)


@router.post("/ask", response_model=SupportAnswer)
async def ask_support(
    request: SupportQuestionRequest,
    _rate_limit: None = Depends(rate_limit("support_ask", limit=30, window_seconds=3600)),
    _auth: AuthContext = Depends(get_auth_context),
    assistant: SupportAssistant = Depends(get_support_assistant),
):
    return await asyncio.to_thread(assistant.ask, request.question, request.history)


@router.post("/plan", response_model=PlanRecommendation)
async def recommend_plan(
    request: PlanRequest,
    _rate_limit: None = Depends(rate_limit("support_plan", limit=20, window_seconds=3600)),
    _auth: AuthContext = Depends(get_auth_context),
    assistant: SupportAssistant = Depends(get_support_assistant),
):
    return await asyncio.to_thread(assistant.recommend_plan, request.profile, catalog)
