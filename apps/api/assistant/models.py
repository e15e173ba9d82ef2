from typing import Literal, Optional
from pydantic import BaseModel

class SupportTurn(BaseModel):
    role: Literal["user", "model"]  # "model" = earlier assistant reply
    text: str

class SupportAnswer(BaseModel):
    answer: str
    used_fallback: bool = False
    provider: str = "openai"

class PlanRecommendation(BaseModel):
    recommendation: str
    package_id: Optional[str] = None
    used_fallback: bool = False
    provider: str = "openai"
