from typing import List, Optional
from pydantic import BaseModel, Field

FAQS = "faqs"


class FAQ(BaseModel):
    id: str
    question: str = ""
    answer: str = ""
    keywords: List[str] = Field(default_factory=list)
    category: Optional[str] = None

    model_config = {"extra": "ignore"}
