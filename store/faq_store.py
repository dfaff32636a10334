from __future__ import annotations

import logging
from typing import List

from models.faq import FAQS, FAQ
from shared.settings import FAQ_SEARCH_WINDOW
from store.document_store import DocumentStore, QuerySpec

logger = logging.getLogger(__name__)

QUESTION_WEIGHT = 2
ANSWER_WEIGHT = 1
KEYWORD_WEIGHT = 3
MAX_RESULTS = 3


def _to_faq(doc) -> FAQ:
    data = doc.data
    return FAQ(
        id=doc.id,
        question=data.get("question") or "",
        answer=data.get("answer") or "",
        keywords=data.get("keywords") or [],
        category=data.get("category"),
    )


def score_faq(faq: FAQ, question: str) -> int:
    score = 0
    for term in question.lower().split():
        if term in faq.question.lower():
            score += QUESTION_WEIGHT
        if term in faq.answer.lower():
            score += ANSWER_WEIGHT
        if any(term in k.lower() for k in faq.keywords):
            score += KEYWORD_WEIGHT
    return score


class FAQStore:
    """Read-only access to the `faqs` collection."""

    def __init__(self, store: DocumentStore, search_window: int = FAQ_SEARCH_WINDOW):
        self.store = store
        self.search_window = search_window

    async def get_all_faqs(self) -> List[FAQ]:
        try:
            docs = await self.store.query(QuerySpec(FAQS).ordered("question"))
            return [_to_faq(d) for d in docs]
        except Exception:
            logger.exception("[FAQ] get_all_faqs failed")
            return []

    async def search_faqs(self, question: str) -> List[FAQ]:
        """
        Naive keyword scoring over the first `search_window` FAQs by question.
        Falls back to the first few FAQs when nothing matches.
        """
        try:
            docs = await self.store.query(QuerySpec(FAQS).ordered("question").limited(self.search_window))
        except Exception:
            logger.exception("[FAQ] search_faqs failed for %r", question)
            return []

        faqs = [_to_faq(d) for d in docs]
        scored = [(score_faq(f, question), f) for f in faqs]
        matched = [f for s, f in sorted(scored, key=lambda p: p[0], reverse=True) if s > 0]
        return matched[:MAX_RESULTS] if matched else faqs[:MAX_RESULTS]
