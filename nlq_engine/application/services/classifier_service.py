import logging
import re
from typing import FrozenSet, Optional, Pattern

from nlq_engine.domain.entities import Intent
from nlq_engine.domain.query_patterns import KeywordConfig, DEFAULT_KEYWORDS

logger = logging.getLogger(__name__)


def compile_vocabulary(keywords: FrozenSet[str]) -> Optional[Pattern]:
    """
    One alternation per vocabulary, anchored on word boundaries so "sum"
    never fires inside "resume". A trailing plural "s" is accepted.
    """
    if not keywords:
        return None
    # Longest first so multi-word phrases win over their prefixes
    alternatives = sorted((re.escape(k.lower()) for k in keywords), key=len, reverse=True)
    return re.compile(r"\b(?:" + "|".join(alternatives) + r")s?\b")


class QueryClassifier:
    """
    Keyword heuristic that routes a query to the relational store,
    the document store, or both
    """

    def __init__(self, keywords: KeywordConfig = DEFAULT_KEYWORDS):
        self.keywords = keywords
        self._structural = compile_vocabulary(keywords.structural)
        self._unstructured = compile_vocabulary(keywords.unstructured)

    def classify(self, text: str) -> Intent:
        """
        Assign an intent. Any structural hit plus any unstructured hit is hybrid;
        queries matching nothing default to sql.
        """
        lowered = (text or "").lower()

        has_structural = self._matches(self._structural, lowered)
        has_unstructured = self._matches(self._unstructured, lowered)

        if has_structural and has_unstructured:
            intent = Intent.HYBRID
        elif has_unstructured:
            intent = Intent.DOCUMENT
        else:
            intent = Intent.SQL

        logger.debug(f"Classified query as {intent.value}: {lowered[:80]}")
        return intent

    @staticmethod
    def _matches(pattern: Optional[Pattern], text: str) -> bool:
        return pattern is not None and pattern.search(text) is not None
