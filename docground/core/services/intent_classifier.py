"""Intent classifier - query labels that tune retrieval parameters."""

import asyncio
import json
import logging
import re
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from ..cancellation import AbortSignal, is_aborted
from ..models.chat import UserMessage
from ..models.query import (
    DEFAULT_INTENT,
    IntentType,
    QueryIntent,
    RetrievalPlan,
    SearchStrategy,
)
from ..protocols.llm import LLMProtocol

logger = logging.getLogger(__name__)

CLASSIFY_PROMPT = """Classify this query for RAG retrieval strategy. Respond ONLY with valid JSON, no other text.

Query: "{query}"

Categories: factual, analytical, creative, comparative, procedural, summarization

Return this exact JSON format:
{{
  "type": "factual",
  "confidence": 0.9,
  "suggestedStrategy": "hybrid",
  "suggestedLimit": 8,
  "needsContext": true
}}

Rules:
- type: one of the 6 categories
- confidence: 0.0 to 1.0
- suggestedStrategy: "semantic", "hybrid", or "keyword"
- suggestedLimit: 3-15
- needsContext: true or false"""

JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

# Salvage patterns for malformed model output
FIELD_PATTERNS = {
    "type": re.compile(r"type[\"'\s]*:[\"'\s]*(\w+)", re.IGNORECASE),
    "confidence": re.compile(r"confidence[\"'\s]*:[\"'\s]*(\d+\.?\d*)", re.IGNORECASE),
    "suggestedStrategy": re.compile(
        r"suggested_?strategy[\"'\s]*:[\"'\s]*(\w+)", re.IGNORECASE
    ),
    "suggestedLimit": re.compile(r"suggested_?limit[\"'\s]*:[\"'\s]*(\d+)", re.IGNORECASE),
    "needsContext": re.compile(r"needs_?context[\"'\s]*:[\"'\s]*(true|false)", re.IGNORECASE),
}

MIN_LIMIT = 3
MAX_LIMIT = 15


class IntentSchema(BaseModel):
    """Wire schema of the classifier's JSON answer."""

    type: IntentType = IntentType.FACTUAL
    confidence: float = 0.5
    suggested_strategy: SearchStrategy = Field(
        default=SearchStrategy.HYBRID,
        validation_alias=AliasChoices("suggestedStrategy", "suggested_strategy"),
    )
    suggested_limit: int = Field(
        default=5, validation_alias=AliasChoices("suggestedLimit", "suggested_limit")
    )
    needs_context: bool = Field(
        default=True, validation_alias=AliasChoices("needsContext", "needs_context")
    )

    @field_validator("type", "suggested_strategy", mode="before")
    @classmethod
    def _lower(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("confidence", mode="after")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return min(1.0, max(0.0, value))

    @field_validator("suggested_limit", mode="after")
    @classmethod
    def _clamp_limit(cls, value: int) -> int:
        return min(MAX_LIMIT, max(MIN_LIMIT, value))

    def to_intent(self) -> QueryIntent:
        return QueryIntent(
            type=self.type,
            confidence=self.confidence,
            suggested_strategy=self.suggested_strategy,
            suggested_limit=self.suggested_limit,
            needs_context=self.needs_context,
        )


def parse_intent(raw: str) -> QueryIntent:
    """Parse the model answer, repairing it when needed.

    Stage one extracts and validates the JSON object; stage two salvages
    individual fields with regexes. Anything unusable yields the default.
    """
    match = JSON_OBJECT_RE.search(raw)
    if match:
        try:
            return IntentSchema.model_validate(json.loads(match.group(0))).to_intent()
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.debug(f"Intent JSON invalid, repairing: {e}")

    salvaged: dict[str, Any] = {}
    for name, pattern in FIELD_PATTERNS.items():
        found = pattern.search(raw)
        if found:
            salvaged[name] = found.group(1)

    if not salvaged:
        return DEFAULT_INTENT

    try:
        return IntentSchema.model_validate(salvaged).to_intent()
    except ValidationError:
        logger.warning(f"Unrecoverable intent answer: {raw[:80]!r}")
        return DEFAULT_INTENT


def plan_for(intent: QueryIntent) -> RetrievalPlan:
    """Map an intent to retrieval parameters."""
    return RetrievalPlan(
        limit=intent.suggested_limit,
        strategy=intent.suggested_strategy,
        threshold=0.2 if intent.type == IntentType.FACTUAL else 0.1,
        use_expansion=intent.type in (IntentType.ANALYTICAL, IntentType.COMPARATIVE),
        use_rewriting=intent.type in (IntentType.FACTUAL, IntentType.PROCEDURAL),
    )


class IntentClassifier:
    """LLM-backed query classifier. Never raises."""

    def __init__(self, llm: LLMProtocol, model: Optional[str] = None, timeout: float = 5.0):
        """Initialize classifier.

        Args:
            llm: Chat client.
            model: Model used for classification.
            timeout: Hard limit in seconds before falling back to the default.
        """
        self._llm = llm
        self._model = model
        self._timeout = timeout

    async def classify(
        self, query: str, abort_signal: Optional[AbortSignal] = None
    ) -> QueryIntent:
        if is_aborted(abort_signal):
            return DEFAULT_INTENT

        try:
            completion = await asyncio.wait_for(
                self._llm.complete(
                    [UserMessage(content=CLASSIFY_PROMPT.format(query=query))],
                    model=self._model,
                    temperature=0.1,
                    max_tokens=200,
                    abort_signal=abort_signal,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Intent classification timed out after {self._timeout}s")
            return DEFAULT_INTENT
        except Exception as e:
            logger.warning(f"Intent classification failed: {e}")
            return DEFAULT_INTENT

        intent = parse_intent(completion.content or "")
        logger.debug(f"Intent for '{query[:50]}': {intent}")
        return intent
