"""Evidence, instruction and verification models."""
from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from .document import RagChunk

DEFAULT_WEB_TOKENS = 100


@dataclass
class WebCitation:
    title: str
    url: str


@dataclass
class WebSearchResult:
    """Answer text plus citations from the web search provider."""
    text: str
    citations: list[WebCitation] = field(default_factory=list)


@dataclass
class WebPassage:
    """One cited web source with the passage it supports."""
    title: str
    url: str
    content: str
    score: float = 0.8

    @property
    def tokens(self) -> int:
        return DEFAULT_WEB_TOKENS


EvidenceItem = Union[RagChunk, WebPassage]


@dataclass
class EvidenceBundle:
    """Ordered, token-accounted evidence for a single query."""
    items: list[EvidenceItem] = field(default_factory=list)
    total_tokens: int = 0

    @property
    def rag(self) -> list[RagChunk]:
        return [i for i in self.items if isinstance(i, RagChunk)]

    @property
    def web(self) -> list[WebPassage]:
        return [i for i in self.items if isinstance(i, WebPassage)]


def build_evidence_bundle(
    rag_chunks: list[RagChunk], web_passages: Optional[list[WebPassage]] = None
) -> EvidenceBundle:
    """Merge document context and web passages (documents first)."""
    web_passages = web_passages or []
    items: list[EvidenceItem] = [*rag_chunks, *web_passages]
    total = sum(c.tokens for c in rag_chunks) + sum(w.tokens for w in web_passages)
    return EvidenceBundle(items=items, total_tokens=total)


class ContextRef(BaseModel):
    type: Literal["doc", "web"]
    id: str
    why: str
    anchor: Optional[str] = None
    score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    content: Optional[str] = None


class Policies(BaseModel):
    cite_every_claim: bool
    no_external_sources: bool
    max_tokens: int = Field(default=2000, ge=1)
    format: Literal["text", "markdown", "html"] = "markdown"


class Telemetry(BaseModel):
    route_conf: float = Field(ge=0.0, le=1.0)
    rag_conf: float = Field(ge=0.0, le=1.0)
    coverage: float = Field(ge=0.0, le=1.0)
    total_tokens: int = Field(ge=0)


class Needs(BaseModel):
    precision: Literal["low", "medium", "high"] = "medium"
    creativity: Literal["low", "medium", "high"] = "medium"


class Instruction(BaseModel):
    """Generation plan handed to the chat model."""
    task: str
    inputs: dict[str, Any] = Field(default_factory=dict)
    needs: Needs = Field(default_factory=Needs)
    context_refs: list[ContextRef] = Field(default_factory=list)
    policies: Policies
    telemetry: Telemetry


@dataclass
class VerificationResult:
    """Advisory verification outcome; never blocks generation."""
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    citations_valid: bool = True
    coverage_adequate: bool = True


@dataclass
class ResponseValidation:
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
