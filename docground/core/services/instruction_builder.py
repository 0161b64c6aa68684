"""Instruction builder - turns routing and evidence into a generation plan."""

import json
import logging
from typing import Optional

from ..models.evidence import (
    ContextRef,
    EvidenceBundle,
    Instruction,
    Needs,
    Policies,
    Telemetry,
)
from ..models.query import RouteIntent, RouterDecision

logger = logging.getLogger(__name__)

WRITING_CUES = (
    "write", "create", "generate", "compose", "draft", "report",
    "document", "analysis", "summary", "add", "insert",
)
WRITING_TASK_CUES = ("create", "generate", "compose", "draft", "report", "document")

DOC_REASONS = {
    "edit": "content for editing",
    "write": "source material",
    "rag": "relevant information",
}
WEB_REASONS = {
    "edit": "current style guide",
    "write": "supplementary information",
    "web_search": "current information",
}


def infer_task(decision: RouterDecision, ask: str) -> str:
    """Task label for a routed request: write, edit, web_search, rag or ask."""
    text = ask.lower()
    if decision.intent == RouteIntent.EDITOR_WRITE or (
        decision.intent == RouteIntent.RAG_QUERY and any(cue in text for cue in WRITING_CUES)
    ):
        return "write"
    if decision.intent == RouteIntent.EDIT_REQUEST:
        return "edit"
    if decision.intent == RouteIntent.WEB_SEARCH:
        return "web_search"
    if decision.intent == RouteIntent.RAG_QUERY:
        return "rag"
    return "ask"


def is_writing_task(task: str) -> bool:
    return task == "write" or any(cue in task.lower() for cue in WRITING_TASK_CUES)


class InstructionBuilder:
    """Build and render the instruction handed to the chat model."""

    def build(
        self,
        decision: RouterDecision,
        ask: str,
        task: str,
        evidence: EvidenceBundle,
        rag_confidence: float,
        coverage: float,
        max_tokens: int = 2000,
        selection: Optional[str] = None,
    ) -> Instruction:
        """Assemble an instruction from the routed request and its evidence.

        Context references list document chunks first, then web passages,
        so `[n]` markers map to `context_refs[n - 1]`.
        """
        refs = [
            ContextRef(
                type="doc",
                id=chunk.id,
                anchor=chunk.anchor,
                why=DOC_REASONS.get(task, "relevant information"),
                score=min(1.0, max(0.0, chunk.score)),
                content=chunk.text,
            )
            for chunk in evidence.rag
        ]
        refs.extend(
            ContextRef(
                type="web",
                id=passage.url,
                why=WEB_REASONS.get(task, "current information"),
                score=passage.score,
                content=passage.content,
            )
            for passage in evidence.web
        )

        inputs: dict = {"query": ask}
        if selection:
            inputs["selection"] = selection

        return Instruction(
            task=task,
            inputs=inputs,
            needs=Needs(
                precision="high" if task in ("rag", "edit") else "medium",
                creativity="high" if task == "write" else "low",
            ),
            context_refs=refs,
            policies=Policies(
                cite_every_claim=decision.outputs == "answer" and bool(refs),
                no_external_sources=decision.intent == RouteIntent.RAG_QUERY,
                max_tokens=max_tokens,
                format="markdown",
            ),
            telemetry=Telemetry(
                route_conf=min(1.0, max(0.0, decision.confidence)),
                rag_conf=min(1.0, max(0.0, rag_confidence)),
                coverage=min(1.0, max(0.0, coverage)),
                total_tokens=evidence.total_tokens,
            ),
        )

    @staticmethod
    def system_prompt(instruction: Instruction) -> str:
        """Render the instruction as a system prompt with numbered sources."""
        policies = instruction.policies
        lines = [
            f"You are an AI assistant helping with a {instruction.task} task.",
            "",
            f"TASK: {instruction.task.upper()}",
            f"INPUTS: {json.dumps(instruction.inputs, ensure_ascii=False)}",
            "",
            "POLICIES:",
            f"- Cite every claim: {'YES' if policies.cite_every_claim else 'NO'}",
            f"- No external sources: {'YES' if policies.no_external_sources else 'NO'}",
            f"- Max tokens: {policies.max_tokens}",
            f"- Format: {policies.format}",
            "",
            "AVAILABLE SOURCES:",
        ]

        if not instruction.context_refs:
            lines.append("(none)")
        for i, ref in enumerate(instruction.context_refs, 1):
            score = f" (score: {ref.score:.2f})" if ref.score is not None else ""
            lines.append(f"{i}. [{ref.type.upper()}] {ref.id} - {ref.why}{score}")
            if ref.content:
                lines.append(f"   CONTENT: {ref.content}")

        lines += [
            "",
            "INSTRUCTIONS:",
            "1. Use only the sources listed above for factual claims.",
            "2. "
            + (
                "Cite every claim with [1], [2], etc."
                if policies.cite_every_claim
                else "Include citations like [1] when helpful."
            ),
            "3. "
            + (
                "Do not reference any external sources not listed above."
                if policies.no_external_sources
                else "You may reference web sources if they are listed above."
            ),
            f"4. Use {policies.format} formatting.",
        ]
        return "\n".join(lines)
