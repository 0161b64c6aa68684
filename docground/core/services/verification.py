"""Verification - advisory checks on instructions and generated responses."""

import logging
import re
from urllib.parse import urlparse

from pydantic import ValidationError

from ..models.document import RagChunk
from ..models.evidence import Instruction, ResponseValidation, VerificationResult
from .context_selector import estimate_tokens

logger = logging.getLogger(__name__)

CITATION_RE = re.compile(r"\[(\d+)\]")
MARKDOWN_HEADER_RE = re.compile(r"^#{1,6}\s", re.MULTILINE)
FACTUAL_TASKS = ("fact_check", "summarize")


def verify_instruction(
    instruction: Instruction,
    rag_chunks: list[RagChunk],
    min_coverage: float = 0.5,
    require_min_coverage: bool = True,
    writing_task: bool = False,
) -> VerificationResult:
    """Check schema, citation references and coverage of an instruction.

    Failures are reported, never raised.
    """
    result = VerificationResult()

    try:
        Instruction.model_validate(instruction.model_dump())
    except ValidationError as e:
        result.errors.append(f"Schema validation failed: {e.error_count()} error(s)")
        result.is_valid = False

    chunk_ids = {c.id for c in rag_chunks}
    for ref in instruction.context_refs:
        if ref.type == "doc" and ref.id not in chunk_ids:
            result.errors.append(f"Citation [{ref.id}] not found in available chunks")
            result.citations_valid = False
        elif not (ref.content or "").strip():
            result.warnings.append(f"Citation [{ref.id}] has empty content")

    coverage = instruction.telemetry.coverage
    result.coverage_adequate = coverage >= min_coverage
    if not result.coverage_adequate:
        if writing_task:
            result.warnings.append(
                f"Low coverage for writing task: {coverage:.2f} < {min_coverage}"
            )
        elif require_min_coverage:
            result.errors.append(f"Inadequate coverage: {coverage:.2f} < {min_coverage}")

    web_domains = {
        urlparse(ref.id).netloc for ref in instruction.context_refs if ref.type == "web"
    }
    if len(web_domains) == 1 and instruction.task in FACTUAL_TASKS:
        result.warnings.append("Only one domain in context for factual task")

    result.is_valid = (
        result.is_valid
        and result.citations_valid
        and (result.coverage_adequate or not require_min_coverage or writing_task)
    )
    return result


def validate_response(content: str, instruction: Instruction) -> ResponseValidation:
    """Check a generated answer against the instruction's policies."""
    result = ResponseValidation()
    cited = [int(n) for n in CITATION_RE.findall(content)]

    if instruction.policies.cite_every_claim and not cited:
        result.errors.append("Response must include citations but none found")

    invalid = sorted({n for n in cited if n < 1 or n > len(instruction.context_refs)})
    if invalid:
        result.errors.append(f"Invalid citations found: {invalid}")

    tokens = estimate_tokens(content)
    if tokens > instruction.policies.max_tokens:
        result.warnings.append(
            f"Response exceeds token limit: {tokens} > {instruction.policies.max_tokens}"
        )

    if (
        instruction.policies.format == "markdown"
        and len(content) > 500
        and not MARKDOWN_HEADER_RE.search(content)
    ):
        result.warnings.append("Response should be in markdown format but no headers found")

    result.is_valid = not result.errors
    return result
