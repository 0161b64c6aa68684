"""Tests for instruction building and verification."""

from docground.core.models.document import RagChunk
from docground.core.models.evidence import WebPassage, build_evidence_bundle
from docground.core.models.query import RouteIntent, RouterDecision
from docground.core.services.instruction_builder import (
    InstructionBuilder,
    infer_task,
    is_writing_task,
)
from docground.core.services.verification import validate_response, verify_instruction


def chunk(chunk_id: str, text: str = "Some text.", score: float = 0.8) -> RagChunk:
    doc_id, index = chunk_id.split(":")
    return RagChunk(chunk_id, doc_id, f"doc#p{index}", text, score, 5, chunk_index=int(index))


def build(task="rag", intent=RouteIntent.RAG_QUERY, rag=(), web=(), coverage=0.9, max_tokens=2000):
    decision = RouterDecision(intent=intent, confidence=0.8)
    evidence = build_evidence_bundle(list(rag), list(web))
    return InstructionBuilder().build(
        decision, "question", task, evidence, 0.7, coverage, max_tokens=max_tokens
    )


class TestInferTask:

    def test_labels(self):
        def task(intent, ask="tell me"):
            return infer_task(RouterDecision(intent=intent, confidence=0.5), ask)

        assert task(RouteIntent.EDITOR_WRITE) == "write"
        assert task(RouteIntent.RAG_QUERY, "draft a summary of my notes") == "write"
        assert task(RouteIntent.RAG_QUERY) == "rag"
        assert task(RouteIntent.EDIT_REQUEST) == "edit"
        assert task(RouteIntent.WEB_SEARCH) == "web_search"
        assert task(RouteIntent.ASK) == "ask"

    def test_writing_tasks(self):
        assert is_writing_task("write")
        assert is_writing_task("generate_report")
        assert not is_writing_task("rag")


class TestInstructionBuilder:

    def test_documents_precede_web_refs(self):
        instruction = build(
            rag=[chunk("a:0")],
            web=[WebPassage(title="T", url="https://example.com/x", content="web text")],
        )

        assert [(r.type, r.id) for r in instruction.context_refs] == [
            ("doc", "a:0"),
            ("web", "https://example.com/x"),
        ]
        assert instruction.policies.cite_every_claim
        assert instruction.policies.no_external_sources
        assert instruction.needs.precision == "high"

    def test_system_prompt_without_sources(self):
        prompt = InstructionBuilder.system_prompt(build(intent=RouteIntent.ASK, task="ask"))

        assert "AVAILABLE SOURCES:\n(none)" in prompt
        assert "Cite every claim: NO" in prompt

    def test_write_task_is_creative(self):
        instruction = build(task="write", intent=RouteIntent.EDITOR_WRITE)
        assert instruction.needs.creativity == "high"
        assert not instruction.policies.cite_every_claim


class TestVerifyInstruction:

    def test_valid(self):
        rag = [chunk("a:0")]
        result = verify_instruction(build(rag=rag), rag)

        assert result.is_valid
        assert result.errors == []

    def test_missing_chunk_invalidates_citations(self):
        result = verify_instruction(build(rag=[chunk("a:0")]), [chunk("b:0")])

        assert not result.is_valid
        assert not result.citations_valid
        assert "Citation [a:0] not found in available chunks" in result.errors

    def test_empty_content_is_a_warning(self):
        rag = [chunk("a:0", text="  ")]
        result = verify_instruction(build(rag=rag), rag)

        assert result.is_valid
        assert result.warnings == ["Citation [a:0] has empty content"]

    def test_low_coverage_is_an_error(self):
        result = verify_instruction(build(coverage=0.1), [])

        assert not result.is_valid
        assert not result.coverage_adequate
        assert result.errors == ["Inadequate coverage: 0.10 < 0.5"]

    def test_low_coverage_for_writing_is_a_warning(self):
        instruction = build(task="write", intent=RouteIntent.EDITOR_WRITE, coverage=0.1)

        result = verify_instruction(
            instruction, [], min_coverage=0.2, require_min_coverage=False, writing_task=True
        )

        assert result.is_valid
        assert result.errors == []
        assert result.warnings == ["Low coverage for writing task: 0.10 < 0.2"]

    def test_single_domain_warning_for_factual_tasks(self):
        web = [
            WebPassage(title="A", url="https://news.example/a", content="a"),
            WebPassage(title="B", url="https://news.example/b", content="b"),
        ]
        result = verify_instruction(build(task="fact_check", web=web), [])
        assert "Only one domain in context for factual task" in result.warnings


class TestValidateResponse:

    def test_missing_citations(self):
        result = validate_response("An answer.", build(rag=[chunk("a:0")]))

        assert not result.is_valid
        assert result.errors == ["Response must include citations but none found"]

    def test_out_of_range_citations(self):
        result = validate_response("Claim [1]. Other [3].", build(rag=[chunk("a:0")]))
        assert result.errors == ["Invalid citations found: [3]"]

    def test_token_limit_and_markdown_warnings(self):
        content = "word " * 200 + "[1]"

        result = validate_response(content, build(rag=[chunk("a:0")], max_tokens=10))

        assert result.is_valid
        assert len(result.warnings) == 2
        assert result.warnings[0].startswith("Response exceeds token limit")
