# src/recursa/prompts.py
"""Prompt templates for every model-backed stage.

Templates are plain str.format strings. Each task has a "default" variant
and may have others; a directory of .txt files can override any of them.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from recursa.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_VARIANT = "default"

RELEVANCE_SCORING_PROMPT = """You are judging which parts of a document help answer a question.

Question: {query}

Score each chunk below for how useful it is in answering the question.
Use these bands:
- 0.9-1.0: the chunk directly answers the question
- 0.7-0.8: strong supporting information
- 0.5-0.6: useful background context
- 0.3-0.4: tangentially related
- 0.0-0.2: irrelevant

Prefer precision over recall. When uncertain, score lower.
{notes_section}
Chunks:
{chunks}

Return a JSON object of the form:
{{"chunks": [{{"chunk_index": 0, "relevance_score": 0.85, "reasoning": "short reason"}}]}}
Include every chunk index listed above exactly once."""

RELEVANCE_SCORING_STRICT_PROMPT = """You are a strict relevance judge.

Question: {query}

Score each chunk from 0.0 to 1.0. Only a chunk that states the answer itself
may score 0.9 or higher. Supporting facts score 0.7-0.8, background 0.5-0.6,
loosely related text 0.3-0.4 and anything else 0.0-0.2.
If you are not sure a chunk helps, give it a low score.
{notes_section}
Chunks:
{chunks}

Return a JSON object of the form:
{{"chunks": [{{"chunk_index": 0, "relevance_score": 0.85, "reasoning": "short reason"}}]}}
Include every chunk index listed above exactly once."""

KNOWLEDGE_EXTRACTION_PROMPT = """Extract entities and relations from the text below.

Entity types: {entity_types}
Relation types: {relation_types}

Only extract what the text states explicitly. Give each item a confidence
between 0.0 and 1.0. For each relation, quote the sentence that supports it
as evidence.

Text:
{text}

Return a JSON object of the form:
{{"entities": [{{"name": "...", "type": "...", "confidence": 0.9, "mentions": ["..."]}}],
 "relations": [{{"from_entity": "...", "to_entity": "...", "relation_type": "...", "confidence": 0.9, "evidence": "..."}}]}}"""

CLAIM_DECOMPOSITION_PROMPT = """Break the answer below into atomic factual claims.
Each claim must state exactly one fact and be understandable on its own.
Skip opinions, hedges and statements about missing information.

Answer:
{answer}

Return a JSON object of the form:
{{"claims": ["...", "..."]}}"""

FACT_VERIFICATION_PROMPT = """Check whether the claim is supported by the context.
Use ONLY the context. Do not use outside knowledge.

Claim: {claim}

Context:
{context}

Verdicts:
- VERIFIED: the context supports the claim
- REFUTED: the context contradicts the claim
- UNSUPPORTED: the context neither supports nor contradicts the claim

For VERIFIED or REFUTED, copy the supporting sentence from the context verbatim as evidence.

Return a JSON object of the form:
{{"verdict": "VERIFIED", "evidence": "...", "confidence": 0.9}}"""

RESPONSE_GENERATION_PROMPT = """Answer the question using only the context below.

Question: {query}

Context (each chunk is labelled with its index):
{context}

Knowledge graph:
{knowledge_graph}

Working notes:
{notes}
{claims_section}
Rules:
- Cite the chunk indices you used in sources_used.
- If the context does not contain enough information for a full answer, say
  so explicitly and answer only the part that is supported.
- Never invent facts that are not in the context.

Return a JSON object of the form:
{{"answer": "...", "sources_used": ["0", "3"], "confidence_score": 0.8}}"""

RESPONSE_GENERATION_CREATIVE_PROMPT = """Write an engaging, well-structured answer to the question
using only the context below.

Question: {query}

Context (each chunk is labelled with its index):
{context}

Knowledge graph:
{knowledge_graph}

Working notes:
{notes}
{claims_section}
Explain connections between facts where the context supports them, but do not
add facts the context lacks. If the context is insufficient, say so plainly.
Cite the chunk indices you used in sources_used.

Return a JSON object of the form:
{{"answer": "...", "sources_used": ["0", "3"], "confidence_score": 0.8}}"""

RESPONSE_GENERATION_CONCISE_PROMPT = """Answer the question in at most three sentences, using only the context.

Question: {query}

Context (each chunk is labelled with its index):
{context}

Knowledge graph:
{knowledge_graph}

Working notes:
{notes}
{claims_section}
If the context is insufficient, say so. Cite the chunk indices you used.

Return a JSON object of the form:
{{"answer": "...", "sources_used": ["0"], "confidence_score": 0.8}}"""

DEFAULT_TEMPLATES: dict[str, dict[str, str]] = {
    "relevance_scoring": {
        DEFAULT_VARIANT: RELEVANCE_SCORING_PROMPT,
        "strict": RELEVANCE_SCORING_STRICT_PROMPT,
    },
    "knowledge_extraction": {DEFAULT_VARIANT: KNOWLEDGE_EXTRACTION_PROMPT},
    "claim_decomposition": {DEFAULT_VARIANT: CLAIM_DECOMPOSITION_PROMPT},
    "fact_verification": {DEFAULT_VARIANT: FACT_VERIFICATION_PROMPT},
    "response_generation": {
        DEFAULT_VARIANT: RESPONSE_GENERATION_PROMPT,
        "creative": RESPONSE_GENERATION_CREATIVE_PROMPT,
        "concise": RESPONSE_GENERATION_CONCISE_PROMPT,
    },
}


class PromptLibrary:
    """Render prompts by task name and variant.

    Example:
        prompts = PromptLibrary(variants={"relevance_scoring": "strict"})
        text = prompts.render("relevance_scoring", query="...", chunks="...", notes_section="")

        # Override templates from files such as relevance_scoring.strict.txt
        prompts = PromptLibrary.from_directory("./prompts")
    """

    def __init__(
        self,
        templates: dict[str, dict[str, str]] | None = None,
        variants: dict[str, str] | None = None,
    ) -> None:
        """Initialize the library.

        Args:
            templates: Extra or replacement templates, as {task: {variant: template}}.
                Merged over the built-in templates.
            variants: Variant to use per task when render() is not given one.
        """
        self._templates: dict[str, dict[str, str]] = {
            task: dict(by_variant) for task, by_variant in DEFAULT_TEMPLATES.items()
        }
        for task, by_variant in (templates or {}).items():
            self._templates.setdefault(task, {}).update(by_variant)
        self.variants = dict(variants or {})

    @classmethod
    def from_directory(
        cls,
        path: str | Path,
        variants: dict[str, str] | None = None,
    ) -> PromptLibrary:
        """Load template overrides from <task>.txt and <task>.<variant>.txt files."""
        directory = Path(path)
        if not directory.is_dir():
            raise ConfigurationError(
                f"Prompts directory not found: {directory}",
                suggestion="Set prompts_dir in recursa.yaml to an existing directory",
            )
        overrides: dict[str, dict[str, str]] = {}
        for file in sorted(directory.glob("*.txt")):
            task, _, variant = file.stem.partition(".")
            overrides.setdefault(task, {})[variant or DEFAULT_VARIANT] = file.read_text(
                encoding="utf-8"
            )
        logger.debug("Loaded %d prompt overrides from %s", len(overrides), directory)
        return cls(templates=overrides, variants=variants)

    @property
    def tasks(self) -> list[str]:
        return sorted(self._templates)

    def variants_for(self, task: str) -> list[str]:
        return sorted(self._templates.get(task, {}))

    def render(self, task: str, variant: str | None = None, **bindings: Any) -> str:
        """Render a task's template with the given bindings.

        Raises:
            ConfigurationError: If the task is unknown or a binding is missing.
        """
        by_variant = self._templates.get(task)
        if by_variant is None:
            raise ConfigurationError(
                f"Unknown prompt task '{task}'. Available tasks: {self.tasks}"
            )
        chosen = variant or self.variants.get(task) or DEFAULT_VARIANT
        template = by_variant.get(chosen)
        if template is None:
            logger.warning(
                "Unknown variant '%s' for prompt '%s', using '%s'", chosen, task, DEFAULT_VARIANT
            )
            template = by_variant.get(DEFAULT_VARIANT)
            if template is None:
                raise ConfigurationError(f"Prompt task '{task}' has no default template")
        try:
            return template.format(**bindings)
        except KeyError as e:
            raise ConfigurationError(
                f"Prompt '{task}' ({chosen}) needs binding {e}",
                suggestion="Check placeholders in your prompt override files",
            ) from e
