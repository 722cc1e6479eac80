# src/recursa/graph_builder.py
"""Entity and relation extraction into the run's knowledge graph."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from recursa.exceptions import OptionalStageFailure
from recursa.models import Entity, Relation, normalize_name
from recursa.prompts import PromptLibrary
from recursa.schemas import EntityExtractionResult

if TYPE_CHECKING:
    from recursa.context import RunContext
    from recursa.gateway import LMGateway

logger = logging.getLogger(__name__)

STAGE = "knowledge_graph"


class KnowledgeGraphBuilder:
    """Extract entities and relations from text spans with one structured call.

    Results below min_confidence, and types outside the configured lists
    (when lists are given), are dropped before anything is merged.

    Example:
        builder = KnowledgeGraphBuilder(gateway)
        entities, relations = await builder.extract(
            ["Acme Corp was founded by Jane Doe in 1999."],
            entity_types=["PERSON", "ORGANIZATION"],
            relation_types=["FOUNDED"],
            min_confidence=0.7,
        )
    """

    def __init__(
        self,
        gateway: LMGateway,
        prompts: PromptLibrary | None = None,
        temperature: float | None = 0.0,
    ) -> None:
        self.gateway = gateway
        self.prompts = prompts or PromptLibrary()
        self.temperature = temperature

    async def extract(
        self,
        text_spans: list[str],
        entity_types: list[str] | None = None,
        relation_types: list[str] | None = None,
        min_confidence: float = 0.7,
        *,
        ctx: RunContext | None = None,
    ) -> tuple[list[Entity], list[Relation]]:
        """Extract filtered entities and relations.

        Raises:
            OptionalStageFailure: If the gateway call fails for any reason.
        """
        text = "\n\n".join(s.strip() for s in text_spans if s and s.strip())
        if not text:
            return [], []

        prompt = self.prompts.render(
            "knowledge_extraction",
            entity_types=", ".join(entity_types) if entity_types else "any",
            relation_types=", ".join(relation_types) if relation_types else "any",
            text=text,
        )
        try:
            result = await self.gateway.call(
                prompt, schema=EntityExtractionResult, temperature=self.temperature
            )
        except Exception as e:
            raise OptionalStageFailure(STAGE, e) from e
        if ctx is not None:
            ctx.record_call(result)

        return self._filter(result.result, entity_types, relation_types, min_confidence)

    @staticmethod
    def _filter(
        extracted: EntityExtractionResult,
        entity_types: list[str] | None,
        relation_types: list[str] | None,
        min_confidence: float,
    ) -> tuple[list[Entity], list[Relation]]:
        allowed_entities = {t.upper() for t in entity_types} if entity_types else None
        allowed_relations = {t.upper() for t in relation_types} if relation_types else None

        entities: list[Entity] = []
        for item in extracted.entities:
            if item.confidence < min_confidence or not normalize_name(item.name):
                continue
            if allowed_entities is not None and item.type not in allowed_entities:
                continue
            mentions = {m.strip() for m in [item.name, *item.mentions] if m and m.strip()}
            entities.append(
                Entity(
                    normalized_name=item.name,
                    type=item.type,
                    confidence=item.confidence,
                    mentions=frozenset(mentions),
                )
            )

        relations: list[Relation] = []
        for rel in extracted.relations:
            if rel.confidence < min_confidence:
                continue
            if allowed_relations is not None and rel.relation_type not in allowed_relations:
                continue
            if not normalize_name(rel.from_entity) or not normalize_name(rel.to_entity):
                continue
            relations.append(
                Relation(
                    from_entity=rel.from_entity,
                    to_entity=rel.to_entity,
                    relation_type=rel.relation_type,
                    confidence=rel.confidence,
                    evidence=rel.evidence.strip(),
                )
            )

        dropped = len(extracted.entities) - len(entities) + len(extracted.relations) - len(relations)
        if dropped:
            logger.debug("Dropped %d low-confidence or off-type graph items", dropped)
        return entities, relations

    async def enrich(self, ctx: RunContext, text_spans: list[str]) -> bool:
        """Extract from text_spans and merge into the run graph.

        Failures are recorded on the run as a degraded knowledge_graph stage
        and never raised.

        Returns:
            True if the graph was updated (possibly with nothing new).
        """
        settings = ctx.settings
        try:
            entities, relations = await self.extract(
                text_spans,
                settings.entity_types,
                settings.relation_types,
                settings.kg_min_confidence,
                ctx=ctx,
            )
        except OptionalStageFailure as failure:
            ctx.mark_degraded(failure)
            return False
        await ctx.merge_graph(entities, relations)
        return True
