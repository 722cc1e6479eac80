# src/recursa/models/graph.py
"""Knowledge graph data models.

Merging is commutative and idempotent: adding the same entity or relation
twice, or adding two in either order, yields the same graph.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator


def normalize_name(name: str) -> str:
    """Case- and whitespace-fold an entity name. This is the dedup key."""
    return " ".join(name.split()).casefold()


class Entity(BaseModel):
    """A named entity extracted from selected text."""

    model_config = ConfigDict(frozen=True)

    normalized_name: str
    type: str
    confidence: float = Field(ge=0.0, le=1.0)
    mentions: frozenset[str] = frozenset()

    @field_validator("normalized_name")
    @classmethod
    def _normalize(cls, value: str) -> str:
        normalized = normalize_name(value)
        if not normalized:
            raise ValueError("Entity name must not be empty")
        return normalized

    def merged_with(self, other: "Entity") -> "Entity":
        """Union mentions, keep the max confidence.

        The type follows the higher-confidence side; ties pick the
        lexicographically smaller type so the result is order-independent.
        """
        if other.normalized_name != self.normalized_name:
            raise ValueError(
                f"Cannot merge '{self.normalized_name}' with '{other.normalized_name}'"
            )
        if self.confidence != other.confidence:
            winner = self if self.confidence > other.confidence else other
            entity_type = winner.type
        else:
            entity_type = min(self.type, other.type)
        return Entity(
            normalized_name=self.normalized_name,
            type=entity_type,
            confidence=max(self.confidence, other.confidence),
            mentions=self.mentions | other.mentions,
        )


class Relation(BaseModel):
    """A typed, directed relation between two entities."""

    model_config = ConfigDict(frozen=True)

    from_entity: str
    to_entity: str
    relation_type: str
    confidence: float = Field(ge=0.0, le=1.0)
    evidence: str = ""

    @field_validator("from_entity", "to_entity")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_name(value)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.from_entity, self.to_entity, self.relation_type)

    def merged_with(self, other: "Relation") -> "Relation":
        """Keep the higher-confidence evidence (ties: larger evidence string)."""
        if other.key != self.key:
            raise ValueError(f"Cannot merge relation {self.key} with {other.key}")
        return max(self, other, key=lambda r: (r.confidence, r.evidence))


class KnowledgeGraph(BaseModel):
    """Deduplicated entities and relations accumulated over one run."""

    entities: dict[str, Entity] = Field(default_factory=dict)
    relations: list[Relation] = Field(default_factory=list)

    def add_entity(self, entity: Entity) -> Entity:
        """Merge an entity into the graph and return the stored version."""
        existing = self.entities.get(entity.normalized_name)
        merged = entity if existing is None else existing.merged_with(entity)
        self.entities[entity.normalized_name] = merged
        return merged

    def add_relation(self, relation: Relation) -> Relation:
        """Merge a relation into the graph and return the stored version."""
        for i, existing in enumerate(self.relations):
            if existing.key == relation.key:
                merged = existing.merged_with(relation)
                self.relations[i] = merged
                return merged
        self.relations.append(relation)
        return relation

    def merge(self, entities: list[Entity], relations: list[Relation]) -> None:
        """Merge a batch of extraction results."""
        for entity in entities:
            self.add_entity(entity)
        for relation in relations:
            self.add_relation(relation)

    def merge_graph(self, other: "KnowledgeGraph") -> None:
        """Merge another graph into this one."""
        self.merge(list(other.entities.values()), list(other.relations))

    def get(self, name: str) -> Entity | None:
        """Look up an entity by any surface form of its name."""
        return self.entities.get(normalize_name(name))

    def is_empty(self) -> bool:
        return not self.entities and not self.relations

    def summary(self, max_entities: int = 25, max_relations: int = 25) -> str:
        """Compact text rendering used as prompt context."""
        if self.is_empty():
            return "(empty)"
        ranked = sorted(self.entities.values(), key=lambda e: (-e.confidence, e.normalized_name))
        lines = [f"- {e.normalized_name} ({e.type}, {e.confidence:.2f})" for e in ranked[:max_entities]]
        top_relations = sorted(self.relations, key=lambda r: (-r.confidence, r.key))
        lines.extend(
            f"- {r.from_entity} -[{r.relation_type}]-> {r.to_entity} ({r.confidence:.2f})"
            for r in top_relations[:max_relations]
        )
        return "\n".join(lines)
