# ABOUTME: Stores linguistic constraints between language objects as an arena graph.
# ABOUTME: Nodes are integer handles; edges come from the rule table and lexical associations.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from src.common.checks import require_probability
from src.common.errors import MalformedInputError
from src.common.schemas import LanguageObject, RelationKind
from src.lexical.pmi import LexicalRelationIndex


@dataclass(frozen=True)
class ConstraintEdge:
    source: int
    target: int
    kind: RelationKind
    strength: float = 1.0
    description: str = ""
    modifications: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        require_probability(self.strength, "strength")


@dataclass(frozen=True)
class LinguisticRule:
    """Type-level rule applied to every (source, target) object pair with matching types."""

    source_type: str
    target_type: str
    kind: RelationKind
    strength: float = 1.0
    description: str = ""
    modifications: Mapping[str, str] = field(default_factory=dict)


DEFAULT_RULES: Tuple[LinguisticRule, ...] = (
    LinguisticRule("passive_voice", "transitive_verb", RelationKind.REQUIRES, 1.0, "passive voice requires a transitive verb"),
    LinguisticRule("passive_voice", "intransitive_verb", RelationKind.EXCLUDES, 1.0, "intransitive verbs cannot be passivised"),
    LinguisticRule("formal_register", "colloquial", RelationKind.EXCLUDES, 1.0, "formal register excludes colloquial items"),
    LinguisticRule("formal_register", "contraction", RelationKind.EXCLUDES, 0.9, "formal register excludes contractions"),
    LinguisticRule("relative_clause", "relative_pronoun", RelationKind.REQUIRES, 1.0, "relative clauses need a relative pronoun"),
    LinguisticRule("perfect_aspect", "past_participle", RelationKind.REQUIRES, 1.0, "perfect aspect requires a past participle"),
    LinguisticRule(
        "past_tense",
        "irregular_verb",
        RelationKind.RESTRICTS,
        0.8,
        "past tense restricts irregular verbs to their past form",
        {"form": "past"},
    ),
    LinguisticRule(
        "third_person_singular",
        "verb",
        RelationKind.RESTRICTS,
        0.7,
        "third person singular subjects force -s agreement",
        {"agreement": "3sg"},
    ),
    LinguisticRule("phrasal_verb", "particle", RelationKind.PREFERS, 0.7, "phrasal verbs pair with particles"),
    LinguisticRule("question_form", "auxiliary_verb", RelationKind.PREFERS, 0.6, "questions favour auxiliary inversion"),
)


class ConstraintGraph:
    """
    Directed constraint graph over object ids.

    Objects are interned into an arena; edges reference arena handles, never
    objects, so traversal order depends only on insertion order.
    """

    def __init__(self) -> None:
        self._ids: List[str] = []
        self._handles: Dict[str, int] = {}
        self._outgoing: List[List[ConstraintEdge]] = []
        self._edge_index: Dict[Tuple[int, int, RelationKind], int] = {}

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, object_id: str) -> bool:
        return object_id in self._handles

    def add_node(self, object_id: str) -> int:
        handle = self._handles.get(object_id)
        if handle is None:
            handle = len(self._ids)
            self._ids.append(object_id)
            self._handles[object_id] = handle
            self._outgoing.append([])
        return handle

    def handle(self, object_id: str) -> int:
        try:
            return self._handles[object_id]
        except KeyError as exc:
            raise MalformedInputError(f"Unknown object '{object_id}' in constraint graph") from exc

    def object_id(self, handle: int) -> str:
        return self._ids[handle]

    def object_ids(self) -> List[str]:
        return list(self._ids)

    def add_edge(
        self,
        source_id: str,
        target_id: str,
        kind: RelationKind,
        strength: float = 1.0,
        description: str = "",
        modifications: Optional[Mapping[str, str]] = None,
    ) -> ConstraintEdge:
        """Add an edge; a repeated (source, target, kind) keeps the stronger edge."""

        if source_id == target_id:
            raise MalformedInputError(f"Self-constraint on '{source_id}' is not allowed")
        source = self.add_node(source_id)
        target = self.add_node(target_id)
        edge = ConstraintEdge(source, target, RelationKind(kind), strength, description, dict(modifications or {}))

        key = (source, target, edge.kind)
        position = self._edge_index.get(key)
        if position is None:
            self._edge_index[key] = len(self._outgoing[source])
            self._outgoing[source].append(edge)
        elif self._outgoing[source][position].strength < edge.strength:
            self._outgoing[source][position] = edge
        return edge

    def outgoing(self, handle: int) -> Sequence[ConstraintEdge]:
        return tuple(self._outgoing[handle])

    def edges(self) -> Iterator[ConstraintEdge]:
        for bucket in self._outgoing:
            yield from bucket

    def edge_count(self) -> int:
        return sum(len(bucket) for bucket in self._outgoing)


def build_constraint_graph(
    objects: Iterable[LanguageObject],
    rules: Sequence[LinguisticRule] = DEFAULT_RULES,
    index: Optional[LexicalRelationIndex] = None,
    min_relation_strength: float = 0.3,
) -> ConstraintGraph:
    """
    Derive a session graph from the rule table plus lexical "prefers" edges.

    Lexical edges are added in both directions with strength equal to the
    pair's NPMI, for significant pairs with NPMI >= ``min_relation_strength``.
    """

    require_probability(min_relation_strength, "min_relation_strength")
    objects = list(objects)
    graph = ConstraintGraph()
    by_type: Dict[str, List[LanguageObject]] = {}
    for obj in objects:
        graph.add_node(obj.object_id)
        by_type.setdefault(obj.object_type, []).append(obj)

    for rule in rules:
        for source in by_type.get(rule.source_type, []):
            for target in by_type.get(rule.target_type, []):
                if source.object_id == target.object_id:
                    continue
                graph.add_edge(
                    source.object_id,
                    target.object_id,
                    rule.kind,
                    rule.strength,
                    rule.description,
                    rule.modifications,
                )
    rule_edges = graph.edge_count()

    if index is not None:
        for i, left in enumerate(objects):
            for right in objects[i + 1:]:
                relation = index.compute_pmi(left.content, right.content)
                if not index.is_significant(relation) or relation.npmi < min_relation_strength:
                    continue
                note = f"collocation npmi={relation.npmi:.2f}"
                graph.add_edge(left.object_id, right.object_id, RelationKind.PREFERS, relation.npmi, note)
                graph.add_edge(right.object_id, left.object_id, RelationKind.PREFERS, relation.npmi, note)

    logger.debug(
        "Constraint graph: {} nodes, {} rule edges, {} lexical edges",
        len(graph),
        rule_edges,
        graph.edge_count() - rule_edges,
    )
    return graph
