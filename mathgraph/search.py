"""
Free-text search over concept nodes.

Inverted indexes map tokens to node IDs for titles, descriptions, and
LaTeX sources; domain and tag indexes are keyed by the lower-cased value.
A query token hitting a title scores 10, LaTeX 5, description 3.
"""

import logging
import re
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Set

from mathgraph.models import ConceptNode, NodeType, SearchOptions, SearchResult
from mathgraph.utils import unique_ids

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[^\w\s]")

FIELD_SCORES = {"title": 10.0, "latex": 5.0, "description": 3.0}


def tokenize(text: str) -> List[str]:
    return _NON_WORD.sub(" ", text.lower()).split()


class SearchIndex:
    """Token and facet indexes over a set of ``ConceptNode`` objects."""

    def __init__(self, nodes: Iterable[ConceptNode] = ()) -> None:
        self._nodes: Dict[str, ConceptNode] = {}
        self._fields: Dict[str, Dict[str, Set[str]]] = {
            f: defaultdict(set) for f in FIELD_SCORES
        }
        self._domains: Dict[str, Set[str]] = defaultdict(set)
        self._tags: Dict[str, Set[str]] = defaultdict(set)
        for node in nodes:
            self.add_node(node)
        logger.debug("Search index built over %d node(s).", len(self._nodes))

    def __len__(self) -> int:
        return len(self._nodes)

    def add_node(self, node: ConceptNode) -> None:
        self._nodes[node.id] = node
        texts = {
            "title": node.title,
            "description": node.description,
            "latex": node.latex or "",
        }
        for field, text in texts.items():
            for token in tokenize(text):
                self._fields[field][token].add(node.id)
        for domain in node.domains:
            self._domains[domain.lower()].add(node.id)
        for tag in node.tags:
            self._tags[tag.lower()].add(node.id)

    # ==================== Queries ====================

    def search(self, query: str, limit: int = 20) -> List[SearchResult]:
        """Score nodes by field hits of the query tokens, best first."""
        tokens = tokenize(query)
        if not tokens:
            return []

        scores: Dict[str, float] = Counter()
        matched: Dict[str, Set[str]] = defaultdict(set)
        for token in tokens:
            for field, weight in FIELD_SCORES.items():
                for node_id in self._fields[field].get(token, ()):
                    scores[node_id] += weight
                    matched[node_id].add(field)

        results = [
            SearchResult(
                node=self._nodes[node_id],
                score=score,
                matched_fields=sorted(matched[node_id]),
            )
            for node_id, score in scores.items()
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]

    def search_by_domain(self, domain: str) -> List[ConceptNode]:
        return [self._nodes[i] for i in sorted(self._domains.get(domain.lower(), ()))]

    def search_by_tag(self, tag: str) -> List[ConceptNode]:
        return [self._nodes[i] for i in sorted(self._tags.get(tag.lower(), ()))]

    def search_by_type(self, node_type: NodeType) -> List[ConceptNode]:
        return [n for n in self._nodes.values() if n.type == node_type]

    def advanced_search(self, options: SearchOptions) -> List[SearchResult]:
        """Apply every filter in *options*, then rank by query if one is given."""
        candidates = list(self._nodes)

        if options.domains:
            allowed = set().union(
                *(self._domains.get(d.lower(), set()) for d in options.domains)
            )
            candidates = [c for c in candidates if c in allowed]
        if options.tags:
            allowed = set().union(
                *(self._tags.get(t.lower(), set()) for t in options.tags)
            )
            candidates = [c for c in candidates if c in allowed]
        if options.types:
            types = set(options.types)
            candidates = [c for c in candidates if self._nodes[c].type in types]
        if options.min_complexity is not None:
            candidates = [
                c for c in candidates
                if self._nodes[c].complexity >= options.min_complexity
            ]
        if options.max_complexity is not None:
            candidates = [
                c for c in candidates
                if self._nodes[c].complexity <= options.max_complexity
            ]

        if options.query:
            keep = set(candidates)
            ranked = self.search(options.query, limit=len(self._nodes))
            return [r for r in ranked if r.node.id in keep][: options.limit]

        return [
            SearchResult(node=self._nodes[c], score=1.0)
            for c in candidates[: options.limit]
        ]

    def get_suggestions(self, prefix: str, limit: int = 10) -> List[str]:
        """Distinct titles starting with *prefix* (case-insensitive)."""
        prefix = prefix.lower()
        titles = unique_ids(
            n.title for n in self._nodes.values() if n.title.lower().startswith(prefix)
        )
        return titles[:limit]

    def get_stats(self) -> Dict[str, object]:
        by_type: Counter = Counter(n.type for n in self._nodes.values())
        by_domain: Counter = Counter(
            d for n in self._nodes.values() for d in n.domains
        )
        return {
            "total_nodes": len(self._nodes),
            "by_type": dict(by_type),
            "by_domain": dict(by_domain),
        }
