"""Wikilink insertion that respects protected zones.

Turns plain-text mentions of known entities into ``[[Entity]]`` or
``[[Entity|matched text]]`` links without touching frontmatter, code,
existing links, headers or any other protected span.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Sequence, Set, Union

from crank_mcp.core.ranges import range_overlaps
from crank_mcp.core.zones import get_protected_zones, range_overlaps_protected_zone

logger = logging.getLogger(__name__)

__all__ = [
    "Entity",
    "EntityWithAliases",
    "EntityMatch",
    "SearchTerm",
    "WikilinkResult",
    "apply_wikilinks",
    "find_entity_matches",
    "get_search_terms",
    "should_exclude_entity",
]

# Words that look like entity names in a vault but are never worth linking.
EXCLUDED_WORDS = frozenset(
    {
        # Days
        "monday", "tuesday", "wednesday", "thursday", "friday", "saturday",
        "sunday",
        # Months
        "january", "february", "march", "april", "may", "june", "july",
        "august", "september", "october", "november", "december",
        # Relative dates
        "today", "tomorrow", "yesterday", "week", "month", "year",
        # Stop words
        "the", "a", "an", "and", "or", "but", "with", "without", "for", "from",
        "into", "onto", "about", "this", "that", "these", "those", "there",
        "here", "what", "when", "where", "which", "who", "why", "how", "not",
        "all", "any", "some", "new", "note", "notes", "todo", "done",
    }
)


@dataclass
class EntityWithAliases:
    """A linkable entity with alternative spellings.

    Attributes:
        name: Canonical entity name (the link target)
        path: Vault path of the entity's note
        aliases: Other names that should link to the entity
    """

    name: str
    path: str = ""
    aliases: List[str] = field(default_factory=list)


Entity = Union[str, EntityWithAliases]


@dataclass(frozen=True)
class SearchTerm:
    term: str
    entity_name: str


@dataclass(frozen=True)
class EntityMatch:
    start: int
    end: int
    matched: str


@dataclass
class WikilinkResult:
    """Outcome of a wikilink insertion pass.

    Attributes:
        content: Rewritten document
        links_added: Number of links inserted
        linked_entities: Canonical names that received at least one link,
            in document order
    """

    content: str
    links_added: int = 0
    linked_entities: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class _Candidate:
    start: int
    end: int
    entity_name: str
    matched: str


def should_exclude_entity(name: str) -> bool:
    """Check if a name is a day, month, relative date or stop word."""
    return name.strip().lower() in EXCLUDED_WORDS


def get_search_terms(entity: Entity) -> List[SearchTerm]:
    """Expand an entity into the terms to search for, name first."""
    if isinstance(entity, str):
        return [SearchTerm(term=entity, entity_name=entity)]

    terms = [SearchTerm(term=entity.name, entity_name=entity.name)]
    for alias in entity.aliases:
        if alias:
            terms.append(SearchTerm(term=alias, entity_name=entity.name))
    return terms


def find_entity_matches(
    content: str, term: str, case_insensitive: bool = True
) -> List[EntityMatch]:
    """Find word-boundary occurrences of ``term`` in ``content``.

    Terms that begin or end with a non-word character (``C++``, ``C#``)
    cannot satisfy the word boundary and never match.
    """
    if not term:
        return []

    flags = re.IGNORECASE if case_insensitive else 0
    pattern = re.compile(r"\b" + re.escape(term) + r"\b", flags)
    return [
        EntityMatch(start=m.start(), end=m.end(), matched=m.group(0))
        for m in pattern.finditer(content)
    ]


def _link_text(entity_name: str, matched: str) -> str:
    if matched.lower() == entity_name.lower():
        return f"[[{entity_name}]]"
    return f"[[{entity_name}|{matched}]]"


def apply_wikilinks(
    content: str,
    entities: Sequence[Entity],
    *,
    first_occurrence_only: bool = True,
    case_insensitive: bool = True,
) -> WikilinkResult:
    """Link entity mentions in a document.

    Matches inside protected zones are skipped. When candidates overlap,
    the earlier one wins and, at the same offset, the longer one wins.

    Args:
        content: Document text
        entities: Entity names or ``EntityWithAliases`` records
        first_occurrence_only: Link only the first eligible mention of each
            entity
        case_insensitive: Match terms regardless of case

    Returns:
        WikilinkResult with the rewritten content
    """
    if not content or not entities:
        return WikilinkResult(content=content)

    zones = get_protected_zones(content)

    candidates: List[_Candidate] = []
    for entity in entities:
        for search in get_search_terms(entity):
            if should_exclude_entity(search.entity_name) or should_exclude_entity(
                search.term
            ):
                continue
            for match in find_entity_matches(content, search.term, case_insensitive):
                if range_overlaps_protected_zone(match.start, match.end, zones):
                    continue
                candidates.append(
                    _Candidate(match.start, match.end, search.entity_name, match.matched)
                )

    candidates.sort(key=lambda c: (c.start, -(c.end - c.start)))

    accepted: List[_Candidate] = []
    linked: Set[str] = set()
    linked_order: List[str] = []
    for candidate in candidates:
        if accepted and range_overlaps(
            candidate.start, candidate.end, accepted[-1].start, accepted[-1].end
        ):
            continue
        if first_occurrence_only and candidate.entity_name in linked:
            continue
        accepted.append(candidate)
        if candidate.entity_name not in linked:
            linked.add(candidate.entity_name)
            linked_order.append(candidate.entity_name)

    if not accepted:
        return WikilinkResult(content=content)

    result = content
    for candidate in reversed(accepted):
        result = (
            result[: candidate.start]
            + _link_text(candidate.entity_name, candidate.matched)
            + result[candidate.end :]
        )

    logger.debug(
        "Inserted %d wikilinks for %d entities", len(accepted), len(linked_order)
    )
    return WikilinkResult(
        content=result, links_added=len(accepted), linked_entities=linked_order
    )
