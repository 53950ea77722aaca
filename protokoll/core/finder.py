"""
Resilient entity lookup.

Finds an entity by free-text query, tolerating capitalization differences
and transcription typos. Matches on id and name; an exact id match always
wins, then exact name matches, then fuzzy matches by similarity.
"""

from typing import List, Literal, Sequence, Tuple, TypeVar

from rapidfuzz.distance import Levenshtein

from .context import ContextInstance
from .types import BaseEntity, Company, IgnoredTerm, Person, Project, Term

FUZZY_THRESHOLD = 0.7

MatchType = Literal["exact_name", "fuzzy_id", "fuzzy_name"]

T = TypeVar("T", bound=BaseEntity)


class NotFoundError(Exception):
    """Raised when no entity clears the match threshold."""

    def __init__(self, entity_type_name: str, query: str, candidates: Sequence[BaseEntity]):
        self.entity_type_name = entity_type_name
        self.query = query
        self.candidates = [(entity.id, entity.name) for entity in candidates]

        listing = "\n".join(f"  - {entity_id} ({name})" for entity_id, name in self.candidates)
        label = entity_type_name.lower()
        super().__init__(
            f'{entity_type_name} not found: "{query}"\n\n'
            f"Available {label}s:\n{listing}\n\n"
            f"Note: Matching is case-insensitive and supports fuzzy matching. "
            f"Try using the {label} ID or name exactly as shown above."
        )


def levenshtein_distance(first: str, second: str) -> int:
    """Case-insensitive edit distance."""
    return Levenshtein.distance(first.lower(), second.lower())


def similarity_score(first: str, second: str) -> float:
    """
    Normalized similarity in [0, 1] based on edit distance.

    1.0 means identical (including two empty strings), 0.0 completely different.
    """
    first, second = first.lower(), second.lower()
    max_length = max(len(first), len(second))
    if max_length == 0:
        return 1.0
    return 1 - Levenshtein.distance(first, second) / max_length


def find_entity_resilient(entities: Sequence[T], query: str, entity_type_name: str = "Entity") -> T:
    """
    Find the best entity for a query.

    Args:
        entities: Collection to search
        query: Free-text id or name, possibly misspelled
        entity_type_name: Label used in the error message (e.g. "Project")

    Returns:
        The matching entity

    Raises:
        NotFoundError: If nothing matches; lists every candidate id and name
    """
    query_lower = query.lower()
    matches: List[Tuple[T, float, MatchType]] = []

    for entity in entities:
        if entity.id.lower() == query_lower:
            return entity

        if entity.name.lower() == query_lower:
            matches.append((entity, 1.0, "exact_name"))
            continue

        id_similarity = similarity_score(query, entity.id)
        if id_similarity >= FUZZY_THRESHOLD:
            matches.append((entity, id_similarity, "fuzzy_id"))

        name_similarity = similarity_score(query, entity.name)
        if name_similarity >= FUZZY_THRESHOLD:
            matches.append((entity, name_similarity, "fuzzy_name"))

    if not matches:
        raise NotFoundError(entity_type_name, query, entities)

    # Exact names first, then best score; ties broken by id so the result does not depend on load order
    matches.sort(key=lambda match: (match[2] != "exact_name", -match[1], match[0].id.lower()))
    return matches[0][0]


def find_person(context: ContextInstance, query: str) -> Person:
    return find_entity_resilient(context.get_all_people(), query, "Person")


def find_project(context: ContextInstance, query: str) -> Project:
    return find_entity_resilient(context.get_all_projects(), query, "Project")


def find_company(context: ContextInstance, query: str) -> Company:
    return find_entity_resilient(context.get_all_companies(), query, "Company")


def find_term(context: ContextInstance, query: str) -> Term:
    return find_entity_resilient(context.get_all_terms(), query, "Term")


def find_ignored(context: ContextInstance, query: str) -> IgnoredTerm:
    return find_entity_resilient(context.get_all_ignored(), query, "Ignored term")
