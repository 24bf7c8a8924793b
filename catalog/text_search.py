"""Query tokenizing and relevance scoring for product full-text search.

Both backends search the same two fields. The SQLite backend delegates
matching and ranking to its FTS5 index; the Cosmos DB backend only
pre-filters in the database and scores the candidates here.
"""

import re
from typing import Iterable, List, Mapping

SEARCH_FIELDS = ("name", "description")

_TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> List[str]:
    """Split text into lower-cased word tokens."""
    return [token.lower() for token in _TOKEN_PATTERN.findall(text or "")]


def tokenize_query(query: str) -> List[str]:
    """Split a search query into unique lower-cased terms, keeping their order."""
    seen: dict[str, None] = {}
    for token in tokenize(query):
        seen.setdefault(token, None)
    return list(seen)


def build_fts_query(terms: Iterable[str]) -> str:
    """Build an FTS5 MATCH expression OR-ing each term as a quoted string."""
    # Quoting keeps FTS5 operators (AND, NEAR, -, *) in user input literal
    return " OR ".join('"' + term.replace('"', '""') + '"' for term in terms)


def relevance_score(terms: Iterable[str], fields: Mapping[str, str]) -> float:
    """
    Score a document against query terms.

    For every field and every term that occurs in it as a whole token, adds
    ``0.5 + 0.5 * freq / num_tokens``. Shorter fields with repeated hits
    therefore rank higher.

    Args:
        terms: Lower-cased query terms.
        fields: Field name to text, e.g. {"name": ..., "description": ...}.

    Returns:
        The score; 0.0 when no term matches.
    """
    terms = list(terms)
    score = 0.0
    for text in fields.values():
        tokens = tokenize(text)
        if not tokens:
            continue
        for term in terms:
            freq = tokens.count(term)
            if freq:
                score += 0.5 + 0.5 * freq / len(tokens)
    return score
