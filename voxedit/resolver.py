"""Node resolver: map a free-text target onto elements of a tree snapshot.

Matching is substring and keyword based only, with no edit distance and
no diacritic folding, so a ranking can always be explained in one sentence
to the language model that produced the target string.

Scoring, per element with a non-empty name (all comparisons lower-case):

  * full name equals the search string       → 1000, nothing else counts
  * name contains the whole search string    → +100
  * name contains every search word          → +50
  * each search word found in the name       → +10
  * keyword in both search and name          → +20 per keyword
    (``button``, ``header``, ``text``; ``image`` matches ``image``/``img``)

Results are sorted by descending score; equal scores keep depth-first
pre-order (parent before children, children in order).
"""

from __future__ import annotations

from typing import Iterable, Iterator, NamedTuple, Union

from voxedit.models import Element

EXACT_MATCH_SCORE = 1000
CONTAINS_SCORE = 100
ALL_WORDS_SCORE = 50
WORD_SCORE = 10
KEYWORD_SCORE = 20

# Depth of the traversal used for candidate suggestions and context payloads
CANDIDATE_DEPTH_LIMIT = 5
MAX_SUGGESTIONS = 5

# search keyword → name fragments that earn the keyword boost
_KEYWORD_BOOSTS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("button", ("button",)),
    ("header", ("header",)),
    ("text", ("text",)),
    ("image", ("image", "img")),
)

Tree = Union[Element, Iterable[Element]]


class Match(NamedTuple):
    element: Element
    score: int


def _roots(tree: Tree) -> list[Element]:
    if isinstance(tree, Element):
        return [tree]
    return list(tree)


def iter_elements(tree: Tree) -> Iterator[Element]:
    """Yield every element depth-first, parent before children."""
    stack = list(reversed(_roots(tree)))
    while stack:
        element = stack.pop()
        yield element
        if element.children:
            stack.extend(reversed(element.children))


def score_name(name: str, search: str) -> int:
    """Score one element name against a search string (0 = no match)."""
    name_lower = name.lower()
    search_lower = search.lower()
    words = search_lower.split()
    if not name_lower or not words:
        return 0

    if name_lower == search_lower:
        return EXACT_MATCH_SCORE

    score = 0
    if search_lower in name_lower:
        score += CONTAINS_SCORE
    if all(word in name_lower for word in words):
        score += ALL_WORDS_SCORE
    score += WORD_SCORE * sum(1 for word in words if word in name_lower)

    for keyword, fragments in _KEYWORD_BOOSTS:
        if keyword in search_lower and any(f in name_lower for f in fragments):
            score += KEYWORD_SCORE
    return score


def find_matches(target: str, tree: Tree) -> list[Match]:
    """Return scored matches for *target*, best first."""
    matches = [
        Match(element, score)
        for element in iter_elements(tree)
        if element.name and (score := score_name(element.name, target)) > 0
    ]
    # sorted() is stable, so ties keep traversal order
    return sorted(matches, key=lambda m: m.score, reverse=True)


def resolve(target: str, tree: Tree) -> list[Element]:
    """Return the elements matching *target*, most relevant first."""
    return [m.element for m in find_matches(target, tree)]


def collect_candidates(
    tree: Tree,
    max_depth: int = CANDIDATE_DEPTH_LIMIT,
) -> list[dict[str, str]]:
    """Return ``{id, name, type}`` for named elements above *max_depth*.

    The roots sit at depth 0; elements at depth ``max_depth`` and below are
    neither listed nor descended into.
    """
    out: list[dict[str, str]] = []

    def _walk(element: Element, depth: int) -> None:
        if depth >= max_depth:
            return
        if element.name:
            out.append(element.summary())
        for child in element.children or ():
            _walk(child, depth + 1)

    for root in _roots(tree):
        _walk(root, 0)
    return out


def suggest_names(tree: Tree, limit: int = MAX_SUGGESTIONS) -> list[str]:
    """A handful of element names to offer when a target matched nothing."""
    return [c["name"] for c in collect_candidates(tree)[:limit]]


def count_elements(tree: Tree) -> int:
    return sum(1 for _ in iter_elements(tree))
