"""
Relevance Ranking for Keyword Context
=====================================

Ranks files for a query when no embedding index is available. The only
input is how often each extracted term matched in each file, as reported
by the host's symbol/keyword search.

Scoring System:
--------------
    idf(t)      = ln(total_files) - ln(term_total_files[t])
                  (1 when the term matched no file at all)
    weight(t)   = symbol weight: 10 for mixed-case terms, 1 otherwise
    contrib(f,t)= 0                                 if count[f][t] == 0
                  idf(t) * (log10(weight(t)) + 1)   otherwise
    score(f)    = sum of contrib(f, t) over all terms

Files are sorted by descending score. Ties keep the order in which the
search first reported the file.

The idf of 1 for a term with no matching files only avoids ln(0); it is a
heuristic, not a smoothing scheme. It never reaches a score, because a
term that matched nothing contributes 0 to every file.
"""

from __future__ import annotations

import math
from typing import Callable, Mapping, Sequence

import structlog

from .models import FileMatches, RankedFile

logger = structlog.get_logger(__name__)

SYMBOL_TERM_WEIGHT = 10.0
PLAIN_TERM_WEIGHT = 1.0

# Idf used for a term that matched no file.
MISSING_TERM_IDF = 1.0

TermWeight = Callable[[str], float]


def symbol_weight(term: str) -> float:
    """
    Heuristic weight favoring identifier-looking terms.

    Terms containing both upper- and lower-case letters (``parseJSON``,
    ``TokenCounter``) are likely symbol names and weigh more than plain
    words.
    """
    has_upper = any(ch.isupper() for ch in term)
    has_lower = any(ch.islower() for ch in term)
    return SYMBOL_TERM_WEIGHT if has_upper and has_lower else PLAIN_TERM_WEIGHT


# =============================================================================
# FOLD - Per-term search results into a match matrix
# =============================================================================


def fold_file_matches(
    terms: Sequence[str],
    per_term_counts: Sequence[Mapping[str, int]],
) -> FileMatches:
    """
    Merge independent per-term ``file -> count`` maps.

    ``per_term_counts[i]`` belongs to ``terms[i]``. Matrix insertion order
    follows term order, then the order each search reported files; the
    ranker's tie-breaking relies on it.

    Returns:
        The match matrix, distinct-file count per term, and the sum of
        those counts over all terms
    """
    if len(terms) != len(per_term_counts):
        raise ValueError(
            f"Got {len(per_term_counts)} search results for {len(terms)} terms"
        )

    file_term_counts: dict[str, dict[str, int]] = {}
    term_total_files: dict[str, int] = {}
    total_files = 0

    for term, file_counts in zip(terms, per_term_counts):
        matched = {name: count for name, count in file_counts.items() if count > 0}
        term_total_files[term] = len(matched)
        total_files += len(matched)
        for filename, count in matched.items():
            file_term_counts.setdefault(filename, {})[term] = count

    return FileMatches(
        file_term_counts=file_term_counts,
        term_total_files=term_total_files,
        total_files=total_files,
    )


# =============================================================================
# SCORING
# =============================================================================


def idf(term_total_files: Mapping[str, int], total_files: int) -> dict[str, float]:
    """
    Inverse document frequency per term.

    Rarer terms weigh more. A term that matched no file gets
    MISSING_TERM_IDF. Inconsistent inputs (more files for a term than in
    total) are clamped to 0 so scores stay non-negative.
    """
    result: dict[str, float] = {}
    for term, count in term_total_files.items():
        if count <= 0 or total_files <= 0:
            result[term] = MISSING_TERM_IDF
            continue
        result[term] = max(0.0, math.log(total_files) - math.log(count))
    return result


def idf_log_score(
    terms: Sequence[str],
    term_counts: Mapping[str, int],
    idf_by_term: Mapping[str, float],
    term_weight: TermWeight = symbol_weight,
) -> tuple[float, dict[str, float]]:
    """
    Score one file.

    Args:
        terms: All extracted terms
        term_counts: term -> match count for this file
        idf_by_term: Output of ``idf()``
        term_weight: Symbol weight function

    Returns:
        Tuple of (score, per-term contribution)
    """
    score = 0.0
    components: dict[str, float] = {}
    for term in terms:
        count = term_counts.get(term, 0)
        if count <= 0:
            components[term] = 0.0
            continue
        log_score = max(0.0, math.log10(term_weight(term)) + 1)
        contribution = idf_by_term.get(term, MISSING_TERM_IDF) * log_score
        components[term] = contribution
        score += contribution
    return score, components


def rank_files(
    terms: Sequence[str],
    matches: FileMatches,
    term_weight: TermWeight = symbol_weight,
) -> list[RankedFile]:
    """
    Rank every matched file by IDF-weighted keyword score.

    Returns:
        All files, highest score first; equal scores keep matrix order
    """
    idf_by_term = idf(matches.term_total_files, matches.total_files)

    ranked: list[RankedFile] = []
    for filename, term_counts in matches.file_term_counts.items():
        score, components = idf_log_score(terms, term_counts, idf_by_term, term_weight)
        ranked.append(RankedFile(filename=filename, score=score, score_components=components))

    ranked.sort(key=lambda item: item.score, reverse=True)

    logger.debug(
        "files_ranked",
        term_count=len(terms),
        file_count=len(ranked),
        total_files=matches.total_files,
        top_files=[item.filename for item in ranked[:5]],
    )
    return ranked


def select_for_context(ranked: Sequence[RankedFile], top_k: int) -> list[RankedFile]:
    """
    Top ``top_k`` files, reversed.

    The most relevant file comes last so its snippet lands closest to the
    human question in the final prompt.
    """
    if top_k <= 0:
        return []
    return list(reversed(ranked[:top_k]))
