"""
Keyword extraction and vector similarity utilities.

All functions here are pure and total: malformed URLs contribute nothing
instead of raising.
"""

import math
import re
from typing import Iterable, Mapping, Sequence
from urllib.parse import urlparse

import numpy as np

from tabgraph_router.graph.models import Tab

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
    "be", "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "can", "this", "that", "these", "those",
})

MAX_VECTOR_TERMS = 50

_NON_ALNUM = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def is_stop_word(word: str) -> bool:
    return word.lower() in STOP_WORDS


def _url_path_words(url: str) -> list[str]:
    try:
        parsed = urlparse(url)
    except ValueError:
        return []
    if not parsed.scheme or not parsed.netloc:
        return []

    words = []
    for part in parsed.path.split("/"):
        if len(part) <= 2:
            continue
        for word in _NON_ALNUM.sub(" ", part).lower().split():
            if len(word) > 3:
                words.append(word)
    return words


def extract_keywords(tab: Tab) -> list[str]:
    """
    Extract deduplicated keywords from a tab's title, URL path and domain.

    Args:
        tab: Tab to analyse

    Returns:
        Keywords in first-seen order
    """
    words = [
        w for w in tab.title.lower().split()
        if len(w) > 3 and not is_stop_word(w)
    ]
    words.extend(_url_path_words(tab.url))
    if tab.domain:
        words.extend(p for p in tab.domain.split(".") if len(p) > 2 and p != "www")

    return list(dict.fromkeys(words))


def tfidf_vector(
    keywords: Sequence[str],
    total_docs: int,
    document_frequencies: Mapping[str, int],
) -> dict[str, float]:
    """
    Build an L2-normalized sparse TF-IDF vector.

    Args:
        keywords: Keyword list of one document (may contain repeats)
        total_docs: Number of documents in the corpus
        document_frequencies: keyword -> number of documents containing it

    Returns:
        keyword -> weight for at most the first 50 distinct keywords; all
        weights are 0 when the vector has no magnitude
    """
    if not keywords:
        return {}

    terms = list(dict.fromkeys(keywords))[:MAX_VECTOR_TERMS]
    counts = {term: 0 for term in terms}
    for keyword in keywords:
        if keyword in counts:
            counts[keyword] += 1

    values = []
    for term in terms:
        tf = counts[term] / len(keywords)
        df = document_frequencies.get(term) or 1
        idf = math.log(total_docs / df) if total_docs > 0 else 0.0
        values.append(tf * max(idf, 0.0))

    vec = np.array(values, dtype=float)
    norm = np.linalg.norm(vec)
    if norm > 0:
        vec = vec / norm
    return {term: float(v) for term, v in zip(terms, vec)}


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two dense vectors.

    Returns:
        Similarity in [-1, 1]; 0.0 for mismatched lengths, empty or zero vectors
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    vec1 = np.asarray(a, dtype=float)
    vec2 = np.asarray(b, dtype=float)

    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    sim = float(np.dot(vec1, vec2) / (norm1 * norm2))
    return max(-1.0, min(1.0, sim))


def sparse_cosine_similarity(a: Mapping[str, float], b: Mapping[str, float]) -> float:
    """Cosine similarity of two sparse keyword vectors aligned on their joint vocabulary."""
    if not a or not b:
        return 0.0
    vocab = sorted(set(a) | set(b))
    return cosine_similarity(
        [a.get(term, 0.0) for term in vocab],
        [b.get(term, 0.0) for term in vocab],
    )


def keyword_overlap(a: Iterable[str], b: Iterable[str]) -> float:
    """Jaccard index of two keyword collections (0.0 when both are empty)."""
    set1 = set(a)
    set2 = set(b)
    union = len(set1 | set2)
    if union == 0:
        return 0.0
    return len(set1 & set2) / union
