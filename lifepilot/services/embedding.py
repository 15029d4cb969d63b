"""
Bag-of-words pseudo-embeddings for the memory store.

Not a semantic model: the vector is the normalized frequency of the most
common words in the text, which is enough to rank a small memory corpus
without an embeddings API.
"""

import math
import re
from collections import Counter

DEFAULT_DIMENSIONS = 100

_WORD = re.compile(r"[^\W\d_]+(?:['-][^\W\d_]+)*")


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens. Digits and punctuation are separators."""
    return _WORD.findall((text or "").lower())


def embed(text: str, dimensions: int = DEFAULT_DIMENSIONS) -> list[float]:
    """
    Deterministic frequency vector of exactly `dimensions` floats in [0, 1].

    Top `dimensions` words by count (ties keep first-seen order), each count
    divided by the largest one, zero-padded at the end.
    """
    counts = Counter(tokenize(text))
    top = [count for _, count in counts.most_common(dimensions)]
    peak = max(top) if top else 1
    vector = [count / peak for count in top]
    return vector + [0.0] * (dimensions - len(vector))


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine over the shared prefix of both vectors. 0.0 if either is all zeros."""
    dim = min(len(a), len(b))
    dot = mag_a = mag_b = 0.0
    for i in range(dim):
        dot += a[i] * b[i]
        mag_a += a[i] * a[i]
        mag_b += b[i] * b[i]

    if mag_a == 0 or mag_b == 0:
        return 0.0
    return dot / (math.sqrt(mag_a) * math.sqrt(mag_b))


def is_usable(vector: list[float] | None) -> bool:
    return bool(vector) and any(v != 0 for v in vector)
