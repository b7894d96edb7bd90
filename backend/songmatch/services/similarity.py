from __future__ import annotations

from typing import Callable, Sequence, Tuple

from ..catalog.types import AudioFeatures, Track

HIGH_WEIGHT = 1.5
MEDIUM_WEIGHT = 1.0
LOW_WEIGHT = 0.5

EXPLICIT_MISMATCH_PENALTY = 0.3
SAME_GENRE_BONUS = 0.1
SHARED_ARTIST_BONUS = 0.05

_Getter = Callable[[Track, AudioFeatures], float]

# (name, weight, getter). Explicit mismatch is the only categorical term and is
# added on its own in base_score().
FEATURE_WEIGHTS: Sequence[Tuple[str, float, _Getter]] = (
    ("energy", HIGH_WEIGHT, lambda t, f: f.energy),
    ("danceability", HIGH_WEIGHT, lambda t, f: f.danceability),
    ("valence", HIGH_WEIGHT, lambda t, f: f.valence),
    ("tempo", HIGH_WEIGHT, lambda t, f: f.tempo),
    ("acousticness", MEDIUM_WEIGHT, lambda t, f: f.acousticness),
    ("loudness", MEDIUM_WEIGHT, lambda t, f: f.loudness),
    ("instrumentalness", MEDIUM_WEIGHT, lambda t, f: f.instrumentalness),
    ("duration_ms", LOW_WEIGHT, lambda t, f: t.duration_ms),
    ("speechiness", LOW_WEIGHT, lambda t, f: f.speechiness),
    ("liveness", LOW_WEIGHT, lambda t, f: f.liveness),
    ("key", LOW_WEIGHT, lambda t, f: f.key),
    ("mode", LOW_WEIGHT, lambda t, f: f.mode),
    ("time_signature", LOW_WEIGHT, lambda t, f: f.time_signature),
)

TOTAL_WEIGHT = sum(weight for _, weight, _ in FEATURE_WEIGHTS) + MEDIUM_WEIGHT


def distance(a: float, b: float) -> float:
    """Distance between two values of one feature dimension.

    Unit-interval features use the plain absolute difference. Anything else
    (tempo, loudness, duration, key) is measured relative to the larger
    magnitude so those fields cannot swamp the unit-interval ones.
    """
    if a == 0 and b == 0:
        return 0.0
    if 0 <= a <= 1 and 0 <= b <= 1:
        return abs(a - b)
    return abs(a - b) / max(abs(a), abs(b), 1)


def base_score(reference: Track, candidate: Track) -> float:
    ref_features = reference.audio_features
    cand_features = candidate.audio_features
    if ref_features is None or cand_features is None:
        raise ValueError("both tracks need audio features to be compared")

    total = 0.0
    for _name, weight, getter in FEATURE_WEIGHTS:
        total += distance(getter(reference, ref_features), getter(candidate, cand_features)) * weight
    if reference.explicit != candidate.explicit:
        total += EXPLICIT_MISMATCH_PENALTY * MEDIUM_WEIGHT
    return total / TOTAL_WEIGHT


def compare(reference: Track, candidate: Track) -> float:
    """Similarity score between two tracks; lower is more similar.

    Not bounded above by 1: the relative terms for tempo and loudness can
    exceed it for very different tracks.
    """
    score = base_score(reference, candidate)
    if reference.same_genre(candidate):
        return max(0.0, score - SAME_GENRE_BONUS)
    if reference.shares_artist(candidate):
        return max(0.0, score - SHARED_ARTIST_BONUS)
    return score
