from __future__ import annotations

from typing import Sequence

import numpy as np

from ..catalog.types import FEATURE_FIELDS, AudioFeatures, Track

IDEAL_TRACK_ID = "ideal"
IDEAL_TRACK_NAME = "Ideal Track"
IDEAL_POPULARITY = 50

_ROUNDED_FIELDS = {"key", "mode", "time_signature"}


def build_reference(tracks: Sequence[Track]) -> Track:
    """Average a set of liked tracks into one synthetic reference.

    Only tracks with audio features contribute. The result has no genre and
    no artists, so neither similarity bonus applies to it.
    """
    featured = [track for track in tracks if track.audio_features is not None]
    if not featured:
        return Track(track_id=IDEAL_TRACK_ID, name=IDEAL_TRACK_NAME, popularity=IDEAL_POPULARITY)

    matrix = np.array(
        [[float(getattr(track.audio_features, name)) for name in FEATURE_FIELDS] for track in featured],
        dtype=np.float64,
    )
    means = matrix.mean(axis=0)
    values = {
        name: int(round(float(mean))) if name in _ROUNDED_FIELDS else float(mean)
        for name, mean in zip(FEATURE_FIELDS, means)
    }
    durations = np.array([track.duration_ms for track in featured], dtype=np.float64)
    explicit_share = float(np.mean([1.0 if track.explicit else 0.0 for track in featured]))

    return Track(
        track_id=IDEAL_TRACK_ID,
        name=IDEAL_TRACK_NAME,
        popularity=IDEAL_POPULARITY,
        duration_ms=int(round(float(durations.mean()))),
        explicit=explicit_share > 0.5,
        audio_features=AudioFeatures(**values),
    )
