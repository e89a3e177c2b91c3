"""
Engine-wide constants for the competition arena.

This module contains the numeric contract of the scoring engine and the
display vocabulary used by the phase timeline. These values are part of the
reproducible scoring semantics and are deliberately not configurable.
"""

class ScoringConstants:
    """Constants related to proficiency aggregation."""

    # Category ratings are integers on a closed 1-5 scale
    MIN_CATEGORY_SCORE = 1
    MAX_CATEGORY_SCORE = 5

    # Weighting of self-assessment vs peer consensus (must sum to 1.0)
    SELF_SCORE_WEIGHT = 0.3
    PEER_RATING_WEIGHT = 0.7

    # Proficiency is reported on a 0-100 scale
    MIN_PROFICIENCY = 0
    MAX_PROFICIENCY = 100

class TimelineConstants:
    """Constants for the competition timeline view."""

    # Display status for each stored phase status
    DISPLAY_COMPLETED = "completed"
    DISPLAY_ACTIVE = "active"
    DISPLAY_UPCOMING = "upcoming"

    # Synthetic entry shown for a competition without phases
    DEFAULT_PHASE_NAME = "Competition Period"
    DEFAULT_PHASE_DESCRIPTION = "The full competition timeline"
