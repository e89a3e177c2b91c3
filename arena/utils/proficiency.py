import math
from typing import Dict, Iterable, List, Mapping, Optional

from arena.constants import ScoringConstants


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up (2.5 -> 3, -2.5 -> -2)"""
    return int(math.floor(value + 0.5))


class ProficiencyCalculator:
    """Handles proficiency aggregation from self-scores and peer ratings"""

    @staticmethod
    def is_valid_rating(value) -> bool:
        """A usable category rating: a real number on the 1-5 scale"""
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if isinstance(value, float) and math.isnan(value):
            return False
        return ScoringConstants.MIN_CATEGORY_SCORE <= value <= ScoringConstants.MAX_CATEGORY_SCORE

    @staticmethod
    def record_mean(scores: Mapping) -> Optional[float]:
        """
        Mean of the valid category ratings in one score map

        Invalid entries are skipped; a map without any valid entry has no mean.
        """
        values = [value for value in scores.values() if ProficiencyCalculator.is_valid_rating(value)]
        if not values:
            return None
        return sum(values) / len(values)

    @staticmethod
    def count_valid(records: Iterable[Mapping]) -> int:
        """Number of records with at least one valid rating"""
        return sum(1 for record in records if ProficiencyCalculator.record_mean(record) is not None)

    @staticmethod
    def mean_of_means(records: Iterable[Mapping]) -> Optional[float]:
        """
        Average of the per-record means

        Each record weighs the same regardless of how many categories it rates.
        Returns None when no record contributes a mean.
        """
        means = [m for m in (ProficiencyCalculator.record_mean(r) for r in records) if m is not None]
        if not means:
            return None
        return sum(means) / len(means)

    @staticmethod
    def combine(self_avg: Optional[float], peer_avg: Optional[float]) -> Optional[float]:
        """Weighted blend of the self and peer averages on the 1-5 scale"""
        if self_avg is not None and peer_avg is not None:
            return (ScoringConstants.SELF_SCORE_WEIGHT * self_avg
                    + ScoringConstants.PEER_RATING_WEIGHT * peer_avg)
        if self_avg is not None:
            return self_avg
        return peer_avg

    @staticmethod
    def to_score(combined: float) -> int:
        """Scale a 1-5 value to the 0-100 proficiency range"""
        score = round_half_up(combined / ScoringConstants.MAX_CATEGORY_SCORE * 100)
        return max(ScoringConstants.MIN_PROFICIENCY, min(ScoringConstants.MAX_PROFICIENCY, score))

    @staticmethod
    def calculate(self_records: Iterable[Mapping], peer_records: Iterable[Mapping],
                  fallback: int = 0) -> int:
        """
        Calculate a player's proficiency score

        Args:
            self_records: Score maps from the player's self-assessments
            peer_records: Score maps from ratings the player received
            fallback: Returned unchanged when neither side has any valid rating

        Returns:
            Proficiency score in [0, 100]
        """
        combined = ProficiencyCalculator.combine(
            ProficiencyCalculator.mean_of_means(self_records),
            ProficiencyCalculator.mean_of_means(peer_records)
        )
        if combined is None:
            return fallback
        return ProficiencyCalculator.to_score(combined)

    @staticmethod
    def category_breakdown(self_records: Iterable[Mapping],
                           peer_records: Iterable[Mapping]) -> List[Dict]:
        """
        Per-category proficiency as a list of {"name", "score"} sorted by name

        Each category uses the same self/peer weighting as the overall score,
        applied to that category's ratings only.
        """
        def collect(records) -> Dict[str, List[float]]:
            values: Dict[str, List[float]] = {}
            for record in records:
                for name, value in record.items():
                    if ProficiencyCalculator.is_valid_rating(value):
                        values.setdefault(name, []).append(value)
            return values

        self_values = collect(self_records)
        peer_values = collect(peer_records)

        breakdown = []
        for name in sorted(set(self_values) | set(peer_values)):
            self_avg = sum(self_values[name]) / len(self_values[name]) if name in self_values else None
            peer_avg = sum(peer_values[name]) / len(peer_values[name]) if name in peer_values else None
            combined = ProficiencyCalculator.combine(self_avg, peer_avg)
            breakdown.append({'name': name, 'score': ProficiencyCalculator.to_score(combined)})
        return breakdown
