from typing import Dict, List, Sequence, Tuple

from arena.data_models.voting import CandidateTally
from arena.utils.proficiency import round_half_up


class VoteCounter:
    """Pure captain vote counting, independent of storage"""

    @staticmethod
    def count(members: Sequence[Tuple[int, str]],
              votes: Sequence[Tuple[int, int]],
              candidate_names: Dict[int, str] = None) -> List[CandidateTally]:
        """
        Rank captain candidates by vote count

        Args:
            members: (player_id, display_name) for each current member, in join order
            votes: (voter_id, captain_id) for each stored vote, in insertion order
            candidate_names: Display names for candidates who are no longer members

        Returns:
            Every member (zero votes allowed) followed by non-member candidates in
            first-vote order, stably sorted by vote count descending
        """
        candidate_names = candidate_names or {}
        counts: Dict[int, int] = {}
        for _, captain_id in votes:
            counts[captain_id] = counts.get(captain_id, 0) + 1

        tallies = [
            CandidateTally(player_id=player_id, display_name=name, vote_count=counts.get(player_id, 0))
            for player_id, name in members
        ]

        member_ids = {player_id for player_id, _ in members}
        seen = set()
        for _, captain_id in votes:
            if captain_id in member_ids or captain_id in seen:
                continue
            seen.add(captain_id)
            tallies.append(CandidateTally(
                player_id=captain_id,
                display_name=candidate_names.get(captain_id, f"Player {captain_id}"),
                vote_count=counts[captain_id],
                is_member=False
            ))

        # sorted() is stable, so ties keep member order
        return sorted(tallies, key=lambda tally: tally.vote_count, reverse=True)

    @staticmethod
    def distinct_voters(votes: Sequence[Tuple[int, int]]) -> int:
        return len({voter_id for voter_id, _ in votes})

    @staticmethod
    def voting_percentage(voters_distinct: int, total_members: int) -> int:
        if total_members == 0:
            return 0
        return round_half_up(voters_distinct / total_members * 100)
