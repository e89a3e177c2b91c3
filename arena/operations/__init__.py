"""
Operations Layer

This package provides business logic operations that compose repository
methods into validated, transactional workflows. Operations modules handle
multi-step transactions, validation, and business rules while maintaining
clean separation of concerns.

Architecture:
- Database layer: Models, engine and per-entity repositories
- Operations layer: Business logic composition and workflows
- Services layer: Read-side aggregation (proficiency)

Each operations module focuses on a specific domain:
- PhaseOperations: Phase lifecycle, status refresh and the timeline
- CompetitionOperations: Competitions and registrations
- PlayerOperations: Player lifecycle
- TeamOperations: Teams, membership and captain assignment
- ScoringOperations: Self-scores and peer ratings
- CaptainVotingOperations: Captain votes, tallies and conclusion
- PlayerRemovalOperations: Transactional removal of a player from a competition
"""
