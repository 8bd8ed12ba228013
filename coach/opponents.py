"""Opponent personas keyed by engine strength."""

from __future__ import annotations

from coach.models import OpponentProfile

# Strengths offered to players when choosing an opponent
SUPPORTED_STRENGTHS = [100, 400, 600, 800, 1000, 1200]

_PROFILES = {
    100: OpponentProfile(
        name="Pawnstorm Pete",
        style="chaotic",
        description="Pushes pawns everywhere and forgets about his king.",
    ),
    400: OpponentProfile(
        name="Rookie Rita",
        style="aggressive",
        description="Loves early queen attacks and quick checks.",
    ),
    600: OpponentProfile(
        name="Bishop Boris",
        style="positional",
        description="Develops slowly and aims long diagonals at your king.",
    ),
    800: OpponentProfile(
        name="Knightly Nora",
        style="tactical",
        description="Hunts for forks and pins in every position.",
    ),
    1000: OpponentProfile(
        name="Castle Carl",
        style="solid",
        description="Castles early, trades when ahead and rarely blunders.",
    ),
    1200: OpponentProfile(
        name="Grandmaster Gwen",
        style="universal",
        description="Balanced play with a sharp eye for endgames.",
    ),
}


class OpponentDirectory:
    """Looks up the persona for a strength, using the nearest configured band."""

    async def profile(self, strength: int) -> OpponentProfile:
        nearest = min(_PROFILES, key=lambda elo: (abs(elo - strength), elo))
        base = _PROFILES[nearest]
        return OpponentProfile(
            name=base.name,
            style=base.style,
            description=base.description,
            elo=strength,
        )
