from dataclasses import dataclass
from typing import Dict, NamedTuple, Optional

WIN_RATING_DELTA = 25
LOSS_RATING_DELTA = -15
DRAW_RATING_DELTA = 0


class MatchSide(NamedTuple):
    user_id: str
    username: str
    score: int


@dataclass(frozen=True)
class MatchResult:
    winner: Optional[MatchSide]
    player1: MatchSide
    player2: MatchSide
    rating_changes: Dict[str, int]

    @property
    def player1_score(self) -> int:
        return self.player1.score

    @property
    def player2_score(self) -> int:
        return self.player2.score

    def to_dict(self):
        return {
            'winner': self.winner.username if self.winner else None,
            'winnerId': self.winner.user_id if self.winner else None,
            'player1': self.player1.username,
            'player2': self.player2.username,
            'player1Id': self.player1.user_id,
            'player2Id': self.player2.user_id,
            'player1Score': self.player1_score,
            'player2Score': self.player2_score,
            'ratingChanges': dict(self.rating_changes),
        }


def score_match(player1: MatchSide, player2: MatchSide) -> MatchResult:
    """Decide a 1v1 match from the two final scores.

    Strictly higher score wins (+25 / -15); equal scores are a draw and
    nobody's rating moves. Flat deltas, independent of the rating gap.
    """
    if player1.score > player2.score:
        winner, loser = player1, player2
    elif player2.score > player1.score:
        winner, loser = player2, player1
    else:
        return MatchResult(
            winner=None,
            player1=player1,
            player2=player2,
            rating_changes={player1.user_id: DRAW_RATING_DELTA, player2.user_id: DRAW_RATING_DELTA},
        )
    return MatchResult(
        winner=winner,
        player1=player1,
        player2=player2,
        rating_changes={winner.user_id: WIN_RATING_DELTA, loser.user_id: LOSS_RATING_DELTA},
    )
