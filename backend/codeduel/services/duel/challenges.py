import random
from typing import List, NamedTuple, Optional

from codeduel import db
from codeduel.models import Challenge

RANDOM_CHALLENGE = 'random'


class ChallengeInfo(NamedTuple):
    """Detached copy of a challenge row, safe to hand to worker threads."""
    id: str
    title: str
    difficulty: str
    points: int
    description: str
    requirements: str
    starter_code: str

    @classmethod
    def from_model(cls, challenge: Challenge) -> 'ChallengeInfo':
        return cls(
            id=challenge.id,
            title=challenge.title,
            difficulty=challenge.difficulty,
            points=int(challenge.points or 0),
            description=challenge.description or '',
            requirements=challenge.requirements or '',
            starter_code=challenge.starter_code or '',
        )

    def to_dict(self):
        return self._asdict()


class ChallengeCatalog:
    """Read-only view over the static challenge table.

    Lookups need an application context; socket handlers have one and the
    countdown worker pushes its own.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def get(self, challenge_id) -> Optional[ChallengeInfo]:
        if challenge_id is None:
            return None
        challenge = db.session.get(Challenge, str(challenge_id))
        return ChallengeInfo.from_model(challenge) if challenge else None

    def ids(self) -> List[str]:
        return [row[0] for row in db.session.query(Challenge.id).order_by(Challenge.id).all()]

    def all(self) -> List[ChallengeInfo]:
        return [ChallengeInfo.from_model(c) for c in Challenge.query.order_by(Challenge.id).all()]

    def exists(self, challenge_id) -> bool:
        return self.get(challenge_id) is not None

    def resolve(self, challenge_id) -> Optional[ChallengeInfo]:
        """Return the configured challenge, or a uniformly random one for
        ``"random"`` and for ids that no longer exist."""
        if challenge_id and challenge_id != RANDOM_CHALLENGE:
            challenge = self.get(challenge_id)
            if challenge is not None:
                return challenge
        ids = self.ids()
        if not ids:
            return None
        return self.get(self.rng.choice(ids))

    def difficulty_of(self, challenge_id) -> str:
        if challenge_id == RANDOM_CHALLENGE:
            return 'Random'
        challenge = self.get(challenge_id)
        return challenge.difficulty if challenge else 'Beginner'
