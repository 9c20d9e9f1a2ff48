"""Bulls and Cows rules.

Each partner commits a secret 4-digit number, then they take turns guessing
the other's. A guess scores *bulls* (right digit, right place) and *cows*
(right digit, wrong place). Four bulls wins.

The state lives in ``Play.play_data`` (schema version 1)::

    {
      "type": "bulls_and_cows", "version": 1,
      "status": "waiting_secrets" | "playing" | "completed",
      "partner1_secret": "1234" | null, "partner2_secret": ... ,
      "current_turn": "<user id>",
      "guesses": [{"player_id", "guess", "bulls", "cows", "timestamp"}],
      "winner_id": "<user id>"
    }

An empty document reads as a fresh game waiting for secrets. Every action
works on a copy and returns the new document; the input is never touched.
"""
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from pairplay.errors import StateConflictError, ValidationError

GAME_TYPE = 'bulls_and_cows'
SCHEMA_VERSION = 1
NUMBER_LENGTH = 4

WAITING_SECRETS = 'waiting_secrets'
PLAYING = 'playing'
COMPLETED = 'completed'


@dataclass
class GuessRecord:
    player_id: str
    guess: str
    bulls: int
    cows: int
    timestamp: str


@dataclass
class BullsAndCowsState:
    status: str = WAITING_SECRETS
    partner1_secret: Optional[str] = None
    partner2_secret: Optional[str] = None
    current_turn: Optional[str] = None
    guesses: List[GuessRecord] = field(default_factory=list)
    winner_id: Optional[str] = None

    @classmethod
    def from_play_data(cls, data: Optional[dict]) -> 'BullsAndCowsState':
        data = data or {}
        kind = data.get('type', GAME_TYPE)
        if kind != GAME_TYPE:
            raise StateConflictError(f"Play data belongs to '{kind}', not {GAME_TYPE}")
        if int(data.get('version', SCHEMA_VERSION)) > SCHEMA_VERSION:
            raise StateConflictError('Play data was written by a newer version of this game')
        return cls(
            status=data.get('status') or WAITING_SECRETS,
            partner1_secret=data.get('partner1_secret'),
            partner2_secret=data.get('partner2_secret'),
            current_turn=data.get('current_turn'),
            guesses=[GuessRecord(**g) for g in data.get('guesses') or []],
            winner_id=data.get('winner_id'),
        )

    def to_play_data(self) -> dict:
        data = {'type': GAME_TYPE, 'version': SCHEMA_VERSION}
        data.update(asdict(self))
        return data


@dataclass
class GuessResult:
    bulls: int
    cows: int

    @property
    def solved(self) -> bool:
        return self.bulls == NUMBER_LENGTH


def validate_number(value, label: str = 'secret') -> str:
    """Return ``value`` if it is a legal secret/guess, else raise naming the rule broken."""
    if not isinstance(value, str) or len(value) != NUMBER_LENGTH:
        raise ValidationError(f"{label} must be exactly {NUMBER_LENGTH} digits")
    if not all(ch in '0123456789' for ch in value):
        raise ValidationError(f"{label} must contain only digits")
    if value[0] == '0':
        raise ValidationError(f"{label} cannot start with 0")
    if len(set(value)) != NUMBER_LENGTH:
        raise ValidationError(f"{label} must have unique digits")
    return value


def score(secret: str, guess: str) -> Tuple[int, int]:
    """Count bulls and cows of ``guess`` against ``secret``.

    Cows are the multiset intersection of the digits left over once bulls
    are removed, so no digit is counted twice.
    """
    bulls = sum(1 for s, g in zip(secret, guess) if s == g)
    secret_rest = Counter(s for s, g in zip(secret, guess) if s != g)
    guess_rest = Counter(g for s, g in zip(secret, guess) if s != g)
    cows = sum((secret_rest & guess_rest).values())
    return bulls, cows


def _slot(player_id: str, partner1_id: str, partner2_id: str) -> int:
    if player_id == partner1_id:
        return 1
    if player_id == partner2_id:
        return 2
    raise StateConflictError('You are not part of this play')


class BullsAndCowsRules:
    game_type = GAME_TYPE

    def load(self, play_data) -> BullsAndCowsState:
        return BullsAndCowsState.from_play_data(play_data)

    def set_secret(self, play_data, partner1_id: str, partner2_id: str, player_id: str, secret) -> dict:
        secret = validate_number(secret, 'secret')
        state = self.load(play_data)
        slot = _slot(player_id, partner1_id, partner2_id)

        if state.status != WAITING_SECRETS:
            raise StateConflictError('Secrets can only be set before the game starts')
        own_key = f"partner{slot}_secret"
        if getattr(state, own_key):
            raise StateConflictError('You have already set your secret')

        setattr(state, own_key, secret)
        if state.partner1_secret and state.partner2_secret:
            state.status = PLAYING
            state.current_turn = partner1_id
            state.guesses = []
        return state.to_play_data()

    def make_guess(self, play_data, partner1_id: str, partner2_id: str, player_id: str, guess,
                   now: Optional[datetime] = None) -> Tuple[dict, GuessResult]:
        guess = validate_number(guess, 'guess')
        state = self.load(play_data)
        slot = _slot(player_id, partner1_id, partner2_id)

        if state.status != PLAYING:
            raise StateConflictError('Game is not in playing state')
        if state.current_turn != player_id:
            raise StateConflictError("It's not your turn")
        opponent_secret = state.partner2_secret if slot == 1 else state.partner1_secret
        if not opponent_secret:
            raise StateConflictError('Opponent has not set their secret yet')

        bulls, cows = score(opponent_secret, guess)
        result = GuessResult(bulls=bulls, cows=cows)
        stamp = (now or datetime.now(timezone.utc)).isoformat()
        state.guesses.append(GuessRecord(player_id=player_id, guess=guess, bulls=bulls, cows=cows, timestamp=stamp))

        if result.solved:
            state.status = COMPLETED
            state.winner_id = player_id
        else:
            state.current_turn = partner2_id if slot == 1 else partner1_id
        return state.to_play_data(), result

    def redact(self, play_data, partner1_id: str, partner2_id: str, viewer_id: str) -> dict:
        """Hide the opponent's secret from ``viewer_id`` until the game is over."""
        data = dict(play_data or {})
        if not data or data.get('status') == COMPLETED:
            return data
        if viewer_id == partner1_id:
            data['partner2_secret'] = None
        elif viewer_id == partner2_id:
            data['partner1_secret'] = None
        else:
            data['partner1_secret'] = None
            data['partner2_secret'] = None
        return data
