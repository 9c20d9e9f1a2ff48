import uuid

from flask import current_app

from pairplay import db
from pairplay.errors import NotFoundError
from pairplay.models import Game

BULLS_AND_COWS_ID = uuid.UUID('550e8400-e29b-41d4-a716-446655440001')

DEFAULT_GAMES = [
    {
        'id': BULLS_AND_COWS_ID,
        'name': 'Bulls and Cows',
        'description': "Set a secret 4-digit number and guess your partner's",
        'icon': '\U0001F3AF',
        'details': {'type': 'bulls_and_cows'},
    },
]


def list_games():
    return Game.query.order_by(Game.name.asc()).all()


def get_game(game_id) -> Game:
    game = db.session.get(Game, game_id)
    if not game:
        raise NotFoundError('Game not found')
    return game


def seed_games() -> int:
    """Insert any catalog entries that are missing. Existing rows are left alone."""
    added = 0
    for entry in DEFAULT_GAMES:
        if db.session.get(Game, entry['id']):
            continue
        db.session.add(Game(**dict(entry, details=dict(entry['details']))))
        added += 1
    db.session.commit()
    if added:
        current_app.logger.info(f"[catalog] seeded {added} game(s)")
    return added
