"""Play session store.

A Play holds the live (or ended) state of one two-player game instance.
Only partner1 or partner2 may read or change it; callers check that with
``authorize`` before touching a play. Writes go through the mapper's
``version_id`` check, so a concurrent change surfaces as a conflict instead
of a lost update.
"""
from flask import current_app

from pairplay import db
from pairplay.errors import AuthorizationError, NotFoundError, StateConflictError
from pairplay.models import Play, canonical_pair, utcnow
from pairplay.services.games import rules_for
from pairplay.services.games.bulls_and_cows import GAME_TYPE as BULLS_AND_COWS
from pairplay.services.storage import commit

STALE_PLAY = 'The game changed while you were playing; reload and try again'


def get_play(play_id) -> Play:
    play = db.session.get(Play, play_id)
    if not play:
        raise NotFoundError('Play not found')
    return play


def authorize(play: Play, user_id) -> None:
    if not play.has_player(user_id):
        raise AuthorizationError('You are not part of this play')


def find_live_by_partners(a, b, game_id):
    low, high = canonical_pair(a, b)
    return Play.query.filter_by(pair_low=low, pair_high=high, game_id=game_id, is_live=True).first()


def create_play(game_id, partner1_id, partner2_id, autocommit=True) -> Play:
    play = Play(game_id=game_id, partner1_id=partner1_id, partner2_id=partner2_id, play_data={}, is_live=True)
    db.session.add(play)
    if autocommit:
        commit('A live game already exists for this pair')
        current_app.logger.info(f"[play-created] play={play.id} game={game_id}")
    return play


def update_play(play: Play, play_data: dict, is_live=None) -> Play:
    play.play_data = play_data
    if is_live is not None:
        play.is_live = is_live
    commit(STALE_PLAY)
    return play


def end_live(play_id) -> Play:
    play = get_play(play_id)
    if play.is_live:
        play.is_live = False
        commit(STALE_PLAY)
        current_app.logger.info(f"[play-ended] play={play.id}")
    return play


def end_all_live_by_partners(a, b, autocommit=True) -> int:
    """End every live play of the unordered pair, whatever the game."""
    low, high = canonical_pair(a, b)
    ended = Play.query.filter_by(pair_low=low, pair_high=high, is_live=True).update(
        {
            Play.is_live: False,
            Play.version_id: Play.version_id + 1,
            Play.updated_at: utcnow(),
        },
        synchronize_session='fetch',
    )
    if autocommit:
        commit(STALE_PLAY)
    if ended:
        current_app.logger.info(f"[play-superseded] ended {ended} live play(s) for pair {low}/{high}")
    return ended


def serialize_play(play: Play, viewer_id) -> dict:
    rules = rules_for(play.game)
    data = play.play_data or {}
    if rules is not None:
        data = rules.redact(data, str(play.partner1_id), str(play.partner2_id), str(viewer_id))
    return play.to_dict(play_data=data)


def _bulls_and_cows(play: Play):
    rules = rules_for(play.game)
    if rules is None or rules.game_type != BULLS_AND_COWS:
        raise StateConflictError('This action is not available for this game')
    return rules


def set_secret(play_id, user_id, secret) -> Play:
    play = get_play(play_id)
    authorize(play, user_id)
    rules = _bulls_and_cows(play)
    new_data = rules.set_secret(play.play_data, str(play.partner1_id), str(play.partner2_id), str(user_id), secret)
    update_play(play, new_data)
    current_app.logger.info(f"[secret-set] play={play.id} player={user_id} status={new_data['status']}")
    return play


def make_guess(play_id, user_id, guess):
    play = get_play(play_id)
    authorize(play, user_id)
    rules = _bulls_and_cows(play)
    new_data, result = rules.make_guess(
        play.play_data, str(play.partner1_id), str(play.partner2_id), str(user_id), guess
    )
    update_play(play, new_data, is_live=False if result.solved else None)
    current_app.logger.info(
        f"[guess] play={play.id} player={user_id} bulls={result.bulls} cows={result.cows}"
        + (' winner' if result.solved else '')
    )
    return play, result


def replace_play_data(play_id, user_id, play_data) -> Play:
    """Overwrite play data for games that have no rules engine."""
    play = get_play(play_id)
    authorize(play, user_id)
    if rules_for(play.game) is not None:
        raise StateConflictError('This game is managed by its rules; use its actions instead')
    return update_play(play, play_data)
