"""Game request protocol: the invitation handshake before a live play.

pending -> accepted | rejected | expired. Expiry is lazy: overdue rows are
flipped to ``expired`` whenever pending requests are read, so no caller ever
sees a pending request whose deadline has passed.
"""
from datetime import timedelta

from flask import current_app

from pairplay import db
from pairplay.errors import AuthorizationError, DuplicateRequestError, NotFoundError, StateConflictError
from pairplay.models import GameRequest, utcnow
from pairplay.services import catalog, partners, plays
from pairplay.services.storage import commit

ALREADY_HANDLED = 'This request was already handled; reload to see the game'


def partner_id_for(user_id):
    try:
        partnership = partners.find_partnership(user_id)
    except NotFoundError:
        raise StateConflictError("You don't have a partner") from None
    return partnership.partner_of(user_id)


def expire_overdue(**filters) -> int:
    """Flip overdue pending requests matching ``filters`` to expired."""
    expired = GameRequest.query.filter_by(status='pending', **filters).filter(
        GameRequest.expires_at < utcnow()
    ).update(
        {
            GameRequest.status: 'expired',
            GameRequest.version_id: GameRequest.version_id + 1,
            GameRequest.updated_at: utcnow(),
        },
        synchronize_session='fetch',
    )
    if expired:
        commit(ALREADY_HANDLED)
        current_app.logger.info(f"[game-request-expired] {expired} request(s) {filters}")
    return expired


def get_request(request_id) -> GameRequest:
    game_request = db.session.get(GameRequest, request_id)
    if not game_request:
        raise NotFoundError('Request not found')
    if game_request.status == 'pending' and game_request.is_expired():
        game_request.status = 'expired'
        commit(ALREADY_HANDLED)
        current_app.logger.info(f"[game-request-expired] {game_request.id}")
    return game_request


def pending_for_partner(user_id):
    expire_overdue(partner_id=user_id)
    return (GameRequest.query
            .filter_by(partner_id=user_id, status='pending')
            .order_by(GameRequest.created_at.desc())
            .all())


def pending_from_requester(user_id):
    expire_overdue(requester_id=user_id)
    return (GameRequest.query
            .filter_by(requester_id=user_id, status='pending')
            .order_by(GameRequest.created_at.desc())
            .all())


def _find_pending(game_id, requester_id, partner_id):
    expire_overdue(requester_id=requester_id)
    return GameRequest.query.filter_by(
        game_id=game_id, requester_id=requester_id, partner_id=partner_id, status='pending'
    ).first()


def _open_request(game_id, requester_id, partner_id) -> GameRequest:
    ttl = timedelta(hours=int(current_app.config.get('GAME_REQUEST_TTL_HOURS', 24)))
    game_request = GameRequest(
        game_id=game_id,
        requester_id=requester_id,
        partner_id=partner_id,
        status='pending',
        expires_at=utcnow() + ttl,
    )
    db.session.add(game_request)
    commit('You already have a pending request for this game')
    current_app.logger.info(
        f"[game-request] {game_request.id} game={game_id} from={requester_id} to={partner_id}"
    )
    return game_request


def create_request(game_id, requester_id) -> GameRequest:
    # No check for a pending request in the other direction (partner -> requester)
    catalog.get_game(game_id)
    partner_id = partner_id_for(requester_id)
    if _find_pending(game_id, requester_id, partner_id):
        raise DuplicateRequestError('You already have a pending request for this game')
    return _open_request(game_id, requester_id, partner_id)


def play_or_request(game_id, user_id):
    """Return ``(play, None)`` for a live play, otherwise ``(None, request)``.

    An existing pending request from this user is returned as-is rather than
    duplicated.
    """
    catalog.get_game(game_id)
    partner_id = partner_id_for(user_id)
    play = plays.find_live_by_partners(user_id, partner_id, game_id)
    if play:
        return play, None
    existing = _find_pending(game_id, user_id, partner_id)
    if existing:
        return None, existing
    return None, _open_request(game_id, user_id, partner_id)


def respond(request_id, responder_id, accept: bool):
    """Accept or reject a request. Returns ``(request, play_or_None)``.

    Acceptance ends every live play of the pair and opens a fresh one; the
    status change, the supersede and the new play commit together.
    """
    game_request = get_request(request_id)
    if game_request.partner_id != responder_id:
        raise AuthorizationError('You are not the recipient of this request')
    if game_request.status == 'expired':
        raise StateConflictError('This request has expired')
    if game_request.status != 'pending':
        raise StateConflictError('Request has already been responded to')

    if not accept:
        game_request.status = 'rejected'
        commit(ALREADY_HANDLED)
        current_app.logger.info(f"[game-request-rejected] {game_request.id}")
        return game_request, None

    # Bulk supersede runs before any pending change so autoflush has nothing to write
    plays.end_all_live_by_partners(game_request.requester_id, game_request.partner_id, autocommit=False)
    game_request.status = 'accepted'
    play = plays.create_play(
        game_request.game_id, game_request.requester_id, game_request.partner_id, autocommit=False
    )
    commit(ALREADY_HANDLED)
    current_app.logger.info(f"[game-request-accepted] {game_request.id} play={play.id}")
    return game_request, play
