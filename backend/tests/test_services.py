from datetime import timedelta

import pytest
from sqlalchemy import update

from pairplay import db
from pairplay.errors import AuthorizationError, StateConflictError, StorageConflictError, ValidationError
from pairplay.models import Game, GameRequest, PartnerRequest, Partnership, Play, User, canonical_pair, utcnow
from pairplay.services import game_requests, partners, plays
from pairplay.services.catalog import BULLS_AND_COWS_ID, seed_games


@pytest.fixture()
def pair(flask_app):
    a = User(email='a@example.com', name='A', email_verified=True)
    b = User(email='b@example.com', name='B', email_verified=True)
    db.session.add_all([a, b])
    db.session.commit()
    partners.create_partnership(a.id, b.id)
    return a, b


@pytest.fixture()
def free_form_game(flask_app):
    game = Game(name='Truth or Dare', details={'type': 'truth_or_dare'})
    db.session.add(game)
    db.session.commit()
    return game


def _accepted_play(game_id, requester, partner):
    req = game_requests.create_request(game_id, requester.id)
    _, play = game_requests.respond(req.id, partner.id, True)
    return play


def test_canonical_pair_is_order_independent():
    assert canonical_pair('x', 'y') == canonical_pair('y', 'x')
    with pytest.raises(ValueError):
        canonical_pair('x', 'x')


def test_partnership_rejects_self_and_duplicates(pair):
    a, b = pair
    with pytest.raises(ValidationError):
        partners.create_partnership(a.id, a.id)
    with pytest.raises(StorageConflictError):
        partners.create_partnership(b.id, a.id)
    assert partners.find_partnership(b.id).partner_of(b.id) == a.id


def test_seed_games_is_idempotent(flask_app):
    assert seed_games() == 0


def test_overdue_request_reads_as_expired(pair):
    a, b = pair
    req = game_requests.create_request(BULLS_AND_COWS_ID, a.id)
    req.expires_at = utcnow() - timedelta(minutes=1)
    db.session.commit()

    assert game_requests.get_request(req.id).status == 'expired'
    assert game_requests.pending_for_partner(b.id) == []
    with pytest.raises(StateConflictError) as exc:
        game_requests.respond(req.id, b.id, True)
    assert exc.value.message == 'This request has expired'


def test_pending_listing_expires_overdue_rows(pair, free_form_game):
    a, b = pair
    stale = game_requests.create_request(BULLS_AND_COWS_ID, a.id)
    fresh = game_requests.create_request(free_form_game.id, a.id)
    stale.expires_at = utcnow() - timedelta(seconds=1)
    db.session.commit()

    assert [r.id for r in game_requests.pending_from_requester(a.id)] == [fresh.id]
    assert db.session.get(GameRequest, stale.id).status == 'expired'


def test_new_request_allowed_after_expiry(pair):
    a, _ = pair
    req = game_requests.create_request(BULLS_AND_COWS_ID, a.id)
    req.expires_at = utcnow() - timedelta(minutes=1)
    db.session.commit()
    assert game_requests.create_request(BULLS_AND_COWS_ID, a.id).id != req.id


def test_accept_ends_every_live_play_of_the_pair(pair, free_form_game):
    a, b = pair
    first = _accepted_play(BULLS_AND_COWS_ID, a, b)
    second = _accepted_play(free_form_game.id, b, a)

    assert db.session.get(Play, first.id).is_live is False
    assert second.is_live is True
    assert second.partner1_id == b.id
    assert plays.find_live_by_partners(a.id, b.id, BULLS_AND_COWS_ID) is None
    assert plays.find_live_by_partners(b.id, a.id, free_form_game.id).id == second.id


def test_accepting_twice_is_refused(pair):
    a, b = pair
    req = game_requests.create_request(BULLS_AND_COWS_ID, a.id)
    game_requests.respond(req.id, b.id, True)
    with pytest.raises(StateConflictError):
        game_requests.respond(req.id, b.id, True)
    assert Play.query.count() == 1


def test_second_live_play_for_same_game_conflicts(pair):
    a, b = pair
    plays.create_play(BULLS_AND_COWS_ID, a.id, b.id)
    with pytest.raises(StorageConflictError):
        plays.create_play(BULLS_AND_COWS_ID, b.id, a.id)


def test_stale_play_write_conflicts(pair):
    a, b = pair
    play = plays.create_play(BULLS_AND_COWS_ID, a.id, b.id)
    play_id = play.id
    # Another writer moves the version underneath the loaded object
    db.session.execute(
        update(Play)
        .where(Play.id == play_id)
        .values(version_id=Play.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    with pytest.raises(StorageConflictError):
        plays.set_secret(play_id, a.id, '1234')
    assert db.session.get(Play, play_id).play_data == {}


def test_free_form_play_data_can_be_replaced(pair, free_form_game):
    a, b = pair
    play = _accepted_play(free_form_game.id, a, b)
    updated = plays.replace_play_data(play.id, b.id, {'round': 2})
    assert updated.play_data == {'round': 2}
    with pytest.raises(StateConflictError):
        plays.set_secret(play.id, a.id, '1234')


def test_outsider_cannot_touch_play(pair):
    a, b = pair
    outsider = User(email='c@example.com', name='C')
    db.session.add(outsider)
    db.session.commit()
    play = plays.create_play(BULLS_AND_COWS_ID, a.id, b.id)
    with pytest.raises(AuthorizationError):
        plays.set_secret(play.id, outsider.id, '1234')


def test_end_live(pair):
    a, b = pair
    play = plays.create_play(BULLS_AND_COWS_ID, a.id, b.id)
    assert plays.end_live(play.id).is_live is False
    assert plays.end_all_live_by_partners(a.id, b.id) == 0


@pytest.fixture()
def strangers(flask_app):
    a = User(email='c@example.com', name='C', email_verified=True)
    b = User(email='d@example.com', name='D', email_verified=True)
    db.session.add_all([a, b])
    db.session.commit()
    return a, b


def test_accept_loses_to_a_concurrent_cancel(strangers):
    a, b = strangers
    req_id = partners.send_request(a, b.email).id
    assert partners.get_request(req_id).status == 'pending'
    # The sender cancels between the recipient's read and write
    db.session.execute(
        update(PartnerRequest)
        .where(PartnerRequest.id == req_id)
        .values(status='cancelled', version_id=PartnerRequest.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    with pytest.raises(StorageConflictError):
        partners.accept(req_id, b)
    assert Partnership.query.count() == 0


def test_accept_sweep_leaves_only_the_accepted_request(strangers):
    a, b = strangers
    accepted = partners.send_request(a, b.email)
    other = partners.send_request(b, 'someone@example.com')
    accepted_id, other_id = accepted.id, other.id
    partners.accept(accepted_id, b)
    assert partners.get_request(accepted_id).status == 'accepted'
    assert partners.get_request(other_id).status == 'cancelled'


def test_accept_replaces_live_play_of_the_same_game(pair):
    a, b = pair
    first = _accepted_play(BULLS_AND_COWS_ID, a, b)
    second = _accepted_play(BULLS_AND_COWS_ID, b, a)

    assert db.session.get(Play, first.id).is_live is False
    live = Play.query.filter_by(is_live=True).all()
    assert [p.id for p in live] == [second.id]
    assert live[0].game_id == BULLS_AND_COWS_ID
