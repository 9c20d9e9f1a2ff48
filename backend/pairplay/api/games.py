from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from pairplay.errors import NotFoundError, ValidationError
from pairplay.payload import json_body, parse_uuid
from pairplay.services import catalog, game_requests, plays

games = Blueprint('games', __name__)


@games.route('', methods=['GET'])
def list_games():
    return jsonify([game.to_dict() for game in catalog.list_games()])


@games.route('/play', methods=['POST'])
@login_required
def play_game():
    """Join the live play for this game, or ask the partner to start one."""
    game_id = parse_uuid(json_body().get('game_id'), 'game_id')
    play, game_request = game_requests.play_or_request(game_id, current_user.id)
    if play is not None:
        return jsonify({'type': 'play', 'play': plays.serialize_play(play, current_user.id)})
    return jsonify({'type': 'request', 'request': game_request.to_dict()})


# ---- Requests ----

@games.route('/requests', methods=['POST'])
@login_required
def create_request():
    game_id = parse_uuid(json_body().get('game_id'), 'game_id')
    game_request = game_requests.create_request(game_id, current_user.id)
    return jsonify(game_request.to_dict()), 201


@games.route('/requests/pending', methods=['GET'])
@login_required
def pending_requests():
    return jsonify([r.to_dict() for r in game_requests.pending_for_partner(current_user.id)])


@games.route('/requests/sent', methods=['GET'])
@login_required
def sent_requests():
    return jsonify([r.to_dict() for r in game_requests.pending_from_requester(current_user.id)])


@games.route('/requests/<uuid:request_id>/respond', methods=['POST'])
@login_required
def respond_to_request(request_id):
    accept = json_body().get('accept')
    if not isinstance(accept, bool):
        raise ValidationError('accept must be true or false')
    game_request, play = game_requests.respond(request_id, current_user.id, accept)
    payload = {'request': game_request.to_dict()}
    if play is not None:
        payload['play'] = plays.serialize_play(play, current_user.id)
    return jsonify(payload)


# ---- Plays ----

@games.route('/<uuid:game_id>/play', methods=['GET'])
@login_required
def live_play(game_id):
    catalog.get_game(game_id)
    partner_id = game_requests.partner_id_for(current_user.id)
    play = plays.find_live_by_partners(current_user.id, partner_id, game_id)
    if play is None:
        raise NotFoundError('No live play for this game')
    return jsonify(plays.serialize_play(play, current_user.id))


@games.route('/plays/<uuid:play_id>', methods=['GET'])
@login_required
def get_play(play_id):
    play = plays.get_play(play_id)
    plays.authorize(play, current_user.id)
    return jsonify(plays.serialize_play(play, current_user.id))


@games.route('/plays/<uuid:play_id>', methods=['PUT'])
@login_required
def update_play(play_id):
    play_data = json_body().get('play_data')
    if not isinstance(play_data, dict):
        raise ValidationError('play_data must be an object')
    play = plays.replace_play_data(play_id, current_user.id, play_data)
    return jsonify(plays.serialize_play(play, current_user.id))


@games.route('/plays/<uuid:play_id>/set-secret', methods=['POST'])
@login_required
def set_secret(play_id):
    play = plays.set_secret(play_id, current_user.id, json_body().get('secret'))
    return jsonify(plays.serialize_play(play, current_user.id))


@games.route('/plays/<uuid:play_id>/guess', methods=['POST'])
@login_required
def guess(play_id):
    play, result = plays.make_guess(play_id, current_user.id, json_body().get('guess'))
    return jsonify({
        'bulls': result.bulls,
        'cows': result.cows,
        'solved': result.solved,
        'play': plays.serialize_play(play, current_user.id),
    })
