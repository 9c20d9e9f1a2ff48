from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from pairplay.payload import json_body
from pairplay.services import partners as svc

partners = Blueprint('partners', __name__)


@partners.route('/request', methods=['POST'])
@login_required
def send_request():
    data = json_body()
    partner_request = svc.send_request(current_user, data.get('email'))
    return jsonify(partner_request.to_dict()), 201


@partners.route('/requests/sent', methods=['GET'])
@login_required
def sent_requests():
    return jsonify([r.to_dict() for r in svc.list_sent(current_user)])


@partners.route('/requests/received', methods=['GET'])
@login_required
def received_requests():
    return jsonify([r.to_dict() for r in svc.list_received(current_user)])


@partners.route('/accept/<uuid:request_id>', methods=['POST'])
@login_required
def accept_request(request_id):
    partnership = svc.accept(request_id, current_user)
    return jsonify(partnership.to_dict()), 201


@partners.route('/reject/<uuid:request_id>', methods=['POST'])
@login_required
def reject_request(request_id):
    return jsonify(svc.reject(request_id, current_user).to_dict())


@partners.route('/request/<uuid:request_id>', methods=['DELETE'])
@login_required
def cancel_request(request_id):
    return jsonify(svc.cancel(request_id, current_user).to_dict())


@partners.route('/current', methods=['GET'])
@login_required
def current_partnership():
    return jsonify(svc.find_partnership(current_user.id).to_dict())


@partners.route('/current', methods=['DELETE'])
@login_required
def disconnect():
    svc.disconnect(current_user.id)
    return jsonify({'message': 'Partnership removed'})
