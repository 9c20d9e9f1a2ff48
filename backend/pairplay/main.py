from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from pairplay.payload import json_body
from pairplay.services import auth

main = Blueprint('main', __name__)


@main.route('/health-check', methods=['GET'])
def health_check():
    return jsonify({'status': 'ok'})


@main.route('/auth/request-otp', methods=['POST'])
def request_otp():
    data = json_body()
    return jsonify(auth.request_code(data.get('email')))


@main.route('/auth/verify-otp', methods=['POST'])
def verify_otp():
    data = json_body()
    token, user = auth.verify_code(data.get('email'), data.get('otp') or data.get('code'))
    return jsonify({'token': token, 'user': user.to_dict()})


@main.route('/auth/me', methods=['GET'])
@login_required
def me():
    return jsonify(current_user.to_dict())


@main.route('/users/me', methods=['PUT'])
@login_required
def update_me():
    data = json_body()
    user = auth.update_profile(current_user, data.get('display_name'))
    return jsonify(user.to_dict())
