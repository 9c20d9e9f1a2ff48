import uuid

from flask import request

from pairplay.errors import ValidationError


def json_body() -> dict:
    """The request's JSON object, or an empty dict for anything else."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return {}
    return data


def parse_uuid(value, field):
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a valid id') from None
