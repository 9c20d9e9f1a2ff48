"""Partnership ledger and the partner-request workflow that feeds it."""
from flask import current_app
from sqlalchemy import or_

from pairplay import db
from pairplay.errors import AuthorizationError, DuplicateRequestError, NotFoundError, StateConflictError, ValidationError
from pairplay.models import PartnerRequest, Partnership, User, canonical_pair, utcnow
from pairplay.services.auth import normalize_email
from pairplay.services.storage import commit

ALREADY_HANDLED = 'This partnership was already settled by another request; reload and try again'


# ---- Ledger ----

def has_partnership(user_id) -> bool:
    return Partnership.query.filter(
        or_(Partnership.user1_id == user_id, Partnership.user2_id == user_id)
    ).count() > 0


def find_partnership(user_id) -> Partnership:
    partnership = Partnership.query.filter(
        or_(Partnership.user1_id == user_id, Partnership.user2_id == user_id)
    ).first()
    if not partnership:
        raise NotFoundError('No partner found')
    return partnership


def create_partnership(a, b, autocommit=True) -> Partnership:
    try:
        user1_id, user2_id = canonical_pair(a, b)
    except ValueError as exc:
        raise ValidationError('You cannot partner with yourself') from exc
    partnership = Partnership(user1_id=user1_id, user2_id=user2_id)
    db.session.add(partnership)
    if autocommit:
        commit(ALREADY_HANDLED)
    return partnership


def delete_partnership(partnership_id) -> None:
    partnership = db.session.get(Partnership, partnership_id)
    if not partnership:
        raise NotFoundError('No partnership found')
    db.session.delete(partnership)
    db.session.commit()
    current_app.logger.info(f"[partnership-deleted] {partnership_id}")


def disconnect(user_id) -> None:
    delete_partnership(find_partnership(user_id).id)


# ---- Requests ----

def get_request(request_id) -> PartnerRequest:
    partner_request = db.session.get(PartnerRequest, request_id)
    if not partner_request:
        raise NotFoundError('Request not found')
    return partner_request


def _is_recipient(partner_request: PartnerRequest, user: User) -> bool:
    return partner_request.recipient_id == user.id or partner_request.recipient_email == user.email


def send_request(sender: User, email) -> PartnerRequest:
    email = normalize_email(email)
    if has_partnership(sender.id):
        raise StateConflictError('You already have a partner')
    if email == sender.email:
        raise ValidationError('You cannot send a request to yourself')
    existing = PartnerRequest.query.filter_by(sender_id=sender.id, recipient_email=email, status='pending').first()
    if existing:
        raise DuplicateRequestError('Request already sent to this email')

    recipient = User.query.filter_by(email=email).first()
    partner_request = PartnerRequest(
        sender_id=sender.id,
        recipient_email=email,
        recipient_id=recipient.id if recipient else None,
        status='pending',
    )
    db.session.add(partner_request)
    commit('Request already sent to this email')
    current_app.logger.info(f"[partner-request] {partner_request.id} from={sender.id} to={email}")
    return partner_request


def list_sent(user: User):
    return (PartnerRequest.query
            .filter_by(sender_id=user.id, status='pending')
            .order_by(PartnerRequest.created_at.desc())
            .all())


def list_received(user: User):
    # Match by email too: the request may predate the recipient's account
    return (PartnerRequest.query
            .filter(or_(PartnerRequest.recipient_id == user.id, PartnerRequest.recipient_email == user.email))
            .filter(PartnerRequest.status == 'pending')
            .order_by(PartnerRequest.created_at.desc())
            .all())


def _cancel_pending_touching(users, keep_id) -> int:
    ids = [u.id for u in users]
    emails = [u.email for u in users]
    return PartnerRequest.query.filter(
        PartnerRequest.status == 'pending',
        PartnerRequest.id != keep_id,
        or_(
            PartnerRequest.sender_id.in_(ids),
            PartnerRequest.recipient_id.in_(ids),
            PartnerRequest.recipient_email.in_(emails),
        ),
    ).update(
        {
            PartnerRequest.status: 'cancelled',
            PartnerRequest.version_id: PartnerRequest.version_id + 1,
            PartnerRequest.updated_at: utcnow(),
        },
        synchronize_session='fetch',
    )


def accept(request_id, user: User) -> Partnership:
    partner_request = get_request(request_id)
    if not _is_recipient(partner_request, user):
        raise AuthorizationError('This request is not for you')
    if partner_request.status != 'pending':
        raise StateConflictError('Request is no longer pending')
    if has_partnership(user.id):
        raise StateConflictError('You already have a partner')
    if has_partnership(partner_request.sender_id):
        raise StateConflictError('Sender already has a partner')

    sender = partner_request.sender
    cancelled = _cancel_pending_touching([sender, user], keep_id=partner_request.id)
    # Versioned write: a cancel or reject that landed since the read fails the commit
    partner_request.status = 'accepted'
    if partner_request.recipient_id is None:
        partner_request.recipient_id = user.id
    partnership = create_partnership(sender.id, user.id, autocommit=False)
    commit(ALREADY_HANDLED)
    current_app.logger.info(
        f"[partnership-created] {partnership.id} users={partnership.user1_id}/{partnership.user2_id} "
        f"cancelled_requests={cancelled}"
    )
    return partnership


def reject(request_id, user: User) -> PartnerRequest:
    partner_request = get_request(request_id)
    if not _is_recipient(partner_request, user):
        raise AuthorizationError('This request is not for you')
    if partner_request.status != 'pending':
        raise StateConflictError('Request is no longer pending')
    partner_request.status = 'rejected'
    commit()
    return partner_request


def cancel(request_id, user: User) -> PartnerRequest:
    partner_request = get_request(request_id)
    if partner_request.sender_id != user.id:
        raise AuthorizationError('You can only cancel your own requests')
    if partner_request.status != 'pending':
        raise StateConflictError('Request is no longer pending')
    partner_request.status = 'cancelled'
    commit()
    return partner_request
