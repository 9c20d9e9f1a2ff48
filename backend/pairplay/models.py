import uuid
from datetime import datetime, timezone

from flask_login import UserMixin
from sqlalchemy import JSON, Index, Uuid, text
from sqlalchemy.dialects.postgresql import JSONB

from pairplay import db

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
Document = JSON().with_variant(JSONB(), 'postgresql')


def utcnow():
    """Naive UTC timestamp; SQLite drops tzinfo so we never store it."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def canonical_pair(a, b):
    """Order two user ids so an unordered pair has exactly one representation.

    Shared by partnerships and live-play uniqueness.
    """
    if a == b:
        raise ValueError('a pair needs two distinct ids')
    return (a, b) if str(a) < str(b) else (b, a)


class TimestampMixin:
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class User(UserMixin, TimestampMixin, db.Model):
    __tablename__ = 'users'
    id = db.Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    display_name = db.Column(db.String(100), nullable=True)
    email_verified = db.Column(db.Boolean, nullable=False, default=False)

    def get_id(self):
        return str(self.id)

    def to_dict(self):
        return {
            'id': str(self.id),
            'email': self.email,
            'name': self.name,
            'display_name': self.display_name,
            'email_verified': self.email_verified,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class OneTimeCode(db.Model):
    __tablename__ = 'otps'
    id = db.Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = db.Column(db.String(255), nullable=False, index=True)
    code_hash = db.Column(db.String(128), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    used = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def is_expired(self, now=None):
        return (now or utcnow()) > self.expires_at


class PartnerRequest(TimestampMixin, db.Model):
    __tablename__ = 'partner_requests'
    id = db.Column(Uuid, primary_key=True, default=uuid.uuid4)
    sender_id = db.Column(Uuid, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    recipient_email = db.Column(db.String(255), nullable=False, index=True)
    recipient_id = db.Column(Uuid, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=True, index=True)
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)  # pending, accepted, rejected, cancelled
    version_id = db.Column(db.Integer, nullable=False)

    sender = db.relationship('User', foreign_keys=[sender_id])
    recipient = db.relationship('User', foreign_keys=[recipient_id])

    # Only one response can move a request out of pending
    __mapper_args__ = {'version_id_col': version_id}

    __table_args__ = (
        Index(
            'idx_partner_requests_unique_pending',
            'sender_id', 'recipient_email',
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def to_dict(self):
        return {
            'id': str(self.id),
            'sender_id': str(self.sender_id),
            'recipient_email': self.recipient_email,
            'recipient_id': str(self.recipient_id) if self.recipient_id else None,
            'status': self.status,
            'sender': self.sender.to_dict() if self.sender else None,
            'recipient': self.recipient.to_dict() if self.recipient else None,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class Partnership(db.Model):
    __tablename__ = 'partnerships'
    id = db.Column(Uuid, primary_key=True, default=uuid.uuid4)
    # Stored as canonical_pair(); each side unique so a user holds one partnership
    user1_id = db.Column(Uuid, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)
    user2_id = db.Column(Uuid, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user1 = db.relationship('User', foreign_keys=[user1_id])
    user2 = db.relationship('User', foreign_keys=[user2_id])

    __table_args__ = (
        db.CheckConstraint('user1_id <> user2_id', name='chk_partnership_distinct'),
    )

    def partner_of(self, user_id):
        return self.user2_id if self.user1_id == user_id else self.user1_id

    def to_dict(self):
        return {
            'id': str(self.id),
            'user1_id': str(self.user1_id),
            'user2_id': str(self.user2_id),
            'user1': self.user1.to_dict() if self.user1 else None,
            'user2': self.user2.to_dict() if self.user2 else None,
            'created_at': _iso(self.created_at),
        }


class Game(TimestampMixin, db.Model):
    __tablename__ = 'games'
    id = db.Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    icon = db.Column(db.String(10), nullable=True)
    details = db.Column(Document, nullable=False, default=dict)

    @property
    def game_type(self):
        return (self.details or {}).get('type')

    def to_dict(self):
        return {
            'id': str(self.id),
            'name': self.name,
            'description': self.description,
            'icon': self.icon,
            'details': self.details or {},
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class GameRequest(TimestampMixin, db.Model):
    __tablename__ = 'game_requests'
    id = db.Column(Uuid, primary_key=True, default=uuid.uuid4)
    game_id = db.Column(Uuid, db.ForeignKey('games.id', ondelete='CASCADE'), nullable=False, index=True)
    requester_id = db.Column(Uuid, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    partner_id = db.Column(Uuid, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)  # pending, accepted, rejected, expired
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    version_id = db.Column(db.Integer, nullable=False)

    game = db.relationship('Game')
    requester = db.relationship('User', foreign_keys=[requester_id])
    partner = db.relationship('User', foreign_keys=[partner_id])

    # Only one response can move a request out of pending
    __mapper_args__ = {'version_id_col': version_id}

    __table_args__ = (
        Index(
            'idx_game_requests_unique_pending',
            'game_id', 'requester_id', 'partner_id',
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def is_expired(self, now=None):
        return (now or utcnow()) > self.expires_at

    def to_dict(self):
        return {
            'id': str(self.id),
            'game_id': str(self.game_id),
            'requester_id': str(self.requester_id),
            'partner_id': str(self.partner_id),
            'status': self.status,
            'expires_at': _iso(self.expires_at),
            'game': self.game.to_dict() if self.game else None,
            'requester': self.requester.to_dict() if self.requester else None,
            'partner': self.partner.to_dict() if self.partner else None,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class Play(TimestampMixin, db.Model):
    __tablename__ = 'plays'
    id = db.Column(Uuid, primary_key=True, default=uuid.uuid4)
    game_id = db.Column(Uuid, db.ForeignKey('games.id', ondelete='CASCADE'), nullable=False, index=True)
    # partner1 requested, partner2 accepted; not normalised
    partner1_id = db.Column(Uuid, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    partner2_id = db.Column(Uuid, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    # canonical_pair(partner1_id, partner2_id), only for lookups and the live index
    pair_low = db.Column(Uuid, nullable=False)
    pair_high = db.Column(Uuid, nullable=False)
    play_data = db.Column(Document, nullable=False, default=dict)
    is_live = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False)

    game = db.relationship('Game')
    partner1 = db.relationship('User', foreign_keys=[partner1_id])
    partner2 = db.relationship('User', foreign_keys=[partner2_id])

    __mapper_args__ = {'version_id_col': version_id}

    __table_args__ = (
        Index('idx_plays_partners', 'pair_low', 'pair_high'),
        Index(
            'idx_plays_unique_live',
            'game_id', 'pair_low', 'pair_high',
            unique=True,
            postgresql_where=text('is_live'),
            sqlite_where=text('is_live'),
        ),
    )

    def __init__(self, **kwargs):
        super(Play, self).__init__(**kwargs)
        if self.partner1_id and self.partner2_id and not self.pair_low:
            self.pair_low, self.pair_high = canonical_pair(self.partner1_id, self.partner2_id)

    def has_player(self, user_id):
        return user_id in (self.partner1_id, self.partner2_id)

    def to_dict(self, play_data=None):
        return {
            'id': str(self.id),
            'game_id': str(self.game_id),
            'partner1_id': str(self.partner1_id),
            'partner2_id': str(self.partner2_id),
            'play_data': self.play_data if play_data is None else play_data,
            'is_live': self.is_live,
            'game': self.game.to_dict() if self.game else None,
            'partner1': self.partner1.to_dict() if self.partner1 else None,
            'partner2': self.partner2.to_dict() if self.partner2 else None,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


def _iso(value):
    return value.isoformat() + 'Z' if value else None
