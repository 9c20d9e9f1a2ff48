"""Password-less sign-in: emailed one-time codes and signed bearer tokens."""
import secrets
import string
from datetime import timedelta

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from pairplay import bcrypt, db
from pairplay.errors import AuthenticationError, DependencyError, RateLimitError, ValidationError
from pairplay.mailer import get_mailer
from pairplay.models import OneTimeCode, User, utcnow
from pairplay.services.storage import commit

CODE_LENGTH = 4
TOKEN_SALT = 'pairplay-auth-token'


def normalize_email(raw) -> str:
    if not isinstance(raw, str):
        raise ValidationError('A valid email address is required')
    email = raw.strip().lower()
    local, _, domain = email.partition('@')
    if not local or '.' not in domain or domain.startswith('.') or domain.endswith('.') or ' ' in email:
        raise ValidationError('A valid email address is required')
    return email


def name_from_email(email: str) -> str:
    local = email.split('@', 1)[0]
    return local[:1].upper() + local[1:] if local else 'User'


def generate_code(length: int = CODE_LENGTH) -> str:
    return ''.join(secrets.choice(string.digits) for _ in range(length))


# ---- Tokens ----

def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def issue_token(user: User) -> str:
    return _serializer().dumps({'user_id': str(user.id), 'email': user.email})


def verify_token(token: str):
    """Return ``(user_id, email)`` for a valid token, ``None`` otherwise."""
    max_age = int(current_app.config.get('TOKEN_MAX_AGE_SEC', 24 * 60 * 60))
    try:
        payload = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        current_app.logger.info('[auth] expired token rejected')
        return None
    except BadSignature:
        return None
    return payload.get('user_id'), payload.get('email')


# ---- One-time codes ----

def request_code(raw_email) -> dict:
    email = normalize_email(raw_email)
    cfg = current_app.config
    window = timedelta(minutes=int(cfg.get('OTP_RATE_WINDOW_MINUTES', 10)))
    recent = OneTimeCode.query.filter(
        OneTimeCode.email == email,
        OneTimeCode.created_at > utcnow() - window,
    ).count()
    if recent >= int(cfg.get('OTP_RATE_LIMIT', 3)):
        raise RateLimitError('Too many OTP requests. Please try again later.')

    code = generate_code()
    db.session.add(OneTimeCode(
        email=email,
        code_hash=bcrypt.generate_password_hash(code).decode('utf-8'),
        expires_at=utcnow() + timedelta(minutes=int(cfg.get('OTP_EXPIRY_MINUTES', 5))),
    ))
    db.session.commit()
    current_app.logger.info(f"[otp-issued] email={email}")

    # The code counts as sent even if delivery fails
    try:
        get_mailer().send_code(email, code)
    except DependencyError as exc:
        current_app.logger.warning(f"[otp-delivery-failed] email={email}: {exc.message}")
        if cfg.get('ENVIRONMENT') == 'development':
            return {'message': f"OTP sent (dev mode - code: {code})"}
    return {'message': 'OTP has been sent to your email'}


def verify_code(raw_email, code):
    email = normalize_email(raw_email)
    if not isinstance(code, str):
        raise ValidationError(f"OTP must be {CODE_LENGTH} digits")
    code = code.strip()
    if len(code) != CODE_LENGTH or not code.isdigit():
        raise ValidationError(f"OTP must be {CODE_LENGTH} digits")

    candidates = (OneTimeCode.query
                  .filter(OneTimeCode.email == email,
                          OneTimeCode.used.is_(False),
                          OneTimeCode.expires_at > utcnow())
                  .order_by(OneTimeCode.created_at.desc())
                  .all())
    match = next((c for c in candidates if bcrypt.check_password_hash(c.code_hash, code)), None)
    if match is None:
        current_app.logger.info(f"[otp-rejected] email={email}")
        raise AuthenticationError('Invalid or expired OTP')
    match.used = True

    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email, name=name_from_email(email), email_verified=True)
        db.session.add(user)
    else:
        user.email_verified = True
    commit('This code was just used; request a new one')
    current_app.logger.info(f"[login] user={user.id}")
    return issue_token(user), user


def update_profile(user: User, display_name) -> User:
    if not isinstance(display_name, str):
        raise ValidationError('display_name must be between 1 and 100 characters')
    display_name = display_name.strip()
    if not 1 <= len(display_name) <= 100:
        raise ValidationError('display_name must be between 1 and 100 characters')
    user.display_name = display_name
    commit()
    return user
