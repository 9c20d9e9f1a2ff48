"""Verification-code delivery.

``init_mailer`` picks a provider from ``EMAIL_PROVIDER`` and stores it on
``app.extensions['mailer']``. Providers raise ``DeliveryError``; callers
decide whether that is fatal.
"""
import base64
import json
from email.message import EmailMessage
from email.utils import parseaddr
from pathlib import Path
from typing import List, Tuple

import httpx
from flask import current_app

from pairplay.errors import DeliveryError

SUBJECT = 'Your Games Verification Code'
GMAIL_SEND_URL = 'https://gmail.googleapis.com/gmail/v1/users/me/messages/send'
GMAIL_PROFILE_URL = 'https://gmail.googleapis.com/gmail/v1/users/me/profile'
GMAIL_TOKEN_URI = 'https://oauth2.googleapis.com/token'


def _bodies(code: str, expiry_minutes: int) -> Tuple[str, str]:
    text_body = f"Your verification code is: {code}\n\nThis code will expire in {expiry_minutes} minutes."
    html_body = (
        f"<h2>Your Verification Code</h2><p>Your verification code is: <strong>{code}</strong></p>"
        f"<p>This code will expire in {expiry_minutes} minutes.</p>"
    )
    return text_body, html_body


class EmailClient:
    def send_code(self, to_email: str, code: str) -> None:
        raise NotImplementedError


class ConsoleEmailClient(EmailClient):
    """Logs codes instead of sending them. Keeps an outbox for local use."""

    def __init__(self, logger):
        self.logger = logger
        self.sent: List[Tuple[str, str]] = []

    def send_code(self, to_email, code):
        self.sent.append((to_email, code))
        self.logger.info(f"[mail-console] code for {to_email}: {code}")

    def last_code_for(self, to_email):
        for email, code in reversed(self.sent):
            if email == to_email:
                return code
        return None


class MailgunClient(EmailClient):
    def __init__(self, api_key, domain, base_url, from_email, logger, expiry_minutes=5, timeout=10.0):
        self.api_key = api_key
        self.domain = domain
        self.base_url = base_url.rstrip('/')
        self.from_email = from_email
        self.logger = logger
        self.expiry_minutes = expiry_minutes
        self.timeout = timeout

    def sender_address(self) -> str:
        """Mailgun only relays for its own domain; rewrite the sender to match."""
        if not self.from_email:
            return f"Games <postmaster@{self.domain}>"
        display_name, address = parseaddr(self.from_email)
        if address.rpartition('@')[2] == self.domain:
            return self.from_email
        fixed = f"{display_name or 'Games'} <postmaster@{self.domain}>"
        self.logger.warning(f"[mail-mailgun] sender domain does not match {self.domain}; using '{fixed}'")
        return fixed

    def send_code(self, to_email, code):
        if not self.api_key:
            # No credentials outside production: log instead of sending
            self.logger.info(f"[mail-mailgun] no API key; code for {to_email}: {code}")
            return
        if not self.domain:
            raise DeliveryError('mailgun domain is not configured')

        text_body, html_body = _bodies(code, self.expiry_minutes)
        try:
            response = httpx.post(
                f"{self.base_url}/v3/{self.domain}/messages",
                auth=('api', self.api_key),
                data={
                    'from': self.sender_address(),
                    'to': to_email,
                    'subject': SUBJECT,
                    'text': text_body,
                    'html': html_body,
                },
                timeout=self.timeout,
            )
        except httpx.RequestError as exc:
            raise DeliveryError(f"failed to send email: {exc}") from exc

        if response.is_success:
            return
        body = response.text
        if response.status_code == 403 and 'authorized recipients' in body:
            raise DeliveryError(
                f"mailgun sandbox restriction: recipient '{to_email}' must be an authorized recipient: {body}"
            )
        if body:
            raise DeliveryError(f"mailgun API returned status {response.status_code}: {body}")
        raise DeliveryError(f"mailgun API returned status {response.status_code}")


class GmailClient(EmailClient):
    """Sends through the Gmail API with an OAuth token from ``token.json``.

    The stored access token is used until Gmail answers 401, then it is
    refreshed once with the refresh token and the call is retried.
    """

    def __init__(self, token, from_email, logger, expiry_minutes=5, timeout=10.0):
        self.access_token = token['token']
        self.refresh_token = token.get('refresh_token')
        self.client_id = token['client_id']
        self.client_secret = token['client_secret']
        self.token_uri = token.get('token_uri') or GMAIL_TOKEN_URI
        self.from_email = from_email
        self.logger = logger
        self.expiry_minutes = expiry_minutes
        self.timeout = timeout

    def _refresh(self) -> None:
        if not self.refresh_token:
            raise DeliveryError('gmail access token was rejected and no refresh token is configured')
        try:
            response = httpx.post(
                self.token_uri,
                data={
                    'grant_type': 'refresh_token',
                    'refresh_token': self.refresh_token,
                    'client_id': self.client_id,
                    'client_secret': self.client_secret,
                },
                timeout=self.timeout,
            )
        except httpx.RequestError as exc:
            raise DeliveryError(f"gmail token refresh failed: {exc}") from exc
        access_token = response.json().get('access_token') if response.is_success else None
        if not access_token:
            raise DeliveryError(f"gmail token refresh returned status {response.status_code}")
        self.access_token = access_token
        self.logger.info('[mail-gmail] access token refreshed')

    def _request(self, method, url, **kwargs) -> httpx.Response:
        def call():
            try:
                return httpx.request(
                    method, url,
                    headers={'Authorization': f"Bearer {self.access_token}"},
                    timeout=self.timeout,
                    **kwargs,
                )
            except httpx.RequestError as exc:
                raise DeliveryError(f"failed to reach Gmail API: {exc}") from exc

        response = call()
        if response.status_code == 401:
            self._refresh()
            response = call()
        return response

    def sender_address(self) -> str:
        """Resolve ``me`` to the account's address the first time it is needed."""
        if self.from_email and self.from_email != 'me':
            return self.from_email
        response = self._request('GET', GMAIL_PROFILE_URL)
        address = response.json().get('emailAddress') if response.is_success else None
        if not address:
            self.logger.warning(f"[mail-gmail] profile lookup returned status {response.status_code}; using default sender")
        self.from_email = address or 'noreply@gmail.com'
        return self.from_email

    def send_code(self, to_email, code):
        text_body, html_body = _bodies(code, self.expiry_minutes)
        message = EmailMessage()
        message['From'] = self.sender_address()
        message['To'] = to_email
        message['Subject'] = SUBJECT
        message.set_content(text_body)
        message.add_alternative(html_body, subtype='html')
        raw = base64.urlsafe_b64encode(message.as_bytes()).rstrip(b'=').decode('ascii')

        response = self._request('POST', GMAIL_SEND_URL, json={'raw': raw})
        if not response.is_success:
            raise DeliveryError(f"gmail API returned status {response.status_code}: {response.text}")


def load_gmail_token(token_json='', token_path='config/token.json') -> dict:
    """Token data from ``GMAIL_TOKEN_JSON`` if set, else from the token file."""
    if token_json:
        source, raw = 'GMAIL_TOKEN_JSON', token_json
    else:
        path = Path(token_path)
        if not path.is_absolute() and not path.exists():
            path = Path('config') / 'token.json'
        source, raw = str(path), path.read_text()
    token = json.loads(raw)
    for key in ('client_id', 'client_secret', 'token'):
        if not token.get(key):
            raise ValueError(f"{key} is missing from {source}")
    return token


def init_mailer(app) -> EmailClient:
    provider = (app.config.get('EMAIL_PROVIDER') or 'console').lower()
    if provider == 'mailgun':
        client = MailgunClient(
            api_key=app.config.get('MAILGUN_API_KEY', ''),
            domain=app.config.get('MAILGUN_DOMAIN', ''),
            base_url=app.config.get('MAILGUN_BASE_URL', 'https://api.mailgun.net'),
            from_email=app.config.get('MAILGUN_FROM_EMAIL', ''),
            logger=app.logger,
            expiry_minutes=int(app.config.get('OTP_EXPIRY_MINUTES', 5)),
        )
    elif provider == 'gmail':
        client = GmailClient(
            token=load_gmail_token(
                app.config.get('GMAIL_TOKEN_JSON', ''),
                app.config.get('GMAIL_TOKEN_PATH', 'config/token.json'),
            ),
            from_email=app.config.get('GMAIL_FROM_EMAIL', 'me'),
            logger=app.logger,
            expiry_minutes=int(app.config.get('OTP_EXPIRY_MINUTES', 5)),
        )
    elif provider == 'console':
        client = ConsoleEmailClient(app.logger)
    else:
        raise ValueError(f"unknown EMAIL_PROVIDER: {provider}")
    app.extensions['mailer'] = client
    return client


def get_mailer() -> EmailClient:
    return current_app.extensions['mailer']
