"""
Mail.tm temporary email service integration.

Website: https://mail.tm
API: https://api.mail.tm
Features: account + JWT authentication, selectable domain and username
"""

import threading
from typing import Any, Dict, FrozenSet, List, Optional

import requests

from models import (
    ChannelCapabilities,
    ChannelErrorType,
    CreateEmailRequest,
    CreateEmailResponse,
    EmailContact,
    EmailListQuery,
    EmailMessage,
)
from utils import format_error, logger, mask, parse_date, random_string, strip_html

from .base import BaseMailProvider


def _members(data: Any) -> List[Dict[str, Any]]:
    """Unwrap a Hydra collection, which Mail.tm returns as a list or under 'hydra:member'."""
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    if isinstance(data, dict):
        members = data.get('hydra:member', [])
        return [item for item in members if isinstance(item, dict)] if isinstance(members, list) else []
    return []


class MailTM(BaseMailProvider):
    """
    Mail.tm temporary email service client.

    Creating an address registers an account with a random password and
    exchanges it for a JWT, which callers pass back as access token to read
    the inbox.
    """

    name = "mailtm"
    BASE_URL = "https://api.mail.tm"

    capabilities = ChannelCapabilities(
        create_email=True,
        list_emails=True,
        get_email_content=True,
        custom_domains=True,
        custom_prefix=True,
        email_expiration=False,
        real_time_updates=False,
        attachment_support=True
    )

    def __init__(self, config, client=None):
        super().__init__(config, client)
        self._domains: FrozenSet[str] = frozenset()
        self._domains_lock = threading.Lock()

    def _init_session(self):
        session = super()._init_session()
        session.headers.update({
            'Accept': 'application/json',
            'Content-Type': 'application/json',
        })
        return session

    @property
    def domains(self) -> FrozenSet[str]:
        return self._domains

    def initialize(self, level: int = 0) -> None:
        try:
            self._refresh_domains(level=level + 1)
        except Exception as e:
            logger(f"⚠ Mail.tm domains unavailable: {format_error(e)}", level=level + 1)
        super().initialize(level=level)

    def _auth_headers(self, token: Optional[str]) -> Dict[str, str]:
        if not token:
            raise self.error(ChannelErrorType.AUTHENTICATION_ERROR, "Mail.tm requires an access token")
        return {'Authorization': f'Bearer {token}'}

    def _refresh_domains(self, level: int = 0) -> FrozenSet[str]:
        """
        Fetch the active domain list and cache it.

        Args:
            level: Logging indentation level.

        Returns:
            Active domains.
        """
        response = self.check_response(self.request("GET", f"{self.BASE_URL}/domains", level=level))
        active = frozenset(
            d['domain'].lower()
            for d in _members(response.data)
            if d.get('isActive', True) and d.get('domain')
        )
        if not active:
            raise self.error(ChannelErrorType.API_ERROR, "Mail.tm returned no active domains")

        with self._domains_lock:
            self._domains = active
        logger(f"✅ Found {len(active)} domains", level=level)
        return active

    def _create_email(self, request: CreateEmailRequest, level: int = 0) -> CreateEmailResponse:
        logger("[######] Generating new email...", level=level)

        domains = self._refresh_domains(level=level + 1)
        if request.domain and request.domain.lower() in domains:
            domain = request.domain.lower()
        else:
            domain = sorted(domains)[0]
        logger(f"✅ Using domain: {domain}", level=level + 1)

        username = (request.prefix or random_string(10)).lower()
        password = random_string(12)
        address = f"{username}@{domain}"
        credentials = {"address": address, "password": password}

        account = self.request("POST", f"{self.BASE_URL}/accounts", json=credentials, level=level + 1)
        if account.status == 422:
            detail = account.data.get('detail', 'Validation error') if isinstance(account.data, dict) else account.text
            raise self.error(ChannelErrorType.API_ERROR, f"Mail.tm rejected {address}: {detail}", 422, retryable=False)
        self.check_response(account)
        logger(f"✅ Account created: {mask(address, 4)}", level=level + 1)

        # The address exists from here on; a failure must not trigger another provider
        try:
            token_response = self.request("POST", f"{self.BASE_URL}/token", json=credentials, level=level + 1)
        except requests.exceptions.RequestException as e:
            raise self.error(
                ChannelErrorType.AUTHENTICATION_ERROR,
                f"Mail.tm created {address} but the token request failed: {format_error(e)}"
            ) from e
        token = token_response.data.get('token') if token_response.ok and isinstance(token_response.data, dict) else None
        if not token:
            raise self.error(
                ChannelErrorType.AUTHENTICATION_ERROR,
                f"Mail.tm created {address} but issued no token",
                token_response.status
            )

        logger(f"✅ Token: {mask(token, 10)}", level=level + 1)
        return CreateEmailResponse(
            address=address,
            domain=domain,
            username=username,
            provider=self.name,
            access_token=token
        )

    def _fetch_inbox(self, query: EmailListQuery, level: int = 0) -> List[EmailMessage]:
        headers = self._auth_headers(query.access_token)
        response = self.check_response(self.request("GET", f"{self.BASE_URL}/messages", headers=headers, level=level))

        messages = _members(response.data)
        logger(f"📬 Found {len(messages)} emails", level=level)
        return [self._map_message(msg, query.address) for msg in messages]

    def _fetch_message(
        self,
        address: str,
        email_id: str,
        access_token: Optional[str] = None,
        level: int = 0
    ) -> EmailMessage:
        headers = self._auth_headers(access_token)
        response = self.request("GET", f"{self.BASE_URL}/messages/{email_id}", headers=headers, level=level)
        if response.status == 404:
            raise self.not_found(email_id)
        self.check_response(response)

        if not isinstance(response.data, dict) or not response.data.get('id'):
            raise self.error(ChannelErrorType.API_ERROR, "Invalid response from Mail.tm API: missing message")

        logger(f"📧 Retrieved email: {mask(email_id, 4)}", level=level)
        return self._map_message(response.data, address)

    def _ping(self, level: int = 0) -> bool:
        response = self.request("GET", f"{self.BASE_URL}/domains", level=level)
        return response.ok

    def _map_message(self, msg: Dict[str, Any], address: str) -> EmailMessage:
        from_data = msg.get('from') or {}

        # html is an array of parts
        html_content = msg.get('html') or ''
        if isinstance(html_content, list):
            html_content = ''.join(html_content)

        text_content = msg.get('text') or msg.get('intro') or strip_html(html_content)

        recipients = [
            EmailContact(email=r.get('address', ''), name=r.get('name') or None)
            for r in msg.get('to') or []
            if isinstance(r, dict)
        ] or [EmailContact(email=address)]

        attachments = [
            {
                'id': a.get('id'),
                'filename': a.get('filename'),
                'contentType': a.get('contentType'),
                'size': a.get('size'),
            }
            for a in msg.get('attachments') or []
            if isinstance(a, dict)
        ]

        return EmailMessage(
            id=str(msg.get('id')),
            sender=EmailContact(email=from_data.get('address', ''), name=from_data.get('name') or None),
            recipients=recipients,
            subject=msg.get('subject') or '',
            text_content=text_content,
            html_content=html_content,
            received_at=parse_date(msg.get('createdAt')),
            is_read=bool(msg.get('seen', False)),
            provider=self.name,
            size=int(msg.get('size') or len(html_content) or len(text_content)),
            attachments=attachments
        )
