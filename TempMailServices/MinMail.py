"""
MinMail temporary email service integration.

Website: https://minmail.app
Features: Cloudflare bypass via cloudscraper, visitor-id bound mailbox
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, FrozenSet, List

import cloudscraper

from models import (
    ChannelCapabilities,
    ChannelErrorType,
    CreateEmailRequest,
    CreateEmailResponse,
    EmailContact,
    EmailListQuery,
    EmailMessage,
)
from utils import logger, mask, parse_date, split_address, strip_html

from .base import BaseMailProvider


class MinMail(BaseMailProvider):
    """
    MinMail temporary email service client.

    Uses cloudscraper to get through Cloudflare. Each mailbox is bound to a
    random visitor id sent as a header; that id is handed back to callers as
    the access token. The listing already contains full bodies.
    """

    name = "minmail"
    BASE_URL = "https://minmail.app"
    API_URL = f"{BASE_URL}/api/mail"
    DOMAINS = ("atminmail.com",)

    capabilities = ChannelCapabilities(
        create_email=True,
        list_emails=True,
        get_email_content=True,
        custom_domains=False,
        custom_prefix=False,
        email_expiration=True,
        real_time_updates=False,
        attachment_support=False
    )

    @property
    def domains(self) -> FrozenSet[str]:
        return frozenset(self.DOMAINS)

    def _init_session(self):
        scraper = cloudscraper.create_scraper(
            browser={'browser': 'chrome', 'platform': 'windows', 'mobile': False}
        )
        scraper.headers.update({
            'Accept': 'application/json, text/plain, */*',
            'origin': self.BASE_URL,
            'referer': f'{self.BASE_URL}/',
        })
        return scraper

    def _headers(self, visitor_id: str) -> Dict[str, str]:
        return {'visitor-id': visitor_id}

    def _create_email(self, request: CreateEmailRequest, level: int = 0) -> CreateEmailResponse:
        logger("[######] Generating new email...", level=level)

        visitor_id = str(uuid.uuid4())
        expire = request.expiration_minutes or int(self.config.credentials.get('expire') or 1440)

        response = self.check_response(self.request(
            "GET",
            f"{self.API_URL}/address",
            headers=self._headers(visitor_id),
            params={'refresh': 'true', 'expire': expire, 'part': 'main'},
            level=level + 1
        ))

        data = response.data if isinstance(response.data, dict) else {}
        address = data.get('address')
        if not address:
            raise self.error(ChannelErrorType.API_ERROR, 'Invalid response from MinMail API: missing address')

        username, domain = split_address(address)
        minutes = data.get('expire') or expire
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=int(minutes))

        logger(f"✅ Email: {address}", level=level + 1)
        logger(f"✅ Visitor: {mask(visitor_id, 8)}", level=level + 1)
        return CreateEmailResponse(
            address=address,
            domain=domain,
            username=username,
            provider=self.name,
            expires_at=expires_at,
            access_token=visitor_id
        )

    def _fetch_inbox(self, query: EmailListQuery, level: int = 0) -> List[EmailMessage]:
        if not query.access_token:
            raise self.error(ChannelErrorType.AUTHENTICATION_ERROR, "MinMail requires the visitor id as access token")

        response = self.check_response(self.request(
            "GET",
            f"{self.API_URL}/list",
            headers=self._headers(query.access_token),
            params={'part': 'main'},
            level=level
        ))

        data = response.data if isinstance(response.data, dict) else {}
        messages = data.get('message') or []
        if not isinstance(messages, list):
            raise self.error(ChannelErrorType.API_ERROR, 'Invalid response from MinMail API: message is not a list')

        logger(f"📬 Found {len(messages)} emails", level=level)
        return [self._map_message(msg, query.address) for msg in messages if isinstance(msg, dict)]

    def _ping(self, level: int = 0) -> bool:
        response = self.request("GET", self.BASE_URL, level=level)
        return response.ok

    def _map_message(self, msg: Dict[str, Any], address: str) -> EmailMessage:
        html_content = msg.get('content') or ''
        sender = msg.get('from') or ''
        name = None
        # "Name <user@host>" senders
        if '<' in sender and sender.endswith('>'):
            name, _, sender = sender[:-1].partition('<')
            name = name.strip().strip('"') or None

        return EmailMessage(
            id=str(msg.get('id')),
            sender=EmailContact(email=sender.strip(), name=name),
            recipients=[EmailContact(email=msg.get('to') or address)],
            subject=msg.get('subject') or '',
            text_content=strip_html(html_content) or msg.get('preview') or '',
            html_content=html_content,
            received_at=parse_date(msg.get('date')),
            is_read=bool(msg.get('isRead', False)),
            provider=self.name,
            size=len(html_content)
        )
