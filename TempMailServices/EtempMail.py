"""
EtempMail temporary email service integration.

Website: https://etempmail.com
Features: server-assigned .edu.pl domains, cookie session, 15 minute lease
"""

import re
import threading
from datetime import timedelta
from typing import Any, Dict, FrozenSet, List, Optional

from config import DEFAULT_EMAIL_TTL_MINUTES
from models import (
    ChannelCapabilities,
    ChannelErrorType,
    CreateEmailRequest,
    CreateEmailResponse,
    EmailContact,
    EmailListQuery,
    EmailMessage,
)
from utils import format_error, logger, mask, parse_date, split_address, strip_html

from .base import BaseMailProvider

# Used when the server time call does not hand out a ci_session cookie
FALLBACK_SESSION_ID = "51sutdevslriv5ft7mdqkats3a9l5bd6"


class EtempMail(BaseMailProvider):
    """
    EtempMail temporary email service client.

    The upstream binds the mailbox to a ci_session cookie obtained from
    /getServerTime. The domain is picked by the server; requested domains
    and prefixes are ignored.

    Inbox entries carry no identifier, so message IDs are positional and only
    valid against the listing they came from.
    """

    name = "etempmail"
    BASE_URL = "https://etempmail.com"
    DOMAINS = ("cross.edu.pl", "ohm.edu.pl", "usa.edu.pl", "beta.edu.pl")

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

    def __init__(self, config, client=None):
        super().__init__(config, client)
        self.session_id: Optional[str] = None
        self._session_lock = threading.Lock()

    @property
    def domains(self) -> FrozenSet[str]:
        return frozenset(self.DOMAINS)

    def _headers(self, session_id: Optional[str] = None) -> Dict[str, str]:
        headers = {
            'accept': '*/*',
            'origin': self.BASE_URL,
            'referer': f'{self.BASE_URL}/',
            'x-requested-with': 'XMLHttpRequest',
        }
        if session_id:
            headers['cookie'] = f'ci_session={session_id}'
        return headers

    def _get_server_time(self, level: int = 0) -> Optional[str]:
        """
        Call /getServerTime and extract the ci_session cookie.

        Args:
            level: Logging indentation level.

        Returns:
            Session id, or None when the response carried none.
        """
        response = self.request("POST", f"{self.BASE_URL}/getServerTime", headers=self._headers(), level=level)
        if not response.ok:
            return None

        cookies = response.header('set-cookie') or ''
        match = re.search(r'ci_session=([^;]+)', cookies)
        if match:
            return match.group(1)

        cookie = self.session.cookies.get('ci_session')
        return cookie or None

    def ensure_session(self, level: int = 0) -> str:
        """
        Return the cached session id, establishing it on first use.

        Concurrent first callers wait on the same lock, so only one
        /getServerTime call is made. Any failure falls back to a placeholder
        session instead of failing the request.

        Args:
            level: Logging indentation level.

        Returns:
            Session id.
        """
        if self.session_id:
            return self.session_id

        with self._session_lock:
            if self.session_id:
                return self.session_id

            logger("[######] Establishing EtempMail session...", level=level)
            try:
                session_id = self._get_server_time(level=level + 1)
            except Exception as e:
                logger(f"⚠ Server time request failed: {format_error(e)}", level=level + 1)
                session_id = None

            if not session_id:
                logger("⚠ No session cookie received, using fallback session", level=level + 1)
                session_id = FALLBACK_SESSION_ID

            self.session_id = session_id
            logger(f"✅ Session: {mask(session_id, 6)}", level=level + 1)
            return session_id

    def _create_email(self, request: CreateEmailRequest, level: int = 0) -> CreateEmailResponse:
        logger("[######] Generating new email...", level=level)
        session_id = self.ensure_session(level=level + 1)

        # Domain and prefix are assigned by the server
        response = self.check_response(self.request(
            "POST",
            f"{self.BASE_URL}/getEmailAddress",
            headers=self._headers(session_id),
            level=level + 1
        ))

        data = response.data if isinstance(response.data, dict) else {}
        address = data.get('address')
        if not address:
            raise self.error(
                ChannelErrorType.API_ERROR,
                'Invalid response from EtempMail API: missing address'
            )

        username, domain = split_address(address)
        expires_at = None
        if data.get('creation_time'):
            expires_at = parse_date(data['creation_time']) + timedelta(minutes=DEFAULT_EMAIL_TTL_MINUTES)

        logger(f"✅ Email: {address}", level=level + 1)
        return CreateEmailResponse(
            address=address,
            domain=domain,
            username=username,
            provider=self.name,
            expires_at=expires_at,
            access_token=session_id,
            recovery_key=data.get('recover_key')
        )

    def _fetch_inbox(self, query: EmailListQuery, level: int = 0) -> List[EmailMessage]:
        session_id = query.access_token or self.ensure_session(level=level)

        response = self.check_response(self.request(
            "POST",
            f"{self.BASE_URL}/getInbox",
            headers=self._headers(session_id),
            level=level
        ))

        messages = response.data if isinstance(response.data, list) else []
        logger(f"📬 Found {len(messages)} emails", level=level)
        return [
            self._map_message(msg, query.address, index)
            for index, msg in enumerate(messages)
            if isinstance(msg, dict)
        ]

    def _ping(self, level: int = 0) -> bool:
        response = self.request("POST", f"{self.BASE_URL}/getServerTime", headers=self._headers(), level=level)
        return response.ok

    def _map_message(self, msg: Dict[str, Any], address: str, index: int) -> EmailMessage:
        body = msg.get('body') or ''
        return EmailMessage(
            id=str(index),
            sender=EmailContact(email=msg.get('from') or ''),
            recipients=[EmailContact(email=address)],
            subject=msg.get('subject') or '',
            text_content=strip_html(body),
            html_content=body,
            received_at=parse_date(msg.get('date')),
            is_read=False,
            provider=self.name,
            size=len(body)
        )
