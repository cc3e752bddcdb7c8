"""
TempMail Plus temporary email service integration.

Website: https://tempmail.plus
API: https://tempmail.plus/api
Features: any local part on nine public domains, optional mailbox PIN (epin)
"""

from typing import Any, Dict, FrozenSet, List, Optional

from models import (
    ChannelCapabilities,
    ChannelErrorType,
    CreateEmailRequest,
    CreateEmailResponse,
    EmailContact,
    EmailListQuery,
    EmailMessage,
)
from utils import logger, parse_date, random_string, strip_html

from .base import BaseMailProvider


class TempMailPlus(BaseMailProvider):
    """
    TempMail Plus temporary email service client.

    Mailboxes exist implicitly: any local part on a supported domain can
    receive mail. Creating an address composes it locally and confirms the
    upstream accepts it. The listing carries headers only; bodies come from
    the per-message endpoint.
    """

    name = "tempmailplus"
    BASE_URL = "https://tempmail.plus"
    API_URL = f"{BASE_URL}/api"
    DOMAINS = (
        "mailto.plus",
        "fexpost.com",
        "fexbox.org",
        "mailbox.in.ua",
        "rover.info",
        "chitthi.in",
        "fextemp.com",
        "any.pink",
        "merepost.com",
    )
    PAGE_SIZE = 100

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

    @property
    def domains(self) -> FrozenSet[str]:
        return frozenset(self.DOMAINS)

    def _params(self, address: str, access_token: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "email": address,
            "epin": access_token or self.config.credentials.get("epin", ""),
        }
        params.update(extra)
        return params

    def _check_pin(self, data: Dict[str, Any]) -> None:
        err = data.get("err")
        # 1021: wrong or missing PIN on a protected mailbox
        if isinstance(err, dict) and err.get("code") == 1021:
            raise self.error(ChannelErrorType.AUTHENTICATION_ERROR, "Mailbox is protected by a PIN")

    def _get_json(self, url: str, params: Dict[str, Any], level: int = 0) -> Dict[str, Any]:
        response = self.check_response(self.request("GET", url, params=params, level=level))
        data = response.data
        if not isinstance(data, dict):
            raise self.error(ChannelErrorType.API_ERROR, "Invalid response from TempMail Plus API")
        if data.get("result") is False:
            self._check_pin(data)
            raise self.error(ChannelErrorType.API_ERROR, f"TempMail Plus refused the request: {data.get('err') or data}")
        return data

    def _create_email(self, request: CreateEmailRequest, level: int = 0) -> CreateEmailResponse:
        logger("[######] Generating new email...", level=level)

        domain = self.DOMAINS[0]
        if request.domain and request.domain.lower() in self.domains:
            domain = request.domain.lower()
        username = (request.prefix or random_string(10)).lower()
        address = f"{username}@{domain}"

        self._get_json(f"{self.API_URL}/mails", self._params(address, limit=1), level=level + 1)

        logger(f"✅ Email: {address}", level=level + 1)
        epin = self.config.credentials.get("epin") or None
        return CreateEmailResponse(
            address=address,
            domain=domain,
            username=username,
            provider=self.name,
            access_token=epin
        )

    def _fetch_inbox(self, query: EmailListQuery, level: int = 0) -> List[EmailMessage]:
        data = self._get_json(
            f"{self.API_URL}/mails",
            self._params(query.address, query.access_token, limit=self.PAGE_SIZE),
            level=level
        )

        mail_list = data.get("mail_list") or []
        logger(f"📬 Found {len(mail_list)} emails", level=level)
        return [self._map_summary(item, query.address) for item in mail_list if isinstance(item, dict)]

    def _fetch_message(
        self,
        address: str,
        email_id: str,
        access_token: Optional[str] = None,
        level: int = 0
    ) -> EmailMessage:
        response = self.request(
            "GET",
            f"{self.API_URL}/mails/{email_id}",
            params=self._params(address, access_token),
            level=level
        )
        if response.status == 404:
            raise self.not_found(email_id)
        self.check_response(response)

        data = response.data
        if isinstance(data, dict) and data.get("result") is False:
            self._check_pin(data)
        if not isinstance(data, dict) or data.get("result") is False or not data.get("mail_id"):
            raise self.not_found(email_id)

        logger(f"📧 Retrieved email: {email_id}", level=level)
        return self._map_detail(data, address)

    def _ping(self, level: int = 0) -> bool:
        response = self.request(
            "GET",
            f"{self.API_URL}/mails",
            params={"email": f"ping@{self.DOMAINS[0]}", "limit": 1, "epin": ""},
            level=level
        )
        return response.ok

    def _map_summary(self, item: Dict[str, Any], address: str) -> EmailMessage:
        attachments = []
        if item.get("attachment_count"):
            attachments.append({
                "filename": item.get("first_attachment_name"),
                "count": item.get("attachment_count"),
            })

        return EmailMessage(
            id=str(item.get("mail_id")),
            sender=EmailContact(email=item.get("from_mail") or "", name=item.get("from_name") or None),
            recipients=[EmailContact(email=address)],
            subject=item.get("subject") or "",
            text_content="",
            html_content="",
            received_at=parse_date(item.get("time")),
            is_read=not item.get("is_new", False),
            provider=self.name,
            attachments=attachments
        )

    def _map_detail(self, data: Dict[str, Any], address: str) -> EmailMessage:
        html_content = data.get("html") or ""
        text_content = data.get("text") or strip_html(html_content)
        attachments = [
            {
                "id": a.get("attachment_id"),
                "filename": a.get("name"),
                "size": a.get("size"),
            }
            for a in data.get("attachments") or []
            if isinstance(a, dict)
        ]

        return EmailMessage(
            id=str(data.get("mail_id")),
            sender=EmailContact(email=data.get("from_mail") or data.get("from") or "", name=data.get("from_name") or None),
            recipients=[EmailContact(email=data.get("to") or address)],
            subject=data.get("subject") or "",
            text_content=text_content,
            html_content=html_content,
            received_at=parse_date(data.get("date")),
            is_read=True,
            provider=self.name,
            size=len(html_content) or len(text_content),
            attachments=attachments
        )
