"""
TempMailServices - Temporary email provider adapters.

Available services:
- EtempMail: etempmail.com
- MailTM: api.mail.tm
- TempMailPlus: tempmail.plus
- MinMail: minmail.app

All services implement BaseMailProvider:
- create_email(request) -> ChannelResponse[CreateEmailResponse]
- get_emails(query) -> ChannelResponse[list of EmailMessage]
- get_email_content(address, id, access_token) -> ChannelResponse[EmailMessage]
- verify_email(address) -> ChannelResponse[EmailAddress]
- get_health() / get_stats() / test_connection()
"""

from .base import BaseMailProvider
from .EtempMail import EtempMail
from .MailTM import MailTM
from .MinMail import MinMail
from .TempMailPlus import TempMailPlus

PROVIDER_CLASSES = {
    EtempMail.name: EtempMail,
    MailTM.name: MailTM,
    MinMail.name: MinMail,
    TempMailPlus.name: TempMailPlus,
}

__all__ = [
    'BaseMailProvider',
    'EtempMail',
    'MailTM',
    'MinMail',
    'TempMailPlus',
    'PROVIDER_CLASSES',
]
