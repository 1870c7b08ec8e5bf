import logging
import re
from collections import namedtuple
from urllib.parse import unquote, urlsplit

from yarl import URL

from davgate import errors
from davgate.account.item import PropertyReader
from davgate.fields import CONTENT_TAG, DEFAULT_FIELDS, DISPLAY_NAME, WELL_KNOWN_FOLDERS
from davgate.http import encode_path, propfind

log = logging.getLogger('davgate.account')

BASE_HREF = re.compile(r'<base href="([^"]*)', re.I)
PUBLIC_ROOT = '/public'

SessionState = namedtuple('SessionState', [
    'mail_path', 'email', 'alias',
    'inbox_url', 'deleteditems_url', 'sentitems_url', 'sendmsg_url',
    'drafts_url', 'calendar_url', 'contacts_url', 'outbox_url',
    'public_folder_url',
])


def alias_from_login(username):
    # DOMAIN\user or user@domain
    alias = (username or '').rpartition('\\')[2]
    return alias.partition('@')[0]


def alias_from_mail_path(mail_path):
    return mail_path.rstrip('/').rpartition('/')[2] or None


def build_email(username, host, mail_path=None):
    """Return (alias, email) guessed from login, mailbox path and host"""
    if username and '@' in username:
        email = username.rpartition('\\')[2]
        return alias_from_login(email), email
    alias = alias_from_login(username)
    if not alias and mail_path:
        alias = alias_from_mail_path(mail_path)
    if not alias or not host:
        return alias or None, None
    return alias, f'{alias}@{host}'


def build_mail_path(landing, username):
    """Find mailbox path in the landing page <base href>.

    Returns (mail_path, alias, email), raises AuthenticationError when the
    user identity cannot be established.
    """
    host = URL(landing.url).host if landing.url else None
    mail_path = None
    body = landing.body.decode('utf-8', 'replace') if landing.body else ''
    for line in body.splitlines():
        match = BASE_HREF.search(line)
        if match:
            mail_path = urlsplit(match.group(1)).path or None
            break

    if mail_path:
        alias, email = build_email(username, host, mail_path)
        log.debug(f'Base href found in body, mailPath is {mail_path}, current user email is {email}')
    else:
        # failover for Exchange 2007: standard mailbox link with email
        alias, email = build_email(username, host)
        if email:
            mail_path = f'/exchange/{email}/'
        log.debug(f'Current user email is {email}, mailPath is {mail_path}')

    if not mail_path or not email:
        raise errors.AuthenticationError()
    return mail_path, alias, email


class SessionMixin:
    """Discovers mailbox urls once after login"""

    def __init__(self, client, username=None, fields=DEFAULT_FIELDS):
        self.client = client
        self.username = client.username if username is None else username
        self.fields = fields
        self.state = None

    async def ainit(self):
        landing = await self.client.login()
        if landing.status in (401, 403):
            raise errors.AuthenticationError(f'Authentication failed: {landing.status} {landing.reason}')
        mail_path, alias, email = build_mail_path(landing, self.username)
        urls = await self.get_well_known_folders(mail_path)
        public_folder_url = await self.get_public_folder_url(urls['inbox'])
        self.state = SessionState(
            mail_path=mail_path,
            email=email,
            alias=alias,
            inbox_url=urls['inbox'],
            deleteditems_url=urls['deleteditems'],
            sentitems_url=urls['sentitems'],
            sendmsg_url=urls['sendmsg'],
            drafts_url=urls['drafts'],
            calendar_url=urls['calendar'],
            contacts_url=urls['contacts'],
            outbox_url=urls['outbox'],
            public_folder_url=public_folder_url,
        )
        log.debug(f'Inbox URL: {self.state.inbox_url} Trash URL: {self.state.deleteditems_url} '
                  f'Sent URL: {self.state.sentitems_url} Send URL: {self.state.sendmsg_url} '
                  f'Drafts URL: {self.state.drafts_url} Calendar URL: {self.state.calendar_url} '
                  f'Contacts URL: {self.state.contacts_url} Outbox URL: {self.state.outbox_url} '
                  f'Public folder URL: {public_folder_url}')
        return self.state

    async def get_well_known_folders(self, mail_path):
        request = propfind(encode_path(mail_path), [self.fields[f] for f in WELL_KNOWN_FOLDERS], 0)
        try:
            entries = await self.client.multistatus(request)
        except errors.DavError as e:
            log.error(f'Unable to get mail folders at {mail_path}: {e}')
            raise errors.MailboxDiscoveryError(f'Unable to get mail folder {mail_path}') from e
        if not entries:
            raise errors.MailboxDiscoveryError(f'Unable to get mail folder {mail_path}')

        props = PropertyReader(entries[0].properties, self.fields)
        urls = {}
        for alias in WELL_KNOWN_FOLDERS:
            value = props.get(alias)
            urls[alias] = unquote(value) if value else None
        # junk folder is not available over webdav
        return urls

    async def get_public_folder_url(self, inbox_url):
        url = PUBLIC_ROOT
        if inbox_url:
            url = str(URL(inbox_url).with_path(PUBLIC_ROOT))
        request = propfind(encode_path(url), [self.fields[f] for f in CONTENT_TAG], 0)
        try:
            try:
                await self.client.multistatus(request)
            except errors.DavError:
                if self.client.alternate_auth:
                    raise
                # some servers require other authentication on /public only
                self.client.enable_alternate_auth()
                await self.client.multistatus(request)
        except errors.DavError as e:
            log.warning(f'Public folders not available: {e}')
            return PUBLIC_ROOT
        return url

    async def is_expired(self):
        request = propfind(encode_path(self.state.inbox_url), [self.fields[f] for f in DISPLAY_NAME], 0)
        try:
            await self.client.multistatus(request)
        except errors.TransportError as e:
            if e.status is None:
                # network failure, not an expired session
                raise
            return True
        except errors.DavError:
            return True
        return False
