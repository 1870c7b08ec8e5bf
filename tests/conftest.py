import pytest
from lxml import etree

from davgate.account import DavAccount
from davgate.http import DavClient, DavResponse
from davgate.multistatus import parse_multistatus

HOST = 'https://mail.example.com'
MAIL_PATH = '/exchange/jdoe/'
INBOX_URL = f'{HOST}/exchange/jdoe/Inbox'
TRASH_URL = f'{HOST}/exchange/jdoe/Deleted Items'
SENT_URL = f'{HOST}/exchange/jdoe/Sent Items'
SENDMSG_URL = f'{HOST}/exchange/jdoe/##DavMailSubmissionURI##'
DRAFTS_URL = f'{HOST}/exchange/jdoe/Drafts'
CALENDAR_URL = f'{HOST}/exchange/jdoe/Calendar'
CONTACTS_URL = f'{HOST}/exchange/jdoe/Contacts'
OUTBOX_URL = f'{HOST}/exchange/jdoe/Outbox'
PUBLIC_URL = f'{HOST}/public'

REASONS = {200: 'OK', 201: 'Created', 204: 'No Content', 207: 'Multi-Status', 403: 'Forbidden',
           404: 'Not Found', 405: 'Method Not Allowed', 412: 'Precondition Failed', 500: 'Server Error'}

HTTPMAIL = '{urn:schemas:httpmail:}'


def multistatus_body(*responses):
    "responses are (href, {clark name or alias: value}) pairs"
    root = etree.Element('{DAV:}multistatus', nsmap={'a': 'DAV:'})
    for href, properties in responses:
        response = etree.SubElement(root, '{DAV:}response')
        etree.SubElement(response, '{DAV:}href').text = href
        propstat = etree.SubElement(response, '{DAV:}propstat')
        etree.SubElement(propstat, '{DAV:}status').text = 'HTTP/1.1 200 OK'
        prop = etree.SubElement(propstat, '{DAV:}prop')
        for name, value in properties.items():
            etree.SubElement(prop, name).text = value
    return etree.tostring(root, xml_declaration=True, encoding='utf-8')


def reply(status, body=b'', headers=None):
    return DavResponse(status, REASONS.get(status, ''), headers or {}, body)


def multistatus(*responses):
    return reply(207, multistatus_body(*responses))


def well_known_reply():
    return multistatus((f'{HOST}{MAIL_PATH}', {
        HTTPMAIL + 'inbox': INBOX_URL,
        HTTPMAIL + 'deleteditems': TRASH_URL.replace(' ', '%20'),
        HTTPMAIL + 'sentitems': SENT_URL.replace(' ', '%20'),
        HTTPMAIL + 'sendmsg': SENDMSG_URL.replace('#', '%23'),
        HTTPMAIL + 'drafts': DRAFTS_URL,
        HTTPMAIL + 'calendar': CALENDAR_URL,
        HTTPMAIL + 'contacts': CONTACTS_URL,
        HTTPMAIL + 'outbox': OUTBOX_URL,
    }))


class FakeStream:
    """DavStream over an in-memory body, counts release() calls"""

    def __init__(self, response, chunk_size=5):
        self.status = response.status
        self.reason = response.reason
        self.headers = response.headers
        self.url = response.url
        self.body = response.body
        self.chunk_size = chunk_size
        self.releases = 0

    async def iter_chunks(self):
        for i in range(0, len(self.body), self.chunk_size):
            yield self.body[i:i + self.chunk_size]

    def release(self):
        self.releases += 1

    @property
    def released(self):
        return self.releases > 0


class FakeDav(DavClient):
    """DavClient answering from an in-memory routing table.

    Routes map (method, url) to a list of replies, the last reply of a
    route keeps answering. Unrouted requests get 404.
    """

    def __init__(self, landing=None):
        super().__init__(f'{HOST}/exchange/', 'jdoe', 'secret', timeout=5)
        self.landing = landing
        self.routes = {}
        self.requests = []
        self.streams = []

    def route(self, method, url, *replies):
        self.routes.setdefault((method, url), []).extend(replies)

    def _reply(self, request):
        self.requests.append(request)
        replies = self.routes.get((request.method, request.url))
        if not replies:
            response = reply(404)
        elif len(replies) > 1:
            response = replies.pop(0)
        else:
            response = replies[0]
        if callable(response):
            response = response(request)
        return DavResponse(response.status, response.reason, response.headers, response.body, request.url)

    def sent(self, method=None):
        return [r for r in self.requests if method is None or r.method == method]

    async def login(self):
        return self.landing

    async def execute(self, request):
        response = self._reply(request)
        if request.parse_body and response.status == 207:
            response.responses = parse_multistatus(response.body)
        return response

    async def open(self, request):
        stream = FakeStream(self._reply(request))
        self.streams.append(stream)
        return stream

    async def close(self):
        pass


def landing_page(base_href=f'{HOST}{MAIL_PATH}', url=f'{HOST}/exchange/'):
    body = '<html>\n<head>\n<title>Outlook</title>\n'
    if base_href:
        body += f'<BASE href="{base_href}">\n'
    body += '</head>\n<body></body>\n</html>\n'
    return DavResponse(200, 'OK', {}, body.encode(), url)


@pytest.fixture()
def fake():
    fake = FakeDav(landing_page())
    fake.route('PROPFIND', MAIL_PATH, well_known_reply())
    fake.route('PROPFIND', PUBLIC_URL, multistatus((PUBLIC_URL + '/', {'{http://schemas.microsoft.com/repl/}contenttag': 'c1'})))
    return fake


@pytest.fixture()
async def account(fake):
    account = DavAccount(fake, 'jdoe', force_activesync_update=False, delete_broken=False)
    await account.ainit()
    fake.requests.clear()
    return account
