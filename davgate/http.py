"""aiohttp transport for Exchange WebDAV.

Requests are plain ``DavRequest`` values built by the functions below, the
client only executes them. Every status is renormalized (Exchange 440 means
403) before callers see it.
"""
import asyncio
import logging
from urllib.parse import quote

from aiohttp import BasicAuth, ClientError, ClientSession, ClientTimeout
from yarl import URL

from davgate import config, errors
from davgate.multistatus import parse_multistatus, propertyupdate_body, propfind_body, searchrequest_body

log = logging.getLogger('davgate.http')

HTTP_OK = 200
HTTP_CREATED = 201
HTTP_MULTI_STATUS = 207
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_METHOD_NOT_ALLOWED = 405
HTTP_PRECONDITION_FAILED = 412
HTTP_EXCHANGE_FORBIDDEN = 440

XML_CONTENT_TYPE = 'text/xml; charset=utf-8'


def renormalize_status(status):
    if status == HTTP_EXCHANGE_FORBIDDEN:
        return HTTP_FORBIDDEN
    return status


def encode_path(path):
    return quote(path, safe="/:@!$&'()*+,;=~")


class DavRequest:
    __slots__ = ('method', 'url', 'headers', 'body', 'parse_body')

    def __init__(self, method, url, headers=None, body=None, parse_body=False):
        self.method = method
        self.url = url
        self.headers = headers or {}
        self.body = body
        self.parse_body = parse_body

    def __repr__(self):
        return f'<DavRequest {self.method} {self.url}>'


def propfind(url, fields, depth=0):
    return DavRequest('PROPFIND', url, {
        'Depth': str(depth),
        'Content-Type': XML_CONTENT_TYPE,
    }, propfind_body(fields), parse_body=True)


def proppatch(url, properties, method='PROPPATCH', parse_body=True):
    "properties is a list of (Field, value) pairs"
    return DavRequest(method, url, {
        'Content-Type': XML_CONTENT_TYPE,
    }, propertyupdate_body(properties), parse_body=parse_body)


def mkcol(url, properties):
    # plain MKCOL takes no properties, Exchange accepts a propertyupdate body
    return proppatch(url, properties, method='MKCOL')


def search(url, query):
    return DavRequest('SEARCH', url, {
        'Content-Type': XML_CONTENT_TYPE,
    }, searchrequest_body(query), parse_body=True)


def put(url, body, etag=None, none_match=None, content_type='message/rfc822', overwrite=None):
    headers = {'Translate': 'f'}
    if overwrite is not None:
        headers['Overwrite'] = 't' if overwrite else 'f'
    if etag is not None:
        headers['If-Match'] = etag
    if none_match is not None:
        headers['If-None-Match'] = none_match
    if content_type:
        headers['Content-Type'] = content_type
    return DavRequest('PUT', url, headers, body)


def move(url, destination, overwrite=False, allow_rename=False):
    return _transfer('MOVE', url, destination, overwrite, allow_rename)


def copy(url, destination, overwrite=False, allow_rename=False):
    return _transfer('COPY', url, destination, overwrite, allow_rename)


def _transfer(method, url, destination, overwrite, allow_rename):
    headers = {
        'Destination': destination,
        'Overwrite': 'T' if overwrite else 'F',
    }
    if allow_rename:
        headers['Allow-Rename'] = 't'
    return DavRequest(method, url, headers)


def delete(url):
    return DavRequest('DELETE', url)


def get(url):
    return DavRequest('GET', url, {
        'Content-Type': XML_CONTENT_TYPE,
        'Translate': 'f',
        'Accept-Encoding': 'gzip',
    })


class DavResponse:
    __slots__ = ('status', 'reason', 'headers', 'body', 'url', 'responses')

    def __init__(self, status, reason='', headers=None, body=b'', url=None, responses=None):
        self.status = status
        self.reason = reason
        self.headers = headers or {}
        self.body = body
        self.url = url
        self.responses = responses or []

    def __repr__(self):
        return f'<DavResponse {self.status} {self.url}>'


def status_error(response, not_found=errors.NotFoundError, precondition=errors.PreconditionFailedError):
    if response.status == HTTP_NOT_FOUND and not_found is not None:
        return not_found(f'Not found: {response.url}')
    if response.status == HTTP_PRECONDITION_FAILED and precondition is not None:
        return precondition.from_response(response)
    return errors.TransportError.from_response(response)


class DavStream:
    """Open response whose body is read incrementally.

    The underlying connection is released exactly once, by ``release()`` or
    by leaving ``async with``.
    """

    chunk_size = 8192

    def __init__(self, response):
        self._response = response
        self.status = renormalize_status(response.status)
        self.reason = response.reason
        self.headers = response.headers
        self.url = str(response.url)
        self.released = False

    async def iter_chunks(self):
        async for chunk in self._response.content.iter_chunked(self.chunk_size):
            yield chunk

    async def read(self):
        return await self._response.read()

    def release(self):
        if not self.released:
            self.released = True
            self._response.release()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.release()


class DavClient:
    """Authenticated HTTP facade for one mailbox session.

    After ``login()`` requests authenticate with the session cookies set by
    the landing page. ``enable_alternate_auth()`` switches to sending HTTP
    Basic credentials with every request, some servers require it on /public.
    """

    def __init__(self, url=None, username=None, password=None, timeout=None, http_session=None):
        self.url = URL(url or config.URL)
        self.username = config.USERNAME if username is None else username
        self.password = config.PASSWORD if password is None else password
        self.timeout = timeout or config.TIMEOUT
        self.alternate_auth = False
        self.http = http_session

    @property
    def auth(self):
        return BasicAuth(self.username, self.password)

    def enable_alternate_auth(self):
        if not self.alternate_auth:
            log.debug('Enabling basic authentication on every request')
            self.alternate_auth = True

    async def _session(self):
        if self.http is None:
            # gzip bodies are decoded by callers that asked for them
            self.http = ClientSession(
                timeout=ClientTimeout(total=self.timeout),
                auto_decompress=False,
            )
        return self.http

    def absolute(self, url):
        if url.startswith('/'):
            return self.url.join(URL(url, encoded=True))
        return URL(url, encoded=True)

    async def _send(self, request):
        session = await self._session()
        headers = dict(request.headers)
        if 'Destination' in headers:
            headers['Destination'] = str(self.absolute(headers['Destination']))
        return await session.request(
            request.method,
            self.absolute(request.url),
            headers=headers,
            data=request.body,
            auth=self.auth if self.alternate_auth else None,
            allow_redirects=False,
        )

    async def login(self):
        "GET landing page with credentials, returns DavResponse of the final page"
        session = await self._session()
        try:
            async with session.get(self.url, auth=self.auth) as res:
                body = await res.read()
                return DavResponse(renormalize_status(res.status), res.reason, res.headers, body, str(res.url))
        except (ClientError, asyncio.TimeoutError) as e:
            raise errors.TransportError(f'Unable to reach {self.url}: {e}', url=str(self.url)) from e

    async def execute(self, request):
        try:
            res = await self._send(request)
            try:
                body = await res.read()
            finally:
                res.release()
        except (ClientError, asyncio.TimeoutError) as e:
            raise errors.TransportError(f'{request.method} {request.url} failed: {e}', url=request.url) from e

        response = DavResponse(renormalize_status(res.status), res.reason, res.headers, body, request.url)
        if request.parse_body and response.status == HTTP_MULTI_STATUS:
            response.responses = parse_multistatus(body)
        log.debug(f'{request.method} {request.url} {response.status}')
        return response

    async def open(self, request):
        "Execute request without reading the body, caller must release the DavStream"
        try:
            res = await self._send(request)
        except (ClientError, asyncio.TimeoutError) as e:
            raise errors.TransportError(f'{request.method} {request.url} failed: {e}', url=request.url) from e
        log.debug(f'{request.method} {request.url} {res.status} (stream)')
        return DavStream(res)

    async def multistatus(self, request, not_found=errors.NotFoundError):
        response = await self.execute(request)
        if response.status != HTTP_MULTI_STATUS:
            raise status_error(response, not_found=not_found)
        return response.responses

    async def close(self):
        if self.http is not None:
            await self.http.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()
