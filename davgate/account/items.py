import logging
import zlib
from base64 import b64encode
from contextlib import asynccontextmanager
from operator import itemgetter
from uuid import uuid4

from davgate import config, errors
from davgate.account.folders import DRAFTS
from davgate.account.item import (
    PropertyReader, ItemResult, build_contact, build_event, build_message,
    build_properties, classify_item,
)
from davgate.condition import equals
from davgate.fields import ITEM_PROPERTIES
from davgate.http import (
    HTTP_CREATED, HTTP_MULTI_STATUS, HTTP_NOT_FOUND, HTTP_OK,
    HTTP_PRECONDITION_FAILED, copy, delete, encode_path, get, move, propfind,
    proppatch, put, search, status_error,
)

log = logging.getLogger('davgate.account')

MESSAGE_ATTRIBUTES = ('uid', 'messageSize', 'imapUid', 'read', 'junk', 'flagStatus',
                      'messageFlags', 'lastVerbExecuted', 'date', 'deleted', 'etag')
CONTACT_ATTRIBUTES = ('etag', 'displayname', 'contentclass')
EVENT_ATTRIBUTES = ('etag', 'displayname', 'contentclass', 'instancetype')


async def first_found(*attempts):
    """Await attempts in order, return the first result that is not None.

    Attempts return None for "not found" and raise on any other failure.
    """
    for attempt in attempts:
        result = await attempt()
        if result is not None:
            return result
    return None


def is_gzip_encoded(headers):
    encoding = headers.get('Content-Encoding') or ''
    return any(token.strip().lower() == 'gzip' for token in encoding.split(','))


def eml_name(item_name):
    # contacts and events are stored as .EML items
    if item_name.endswith(('.vcf', '.ics')):
        return item_name[:-4] + '.EML'
    return item_name


def _bytes(body):
    return body.encode('utf-8') if isinstance(body, str) else body


class ContentReader:
    """Async iterator over decoded body chunks of an open DavStream"""

    def __init__(self, stream):
        self.stream = stream
        self.gzip = is_gzip_encoded(stream.headers)
        # 16 + MAX_WBITS: expect gzip header and trailer
        self._decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS) if self.gzip else None

    def __aiter__(self):
        return self._chunks()

    async def _chunks(self):
        async for chunk in self.stream.iter_chunks():
            if self._decompressor is not None:
                chunk = self._decompressor.decompress(chunk)
            if chunk:
                yield chunk
        if self._decompressor is not None:
            tail = self._decompressor.flush()
            if tail:
                yield tail

    async def read(self):
        return b''.join([chunk async for chunk in self])


class ItemMixin:
    """Search, read and write messages, contacts and events"""

    def __init__(self, force_activesync_update=None, delete_broken=None):
        if force_activesync_update is None:
            force_activesync_update = config.FORCE_ACTIVESYNC_UPDATE
        if delete_broken is None:
            delete_broken = config.DELETE_BROKEN
        self.force_activesync_update = force_activesync_update
        self.delete_broken = delete_broken

    def _folder_url(self, attr):
        "Discovered well-known url without trailing slash"
        url = getattr(self.state, attr)
        if not url:
            raise errors.MailboxDiscoveryError(f'No {attr} discovered for {self.state.email}')
        return url.rstrip('/')

    async def search_items(self, folder_path, attributes, condition=None):
        "SHALLOW search of non-hidden items, returns MultiStatusEntry list"
        folder_url = self.resolve(folder_path)
        permanenturl = self.fields['permanenturl']
        columns = [f'"{permanenturl.uri}" as {permanenturl.alias}']
        for alias in attributes:
            field = self.fields[alias]
            columns.append(f'"{field.uri}" as {field.alias}')
        query = self._compile_where(
            f"Select {','.join(columns)}"
            f" FROM Scope('SHALLOW TRAVERSAL OF \"{folder_url}\"')"
            ' WHERE "DAV:ishidden" = False AND "DAV:isfolder" = False',
            condition)
        log.debug(f'Search items: {query}')
        return await self.client.multistatus(search(encode_path(folder_url), query),
                                             not_found=errors.FolderNotFoundError)

    async def search_messages(self, folder_path, condition=None, attributes=MESSAGE_ATTRIBUTES):
        entries = await self.search_items(folder_path, attributes, condition)
        messages = [build_message(entry, self.fields) for entry in entries]
        messages.sort(key=itemgetter('imapUid', 'href'))
        return messages

    async def search_contacts(self, folder_path, condition=None, attributes=CONTACT_ATTRIBUTES):
        entries = await self.search_items(folder_path, attributes, condition)
        return [build_contact(entry, self.fields) for entry in entries]

    async def search_events(self, folder_path, condition=None, attributes=EVENT_ATTRIBUTES):
        entries = await self.search_items(folder_path, attributes, condition)
        events = []
        for entry in entries:
            event = build_event(entry, self.fields)
            if PropertyReader(entry.properties, self.fields).get('instancetype') is None:
                # no instancetype: keep only events with a readable body
                try:
                    await self.get_message_body(event)
                except errors.DavError as e:
                    log.warning(f"Invalid event {event['displayName']} found at {event['href']}: {e}")
                    continue
            events.append(event)
        return events

    async def _find_item(self, url):
        "PROPFIND item at url, None when not found"
        request = propfind(url, [self.fields[f] for f in ITEM_PROPERTIES], 0)
        response = await self.client.execute(request)
        if response.status == HTTP_NOT_FOUND:
            return None
        if response.status != HTTP_MULTI_STATUS:
            raise status_error(response, not_found=None)
        if not response.responses:
            return None
        return classify_item(response.responses[0], self.fields)

    async def _find_item_by_display_name(self, folder_path, name):
        # restore characters Exchange encoded in the item name
        name = name.replace('_xF8FF_', '/').replace('_x003F_', '?').replace("'", "''")
        log.debug(f'Item not found at {folder_path}, search by displayname: {name}')
        entries = await self.search_items(folder_path, (), equals('displayname', name))
        if not entries:
            return None
        permanent_url = PropertyReader(entries[0].properties, self.fields).get('permanenturl')
        if not permanent_url:
            return None
        return await self._find_item(permanent_url)

    async def get_item(self, folder_path, item_name):
        name = eml_name(item_name)
        item_url = encode_path(self.resolve(folder_path) + '/' + name)
        item = await first_found(
            lambda: self._find_item(item_url),
            lambda: self._find_item_by_display_name(folder_path, name),
        )
        if item is None:
            raise errors.ItemNotFoundError(f'Item {item_name} not found in {folder_path}')
        return item

    async def get_item_by_url(self, url):
        item = await self._find_item(url)
        if item is None:
            raise errors.ItemNotFoundError(f'Item not found at {url}')
        return item

    async def create_or_update_item(self, kind, item_url, content_class, body, etag=None, none_match=None):
        """PUT contact or event content at item_url.

        Returns ItemResult, status 200 means updated, 201 created. Other
        statuses are returned for the caller to relay except 412 which
        raises PreconditionFailedError.
        """
        body = _bytes(body)
        url = encode_path(item_url)
        response = await self.client.execute(put(url, body, etag=etag, none_match=none_match, overwrite=False))
        status = response.status
        if status == HTTP_OK:
            if etag is not None:
                log.debug(f'Updated {kind} {item_url}')
            else:
                log.warning(f'Overwritten {kind} {item_url}')
        elif status == HTTP_PRECONDITION_FAILED:
            raise errors.PreconditionFailedError.from_response(
                response, f'Unable to create or update {kind} {item_url}: precondition failed')
        elif status != HTTP_CREATED:
            log.warning(f'Unable to create or update {kind}: {status} {response.reason}')

        result = ItemResult(status, response.headers.get('GetETag'))
        if status in (HTTP_OK, HTTP_CREATED) and self.force_activesync_update:
            await self._push_update(result, url, content_class, body)
        return result

    async def _push_update(self, result, url, content_class, body):
        # rewriting the content through PROPPATCH makes ActiveSync notice the change
        properties = [
            (self.fields['contentclass'], content_class),
            (self.fields['internetContent'], b64encode(body).decode('ascii')),
        ]
        response = await self.client.execute(proppatch(url, properties))
        if response.status != HTTP_MULTI_STATUS:
            log.warning(f'Unable to patch item to trigger ActiveSync push: {response.status} {response.reason}')
            return
        item = await self.get_item_by_url(url)
        result.etag = item['etag']

    async def create_message(self, folder_path, message_name, properties, body):
        message_url = encode_path(self.resolve(folder_path) + '/' + message_name + '.EML')
        remaining = {k: v for k, v in properties.items() if k != 'draft'}

        if 'draft' in properties:
            # Exchange accepts properties on a path that has no content yet
            patch = build_properties({'draft': properties['draft']}, self.fields)
            response = await self.client.execute(proppatch(message_url, patch))
            if response.status != HTTP_MULTI_STATUS:
                raise errors.TransportError.from_response(response, f'Unable to create message {message_url}: '
                                                                    f'{response.status} {response.reason}')

        response = await self.client.execute(put(message_url, _bytes(body)))
        if response.status not in (HTTP_OK, HTTP_CREATED):
            raise errors.TransportError.from_response(response, f'Unable to create message {message_url}: '
                                                                f'{response.status} {response.reason}')

        patch = build_properties(remaining, self.fields)
        if patch:
            response = await self.client.execute(proppatch(message_url, patch))
            if response.status != HTTP_MULTI_STATUS:
                raise errors.TransportError.from_response(response, f'Unable to patch message {message_url}: '
                                                                    f'{response.status} {response.reason}')
        log.debug(f'Created message {message_url}')
        return message_url

    async def update_message(self, message, properties):
        request = proppatch(message['permanentUrl'], build_properties(properties, self.fields), parse_body=False)
        response = await self.client.execute(request)
        if response.status != HTTP_MULTI_STATUS:
            raise errors.TransportError.from_response(response, f'Unable to update message properties: '
                                                                f'{response.status} {response.reason}')

    async def delete_item(self, url):
        response = await self.client.execute(delete(url))
        if response.status != HTTP_NOT_FOUND and not HTTP_OK <= response.status < 300:
            raise status_error(response, not_found=None)

    async def delete_message(self, message):
        log.debug(f"Delete {message['permanentUrl']} ({message['href']})")
        await self.delete_item(message['permanentUrl'])

    async def send_message(self, properties, body):
        self._folder_url('drafts_url')
        sendmsg_url = encode_path(self._folder_url('sendmsg_url'))
        message_name = str(uuid4())
        # create in drafts, then move to the send url
        draft_url = await self.create_message(DRAFTS, message_name, properties, body)
        response = await self.client.execute(move(draft_url, sendmsg_url, overwrite=True))
        if response.status != HTTP_OK:
            raise errors.TransportError.from_response(response, f'Unable to send message: '
                                                                f'{response.status} {response.reason}')
        log.debug(f'Sent message {message_name}')

    async def move_to_trash(self, message):
        destination = encode_path(self._folder_url('deleteditems_url')) + '/' + str(uuid4())
        log.debug(f"Deleting: {message['permanentUrl']} to {destination}")
        response = await self.client.execute(
            move(message['permanentUrl'], destination, overwrite=False, allow_rename=True))
        # already gone is fine
        if response.status not in (HTTP_CREATED, HTTP_NOT_FOUND):
            raise status_error(response, not_found=None)
        destination = response.headers.get('Location') or destination
        log.debug(f'Deleted to: {destination}')
        return destination

    async def copy_message(self, message, target_folder):
        target = encode_path(self.resolve(target_folder)) + '/' + str(uuid4())
        response = await self.client.execute(
            copy(message['permanentUrl'], target, overwrite=False, allow_rename=True))
        if response.status == HTTP_PRECONDITION_FAILED:
            raise errors.CopyConflictError.from_response(
                response, f'Unable to copy message, target {target} already exists')
        if response.status != HTTP_CREATED:
            raise status_error(response, not_found=errors.ItemNotFoundError, precondition=None)
        return target

    async def _open_content(self, url):
        "GET url without reading the body, None when not found"
        if not url:
            return None
        stream = await self.client.open(get(url))
        if stream.status == HTTP_OK:
            return stream
        stream.release()
        if stream.status == HTTP_NOT_FOUND:
            return None
        raise status_error(stream, not_found=None)

    @asynccontextmanager
    async def message_content(self, message):
        """Yield a ContentReader of the item body.

        Tries the item url first, then its permanent url. The connection is
        released when the block exits, whatever happens inside.
        """
        href = encode_path(message['href']) if message.get('href') else None
        stream = await first_found(
            lambda: self._open_content(href),
            lambda: self._open_content(message.get('permanentUrl')),
        )
        if stream is None:
            log.warning(f"Unable to retrieve message at: {message['href']}")
            if self.delete_broken and message.get('kind') == 'message':
                await self._delete_broken(message)
            raise errors.ItemNotFoundError(f"Unable to retrieve message at: {message['href']}")
        try:
            yield ContentReader(stream)
        finally:
            stream.release()

    async def _delete_broken(self, message):
        log.warning(f"Deleting broken message at: {message['href']} permanentUrl: {message['permanentUrl']}")
        try:
            await self.delete_message(message)
        except errors.DavError as e:
            log.warning(f"Unable to delete broken message at: {message['permanentUrl']}: {e}")

    async def get_message_body(self, message):
        async with self.message_content(message) as content:
            return await content.read()
