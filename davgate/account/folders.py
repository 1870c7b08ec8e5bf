import logging
from urllib.parse import urlsplit

from davgate import errors
from davgate.account.folder import build_folder
from davgate.condition import ConditionCompiler
from davgate.fields import FOLDER_PROPERTIES
from davgate.http import (
    HTTP_CREATED, HTTP_METHOD_NOT_ALLOWED, HTTP_MULTI_STATUS, HTTP_NOT_FOUND,
    HTTP_OK, HTTP_PRECONDITION_FAILED, delete, encode_path, mkcol, move,
    propfind, search, status_error,
)

log = logging.getLogger('davgate.account')

INBOX = 'INBOX'
SENT = 'SENT'
DRAFTS = 'DRAFTS'
TRASH = 'TRASH'
CALENDAR = 'CALENDAR'
CONTACTS = 'CONTACTS'

# logical name -> SessionState attribute, in matching order
WELL_KNOWN_NAMES = (
    (INBOX, 'inbox_url'),
    (SENT, 'sentitems_url'),
    (DRAFTS, 'drafts_url'),
    (TRASH, 'deleteditems_url'),
    (CALENDAR, 'calendar_url'),
    (CONTACTS, 'contacts_url'),
)

FOLDER_SEARCH_COLUMNS = ('nosubs', 'hassubs', 'folderclass', 'contenttag',
                         'lastmodificationtime', 'unreadcount')


class FolderMixin:
    """Maps logical folder paths to server urls and manages folders"""

    def __init__(self):
        self.compiler = ConditionCompiler(self.fields)

    def resolve(self, folder_path):
        "Logical folder path -> server url"
        for name, attr in WELL_KNOWN_NAMES:
            url = getattr(self.state, attr)
            if url and (folder_path == name or folder_path.startswith(name + '/')):
                return url.rstrip('/') + folder_path[len(name):]
        if folder_path.startswith('public'):
            return '/' + folder_path
        if folder_path.startswith('/'):
            return folder_path
        return self.state.mail_path + folder_path

    def classify(self, href):
        "Server href -> logical folder path"
        for name, attr in WELL_KNOWN_NAMES:
            url = getattr(self.state, attr)
            if not url:
                continue
            url = url.rstrip('/')
            if href == url or href.startswith(url + '/'):
                path = name + href[len(url):]
                break
        else:
            mail_path = self.state.mail_path.rstrip('/')
            index = href.find(mail_path)
            end = index + len(mail_path)
            # mailbox root itself, not a sibling mailbox sharing its prefix
            if index >= 0 and (end == len(href) or href[end] == '/'):
                path = href[end + 1:]
            else:
                path = urlsplit(href).path
        if path.endswith('/'):
            path = path[:-1]
        return path

    def _compile_where(self, query, condition):
        if condition is not None:
            where = self.compiler.compile(condition)
            if where:
                query += ' AND ' + where
        return query

    async def get_folder(self, folder_path):
        request = propfind(encode_path(self.resolve(folder_path)),
                           [self.fields[f] for f in FOLDER_PROPERTIES], 0)
        entries = await self.client.multistatus(request, not_found=errors.FolderNotFoundError)
        if not entries:
            raise errors.FolderNotFoundError(f'Folder {folder_path} not found')
        folder = build_folder(entries[0], self.fields)
        folder['folderPath'] = folder_path
        return folder

    async def get_sub_folders(self, folder_path, condition=None, recursive=False):
        # public folders do not support deep traversal
        is_public = folder_path.startswith('/public')
        mode = 'DEEP' if recursive and not is_public else 'SHALLOW'
        folder_url = self.resolve(folder_path)
        columns = ', '.join(f'"{self.fields[f].uri}"' for f in FOLDER_SEARCH_COLUMNS)
        query = self._compile_where(
            f"Select {columns} FROM Scope('{mode} TRAVERSAL OF \"{folder_url}\"')\n"
            ' WHERE "DAV:ishidden" = False AND "DAV:isfolder" = True \n',
            condition)
        log.debug(f'Search folders: {query}')

        entries = await self.client.multistatus(search(encode_path(folder_url), query),
                                                not_found=errors.FolderNotFoundError)
        folders = []
        for entry in entries:
            folder = build_folder(entry, self.fields)
            folder['folderPath'] = self.classify(entry.href)
            folders.append(folder)
            if is_public and recursive and folder['folderPath'] != folder_path:
                folders.extend(await self.get_sub_folders(folder['folderPath'], condition, recursive))
        return folders

    async def create_folder(self, folder_path, folder_class):
        url = encode_path(self.resolve(folder_path))
        response = await self.client.execute(mkcol(url, [(self.fields['folderclass'], folder_class)]))
        # 405 means the folder already exists
        if response.status not in (HTTP_CREATED, HTTP_MULTI_STATUS, HTTP_METHOD_NOT_ALLOWED):
            raise status_error(response, not_found=errors.FolderNotFoundError)
        log.debug(f'Created folder {folder_path}: {response.status}')
        return response.status

    async def delete_folder(self, folder_path):
        url = encode_path(self.resolve(folder_path))
        response = await self.client.execute(delete(url))
        if response.status != HTTP_NOT_FOUND and not HTTP_OK <= response.status < 300:
            raise status_error(response)
        log.debug(f'Deleted folder {folder_path}: {response.status}')

    async def move_folder(self, folder_path, target_path):
        url = encode_path(self.resolve(folder_path))
        target = encode_path(self.resolve(target_path))
        response = await self.client.execute(move(url, target, overwrite=False))
        if response.status == HTTP_PRECONDITION_FAILED:
            raise errors.PreconditionFailedError.from_response(
                response, f'Unable to move folder, target {target_path} already exists')
        if response.status != HTTP_CREATED:
            raise status_error(response, not_found=errors.FolderNotFoundError)
        log.debug(f'Moved folder {folder_path} to {target_path}')
