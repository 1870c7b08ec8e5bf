from collections.abc import Mapping
from types import MappingProxyType

from davgate import errors

DAV = 'DAV:'
URN_SCHEMAS_HTTPMAIL = 'urn:schemas:httpmail:'
URN_SCHEMAS_MAILHEADER = 'urn:schemas:mailheader:'
URN_SCHEMAS_CALENDAR = 'urn:schemas:calendar:'
SCHEMAS_EXCHANGE = 'http://schemas.microsoft.com/exchange/'
SCHEMAS_MAPI_PROPTAG = 'http://schemas.microsoft.com/mapi/proptag/'
SCHEMAS_REPL = 'http://schemas.microsoft.com/repl/'


class Field:
    """Logical property name bound to one (namespace, name) pair"""
    __slots__ = ('alias', 'namespace', 'name')

    def __init__(self, alias, namespace, name=None):
        self.alias = alias
        self.namespace = namespace
        self.name = name or alias

    @property
    def uri(self):
        "Name as used in SEARCH queries"
        return self.namespace + self.name

    @property
    def clark(self):
        "Name as parsed from multistatus responses"
        if self.namespace:
            return f'{{{self.namespace}}}{self.name}'
        return self.name

    def __repr__(self):
        return f'Field({self.alias!r}, {self.uri!r})'


def mapi(alias, tag, proptype):
    return Field(alias, SCHEMAS_MAPI_PROPTAG, f'x{tag:04x}{proptype:04x}')

PT_LONG = 0x0003
PT_SYSTIME = 0x0040
PT_BINARY = 0x0102


class FieldRegistry(Mapping):
    """Read-only alias -> Field table.

    Built once at import time and shared by every session; sessions get it
    passed in so tests can use their own table.
    """

    def __init__(self, fields):
        self._fields = MappingProxyType({f.alias: f for f in fields})

    def __getitem__(self, alias):
        try:
            return self._fields[alias]
        except KeyError:
            raise errors.UnknownFieldError(f'Unknown field {alias}')

    def __iter__(self):
        return iter(self._fields)

    def __len__(self):
        return len(self._fields)

    def header(self, name):
        "Mail header fields are not registered, they all live in the mailheader namespace"
        return URN_SCHEMAS_MAILHEADER + name.lower()


DEFAULT_FIELDS = FieldRegistry([
    # well known folder urls on the mailbox root
    Field('inbox', URN_SCHEMAS_HTTPMAIL),
    Field('deleteditems', URN_SCHEMAS_HTTPMAIL),
    Field('sentitems', URN_SCHEMAS_HTTPMAIL),
    Field('sendmsg', URN_SCHEMAS_HTTPMAIL),
    Field('drafts', URN_SCHEMAS_HTTPMAIL),
    Field('calendar', URN_SCHEMAS_HTTPMAIL),
    Field('contacts', URN_SCHEMAS_HTTPMAIL),
    Field('outbox', URN_SCHEMAS_HTTPMAIL),

    # folder
    Field('folderclass', SCHEMAS_EXCHANGE, 'outlookfolderclass'),
    Field('hassubs', DAV),
    Field('nosubs', DAV),
    Field('unreadcount', URN_SCHEMAS_HTTPMAIL),
    Field('contenttag', SCHEMAS_REPL),
    Field('lastmodified', DAV, 'getlastmodified'),
    mapi('lastmodificationtime', 0x3008, PT_SYSTIME),
    Field('ishidden', DAV),
    Field('isfolder', DAV),

    # item
    Field('permanenturl', SCHEMAS_EXCHANGE),
    Field('etag', DAV, 'getetag'),
    Field('contentclass', DAV),
    Field('displayname', DAV),
    Field('instancetype', URN_SCHEMAS_CALENDAR),
    mapi('internetContent', 0x6659, PT_BINARY),

    # message
    Field('uid', DAV),
    mapi('messageSize', 0x0e08, PT_LONG),
    mapi('imapUid', 0x0e23, PT_LONG),
    Field('read', URN_SCHEMAS_HTTPMAIL),
    mapi('junk', 0x1083, PT_LONG),
    mapi('flagStatus', 0x1090, PT_LONG),
    mapi('messageFlags', 0x0e07, PT_LONG),
    mapi('lastVerbExecuted', 0x1081, PT_LONG),
    mapi('iconIndex', 0x1080, PT_LONG),
    mapi('deleted', 0x8570, PT_LONG),
    mapi('writedeleted', 0x8570, PT_LONG),
    Field('date', URN_SCHEMAS_HTTPMAIL),
    Field('datereceived', URN_SCHEMAS_HTTPMAIL),
    Field('subject', URN_SCHEMAS_HTTPMAIL),
    Field('from', URN_SCHEMAS_MAILHEADER),
    Field('to', URN_SCHEMAS_MAILHEADER),
    Field('cc', URN_SCHEMAS_MAILHEADER),
    Field('bcc', URN_SCHEMAS_MAILHEADER),
    Field('messageid', URN_SCHEMAS_MAILHEADER, 'message-id'),
])

WELL_KNOWN_FOLDERS = ('inbox', 'deleteditems', 'sentitems', 'sendmsg',
                      'drafts', 'calendar', 'contacts', 'outbox')

FOLDER_PROPERTIES = ('folderclass', 'hassubs', 'nosubs', 'unreadcount',
                     'contenttag', 'lastmodified', 'lastmodificationtime')

ITEM_PROPERTIES = ('permanenturl', 'etag', 'contentclass', 'displayname')

CONTENT_TAG = ('contenttag',)

DISPLAY_NAME = ('displayname',)
