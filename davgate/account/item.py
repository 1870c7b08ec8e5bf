import logging

from davgate import errors
from davgate.fields import DEFAULT_FIELDS

log = logging.getLogger('davgate.account')

CONTENT_CLASS_PERSON = 'urn:content-classes:person'
CONTENT_CLASS_APPOINTMENT = 'urn:content-classes:appointment'
CONTENT_CLASS_CALENDARMESSAGE = 'urn:content-classes:calendarmessage'

# PR_LAST_VERB_EXECUTED values
VERB_REPLY_TO_SENDER = '102'
VERB_REPLY_TO_ALL = '103'
VERB_FORWARD = '104'

# PR_ICON_INDEX values
ICON_REPLIED = '261'
ICON_FORWARDED = '262'


class PropertyReader:
    """Looks up fields in one multistatus property set.

    Aliased SEARCH columns come back without namespace, PROPFIND
    properties come back with their real namespace.
    """
    __slots__ = ('properties', 'fields')

    def __init__(self, properties, fields=DEFAULT_FIELDS):
        self.properties = properties
        self.fields = fields

    def get(self, alias):
        value = self.properties.get(alias)
        if value is None:
            value = self.properties.get(self.fields[alias].clark)
        return value

    def get_int(self, alias):
        value = self.get(alias)
        return int(value) if value else 0


class DavItem(dict):
    "Message, contact or event, tagged by kind"
    __slots__ = ()

    @property
    def kind(self):
        return self['kind']

    def __repr__(self):
        return f"<DavItem {self['kind']} {self['href']}>"


class ItemResult:
    __slots__ = ('status', 'etag')

    def __init__(self, status, etag=None):
        self.status = status
        self.etag = etag

    def __repr__(self):
        return f'<ItemResult {self.status} {self.etag}>'


def _build_item(kind, entry, props):
    return DavItem(
        kind=kind,
        href=entry.href,
        permanentUrl=props.get('permanenturl'),
        etag=props.get('etag'),
        displayName=props.get('displayname'),
    )


def build_message(entry, fields=DEFAULT_FIELDS):
    props = PropertyReader(entry.properties, fields)
    message = _build_item('message', entry, props)
    last_verb = props.get('lastVerbExecuted')
    message.update(
        size=props.get_int('messageSize'),
        uid=props.get('uid'),
        imapUid=props.get_int('imapUid'),
        read=props.get('read') == '1',
        junk=props.get('junk') == '1',
        flagged=props.get('flagStatus') == '2',
        draft=props.get('messageFlags') == '9',
        answered=last_verb in (VERB_REPLY_TO_SENDER, VERB_REPLY_TO_ALL),
        forwarded=last_verb == VERB_FORWARD,
        date=props.get('date'),
        deleted=props.get('deleted') == '1',
    )
    log.debug(f"Message IMAP uid: {message['imapUid']} uid: {message['uid']} "
              f"href: {message['href']} permanenturl: {message['permanentUrl']}")
    return message


def build_contact(entry, fields=DEFAULT_FIELDS):
    return _build_item('contact', entry, PropertyReader(entry.properties, fields))


def build_event(entry, fields=DEFAULT_FIELDS):
    return _build_item('event', entry, PropertyReader(entry.properties, fields))


def classify_item(entry, fields=DEFAULT_FIELDS):
    content_class = PropertyReader(entry.properties, fields).get('contentclass')
    if content_class == CONTENT_CLASS_PERSON:
        return build_contact(entry, fields)
    if content_class in (CONTENT_CLASS_APPOINTMENT, CONTENT_CLASS_CALENDARMESSAGE):
        return build_event(entry, fields)
    raise errors.ItemNotFoundError(f'No contact or event at {entry.href}')


def build_properties(flags, fields=DEFAULT_FIELDS):
    "Translate message flag updates to (Field, value) pairs, unknown flags are ignored"
    properties = []
    for name, value in flags.items():
        if name in ('read', 'junk', 'bcc', 'datereceived'):
            properties.append((fields[name], value))
        elif name == 'flagged':
            properties.append((fields['flagStatus'], value))
        elif name == 'answered':
            properties.append((fields['lastVerbExecuted'], value))
            if value == VERB_REPLY_TO_SENDER:
                properties.append((fields['iconIndex'], ICON_REPLIED))
        elif name == 'forwarded':
            properties.append((fields['lastVerbExecuted'], value))
            if value == VERB_FORWARD:
                properties.append((fields['iconIndex'], ICON_FORWARDED))
        elif name == 'draft':
            properties.append((fields['messageFlags'], value))
        elif name == 'deleted':
            properties.append((fields['writedeleted'], value))
    return properties
