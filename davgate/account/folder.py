from davgate.fields import DEFAULT_FIELDS
from davgate.account.item import PropertyReader


class DavFolder(dict):
    """Folder as listed by the server.

    ``folderPath`` is placed by the caller, the same href maps to different
    logical paths depending on session state.
    """
    __slots__ = ()

    def __missing__(self, key):
        try:
            return getattr(self, key)()
        except AttributeError:
            raise KeyError(key)

    def name(self):
        self['name'] = self['folderPath'].rsplit('/', maxsplit=1)[-1]
        return self['name']

    def parentPath(self):
        parent, sep, _ = self['folderPath'].rpartition('/')
        self['parentPath'] = parent if sep else None
        return self['parentPath']

    def isCalendar(self):
        return (self['folderClass'] or '').startswith('IPF.Appointment')

    def isContact(self):
        return (self['folderClass'] or '').startswith('IPF.Contact')


def build_folder(entry, fields=DEFAULT_FIELDS):
    props = PropertyReader(entry.properties, fields)
    return DavFolder(
        href=entry.href,
        folderClass=props.get('folderclass'),
        hasChildren=props.get('hassubs') == '1',
        noInferiors=props.get('nosubs') == '1',
        unreadCount=props.get_int('unreadcount'),
        ctag=props.get('contenttag'),
        etag=props.get('lastmodificationtime'),
    )
