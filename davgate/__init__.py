from davgate.account import DavAccount
from davgate.http import DavClient
from davgate.fields import DEFAULT_FIELDS

__all__ = ['DavAccount', 'DavClient', 'DEFAULT_FIELDS']
