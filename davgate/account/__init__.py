from davgate.fields import DEFAULT_FIELDS
from .session import SessionMixin
from .folders import FolderMixin
from .items import ItemMixin


class DavAccount(SessionMixin, FolderMixin, ItemMixin):
    """
    This class is responsible for mixing session bootstrap, folder and item methods
    of one Exchange mailbox
    """

    def __init__(self, client, username=None, fields=DEFAULT_FIELDS,
                 force_activesync_update=None, delete_broken=None,
                 ):
        SessionMixin.__init__(self, client, username, fields)
        FolderMixin.__init__(self)
        ItemMixin.__init__(self, force_activesync_update, delete_broken)

    async def ainit(self):
        return await SessionMixin.ainit(self)

    @property
    def email(self):
        return self.state.email if self.state else None
