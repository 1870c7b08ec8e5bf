class DavError(Exception):
    "Base gateway Exception"

    def __str__(self):
        return BaseException.__str__(self) or (self.__class__.__doc__ or '').strip()

    def to_dict(self):
        out = {'type': self.__class__.__name__}
        desc = str(self)
        if desc:
            out['description'] = desc
        return out


class AuthenticationError(DavError):
    "Unable to establish mailbox identity, password may be expired."

class MailboxDiscoveryError(DavError):
    "Unable to get well known mail folders."

class NotFoundError(DavError):
    "The resource cannot be found."

class ItemNotFoundError(NotFoundError):
    "The item cannot be found."

class FolderNotFoundError(NotFoundError):
    "The folder cannot be found."

class UnknownFieldError(DavError, KeyError):
    "The field name is not registered."

class UnsupportedOperatorError(DavError):
    "The operator has no token in the query language."


class TransportError(DavError):
    "The server returned an unexpected status."

    def __init__(self, message=None, status=None, reason=None, url=None):
        super().__init__(*(() if message is None else (message,)))
        self.status = status
        self.reason = reason
        self.url = url

    @classmethod
    def from_response(cls, response, message=None):
        return cls(
            message or f'{response.status} {response.reason} at {response.url}',
            status=response.status,
            reason=response.reason,
            url=response.url,
        )

    def to_dict(self):
        out = super().to_dict()
        if self.status is not None:
            out['status'] = self.status
        return out

class PreconditionFailedError(TransportError):
    "A conditional request failed, the target changed or already exists."

class CopyConflictError(PreconditionFailedError):
    "Unable to copy item, the target already exists."
