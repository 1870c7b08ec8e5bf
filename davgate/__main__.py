"""Log in, discover the mailbox and print session state as JSON.

    DAVGATE_URL=https://mail.example.com/exchange/ DAVGATE_USERNAME=... \
    DAVGATE_PASSWORD=... python -m davgate
"""
import asyncio
import logging
import sys

try:
    import orjson as json
except ImportError:
    import json

from davgate import errors
from davgate.account import DavAccount
from davgate.http import DavClient

log = logging.getLogger('davgate')


async def diagnose():
    async with DavClient() as client:
        account = DavAccount(client)
        state = await account.ainit()
        folders = await account.get_sub_folders('')
        return {
            'session': state._asdict(),
            'alternateAuth': client.alternate_auth,
            'folders': [dict(folder) for folder in folders],
        }


def main():
    try:
        out = json.dumps(asyncio.run(diagnose()))
    except errors.DavError as e:
        print(f'{e.__class__.__name__}: {e}', file=sys.stderr)
        return 1
    if isinstance(out, bytes):
        out = out.decode('utf-8')
    print(out)
    return 0


if __name__ == '__main__':
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter('davgate %(levelname)s %(name)s %(message)s'))
    log.addHandler(handler)

    sys.exit(main())
