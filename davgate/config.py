import logging
import os


def getenv_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


URL = os.getenv('DAVGATE_URL', 'https://localhost/exchange/')
USERNAME = os.getenv('DAVGATE_USERNAME', '')
PASSWORD = os.getenv('DAVGATE_PASSWORD', '')
TIMEOUT = int(os.getenv('DAVGATE_TIMEOUT', 300))  # seconds

# trigger ActiveSync push by patching items after each conditional write
FORCE_ACTIVESYNC_UPDATE = getenv_bool('DAVGATE_FORCE_ACTIVESYNC_UPDATE')
# delete messages whose content cannot be read anymore
DELETE_BROKEN = getenv_bool('DAVGATE_DELETE_BROKEN')

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
log = logging.getLogger('davgate')
log.setLevel(LOG_LEVEL)
