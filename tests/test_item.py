import pytest

from davgate import errors
from davgate.account.folder import DavFolder, build_folder
from davgate.account.item import build_message, build_properties, classify_item
from davgate.fields import DEFAULT_FIELDS
from davgate.multistatus import MultiStatusEntry

MAPI = '{http://schemas.microsoft.com/mapi/proptag/}'


def test_build_message_flags():
    entry = MultiStatusEntry('https://mail.example.com/exchange/jdoe/Inbox/a.EML', {
        'read': '1',
        'flagStatus': '2',
        'messageFlags': '9',
        'lastVerbExecuted': '102',
    })
    message = build_message(entry)
    assert message.kind == 'message'
    assert message['read'] is True
    assert message['flagged'] is True
    assert message['draft'] is True
    assert message['answered'] is True
    assert message['forwarded'] is False
    assert message['junk'] is False
    # missing numbers are 0
    assert message['size'] == 0
    assert message['imapUid'] == 0


def test_build_message_from_propfind_names():
    entry = MultiStatusEntry('/exchange/jdoe/Inbox/a.EML', {
        MAPI + 'x0e080003': '1234',
        MAPI + 'x0e230003': '42',
        MAPI + 'x10810003': '104',
        '{DAV:}getetag': '"e1"',
    })
    message = build_message(entry)
    assert message['size'] == 1234
    assert message['imapUid'] == 42
    assert message['forwarded'] is True
    assert message['answered'] is False
    assert message['etag'] == '"e1"'


def test_classify_item():
    contact = classify_item(MultiStatusEntry('/c.EML', {'{DAV:}contentclass': 'urn:content-classes:person'}))
    assert contact.kind == 'contact'
    event = classify_item(MultiStatusEntry('/e.EML', {'{DAV:}contentclass': 'urn:content-classes:appointment'}))
    assert event.kind == 'event'
    meeting = classify_item(MultiStatusEntry('/m.EML', {'{DAV:}contentclass': 'urn:content-classes:calendarmessage'}))
    assert meeting.kind == 'event'
    with pytest.raises(errors.ItemNotFoundError):
        classify_item(MultiStatusEntry('/n.EML', {'{DAV:}contentclass': 'urn:content-classes:message'}))


def test_build_properties():
    properties = build_properties({'read': '1', 'answered': '102', 'unknown': 'x'})
    assert properties == [
        (DEFAULT_FIELDS['read'], '1'),
        (DEFAULT_FIELDS['lastVerbExecuted'], '102'),
        (DEFAULT_FIELDS['iconIndex'], '261'),
    ]
    properties = build_properties({'forwarded': '104', 'flagged': '2', 'draft': '9', 'deleted': '1'})
    assert properties == [
        (DEFAULT_FIELDS['lastVerbExecuted'], '104'),
        (DEFAULT_FIELDS['iconIndex'], '262'),
        (DEFAULT_FIELDS['flagStatus'], '2'),
        (DEFAULT_FIELDS['messageFlags'], '9'),
        (DEFAULT_FIELDS['writedeleted'], '1'),
    ]
    # answered reset does not touch the icon
    assert build_properties({'answered': '0'}) == [(DEFAULT_FIELDS['lastVerbExecuted'], '0')]


def test_build_folder():
    entry = MultiStatusEntry('https://mail.example.com/exchange/jdoe/Calendar/Work/', {
        'folderclass': 'IPF.Appointment',
        'hassubs': '1',
        'unreadcount': '3',
        'contenttag': 'ctag1',
        'lastmodificationtime': '2026-01-01T00:00:00Z',
    })
    folder = build_folder(entry)
    assert 'folderPath' not in folder
    folder['folderPath'] = 'CALENDAR/Work'
    assert folder['hasChildren'] is True
    assert folder['noInferiors'] is False
    assert folder['unreadCount'] == 3
    assert folder['ctag'] == 'ctag1'
    assert folder['etag'] == '2026-01-01T00:00:00Z'
    assert folder['name'] == 'Work'
    assert folder['parentPath'] == 'CALENDAR'
    assert folder.isCalendar()
    assert not folder.isContact()


def test_folder_missing_key():
    folder = DavFolder(folderPath='INBOX')
    assert folder['parentPath'] is None
    with pytest.raises(KeyError):
        folder['nosuchkey']
