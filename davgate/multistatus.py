"""WebDAV XML bodies: request builders and multistatus parsing."""
from collections import namedtuple
from urllib.parse import unquote

from lxml import etree

DAV_NSMAP = {'D': 'DAV:'}

MultiStatusEntry = namedtuple('MultiStatusEntry', 'href properties')

_parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=True)


def propfind_body(fields):
    root = etree.Element('{DAV:}propfind', nsmap=DAV_NSMAP)
    prop = etree.SubElement(root, '{DAV:}prop')
    for field in fields:
        etree.SubElement(prop, field.clark)
    return _tostring(root)


def propertyupdate_body(properties):
    "properties is a list of (Field, value) pairs"
    root = etree.Element('{DAV:}propertyupdate', nsmap=DAV_NSMAP)
    prop = etree.SubElement(etree.SubElement(root, '{DAV:}set'), '{DAV:}prop')
    for field, value in properties:
        etree.SubElement(prop, field.clark).text = str(value)
    return _tostring(root)


def searchrequest_body(query):
    root = etree.Element('{DAV:}searchrequest', nsmap=DAV_NSMAP)
    etree.SubElement(root, '{DAV:}sql').text = query
    return _tostring(root)


def _tostring(root):
    return etree.tostring(root, xml_declaration=True, encoding='utf-8')


def parse_multistatus(body):
    """Parse multistatus body into MultiStatusEntry list.

    Only properties of 200 propstats are kept, keyed by clark name.
    Aliased SEARCH columns have no namespace and are keyed by bare alias.
    """
    if not body or not body.strip():
        return []
    root = etree.fromstring(body, _parser)
    entries = []
    for response in root.iter('{DAV:}response'):
        properties = {}
        for propstat in response.iterfind('{DAV:}propstat'):
            if _status_code(propstat.findtext('{DAV:}status')) != 200:
                continue
            for prop in propstat.iterfind('{DAV:}prop'):
                for element in prop:
                    if isinstance(element.tag, str):
                        properties[element.tag] = element.text
        href = unquote((response.findtext('{DAV:}href') or '').strip())
        entries.append(MultiStatusEntry(href, properties))
    return entries


def _status_code(status_line):
    # HTTP/1.1 200 OK
    try:
        return int(status_line.split()[1])
    except (AttributeError, IndexError, ValueError):
        return None
