"""
WebDAV destination.

Lists a collection with a depth-1 PROPFIND and deletes resources with the
DELETE verb on their href.
"""

import os
from email.utils import parsedate_to_datetime
from typing import Callable, Optional
from urllib.parse import quote, unquote, urljoin, urlparse
from xml.etree import ElementTree as ET

import requests

from .base import DeleteResult, StorageBackend, StorageError
from vaultprune.retention.types import RemoteEntry


DAV_NS = {'d': 'DAV:'}

PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:"><d:prop>'
    '<d:getcontentlength/><d:getlastmodified/><d:resourcetype/>'
    '</d:prop></d:propfind>'
)


class WebDAVStorage(StorageBackend):
    """Handler for archives stored in a WebDAV collection."""

    storage_type = 'webdav'

    def __init__(
        self,
        url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        verify_tls: bool = True,
        timeout: int = 60,
        session: Optional[requests.Session] = None
    ):
        """
        Args:
            url: Collection URL holding the archives
            username: Basic auth username
            password: Basic auth password
            verify_tls: Verify the server certificate
            timeout: Request timeout in seconds
            session: Pre-configured requests session
        """
        self.url = url if url.endswith('/') else url + '/'
        self.timeout = timeout
        self.session = session or requests.Session()
        if username:
            self.session.auth = (username, password or '')
        self.session.verify = verify_tls

    def describe(self) -> str:
        return self.url.rstrip('/')

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise StorageError(f"WebDAV {method} {url} failed: {e}")

    def _iter_records(self):
        response = self._request(
            'PROPFIND',
            self.url,
            data=PROPFIND_BODY,
            headers={'Depth': '1', 'Content-Type': 'application/xml; charset=utf-8'}
        )
        if response.status_code == 404:
            raise StorageError(f"WebDAV collection not found: {self.url}")
        if response.status_code != 207:
            raise StorageError(f"WebDAV PROPFIND returned HTTP {response.status_code}")

        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as e:
            raise StorageError(f"Invalid PROPFIND response: {e}")

        return root.findall('d:response', DAV_NS)

    def _entry_from_record(self, node: ET.Element) -> Optional[RemoteEntry]:
        href = (node.findtext('d:href', default='', namespaces=DAV_NS) or '').strip()
        if not href:
            return None

        collection_path = urlparse(self.url).path.rstrip('/')
        if unquote(urlparse(href).path).rstrip('/') == unquote(collection_path):
            return None

        prop = None
        for propstat in node.findall('d:propstat', DAV_NS):
            status = propstat.findtext('d:status', default='', namespaces=DAV_NS)
            if status.split()[1:2] == ['200']:
                prop = propstat.find('d:prop', DAV_NS)
                break
        if prop is None:
            return None

        if prop.find('d:resourcetype/d:collection', DAV_NS) is not None:
            return None

        length = prop.findtext('d:getcontentlength', default='0', namespaces=DAV_NS) or '0'
        modified = prop.findtext('d:getlastmodified', default='', namespaces=DAV_NS)
        if not modified:
            return None

        return RemoteEntry(
            name=unquote(href.rstrip('/').rsplit('/', 1)[-1]),
            size=int(length),
            modified_time=parsedate_to_datetime(modified),
            handle=urljoin(self.url, href)
        )

    def delete(self, entry: RemoteEntry) -> DeleteResult:
        response = self._request('DELETE', entry.handle)
        if response.status_code == 404:
            return DeleteResult.ALREADY_ABSENT
        if response.status_code in (200, 202, 204):
            return DeleteResult.DELETED
        raise StorageError(f"WebDAV DELETE {entry.handle} returned HTTP {response.status_code}")

    def upload(self, local_path: str, cancellation_check: Optional[Callable[[], None]] = None) -> str:
        self._check_local_file(local_path)

        if cancellation_check:
            cancellation_check()

        target = urljoin(self.url, quote(os.path.basename(local_path)))
        with open(local_path, 'rb') as f:
            response = self._request('PUT', target, data=f)
        if response.status_code not in (200, 201, 204):
            raise StorageError(f"WebDAV PUT {target} returned HTTP {response.status_code}")
        return target

    def cleanup(self):
        self.session.close()
