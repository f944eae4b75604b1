"""
Protocol clients for the remote providers that deliver PDRs.

Every client lists a directory, downloads one file into a local directory
and uploads a local file to the durable store. Network work always runs
inside a slot of the provider's ConnectionPool so a provider never sees more
than ``global_connection_limit`` simultaneous connections from this process.
"""
import ftplib
import os
import posixpath
import stat
import threading
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from logging import getLogger
from urllib.parse import urlparse

import paramiko
import requests
from bs4 import BeautifulSoup

from pdr.errors import ConfigurationError, ProviderConnectionError, UnsupportedProtocolError
from pdr.storage import pdr_key


log = getLogger(__name__)


class ConnectionPool:
    def __init__(self, limit):
        self.limit = limit
        self._slots = threading.BoundedSemaphore(limit)
        self._lock = threading.Lock()
        self.in_use = 0
        self.peak = 0

    @contextmanager
    def connection(self):
        with self._slots:
            with self._lock:
                self.in_use += 1
                self.peak = max(self.peak, self.in_use)
            try:
                yield
            finally:
                with self._lock:
                    self.in_use -= 1


class ConnectionPools:
    """One ConnectionPool per provider id, shared by every client built for that provider."""

    def __init__(self):
        self._pools = {}
        self._lock = threading.Lock()

    def get(self, provider):
        with self._lock:
            if provider.id not in self._pools:
                self._pools[provider.id] = ConnectionPool(provider.global_connection_limit)
            return self._pools[provider.id]


class ProtocolClient(ABC):
    transport_errors = (OSError,)
    timeout = 60

    def __init__(self, provider, store=None, pool=None):
        if not provider.host:
            raise ConfigurationError('Provider {0} has no host'.format(provider.id))
        self.provider = provider
        self.store = store
        self.pool = pool or ConnectionPool(provider.global_connection_limit)

    @abstractmethod
    def _list(self, path):
        pass

    @abstractmethod
    def _fetch(self, remote_file, local_path):
        pass

    def list(self, path):
        log.debug('Listing %s on %s', path, self.provider.host)
        with self.pool.connection():
            try:
                return self._list(path)
            except self.transport_errors as e:
                raise ProviderConnectionError('Failed to list {0} on {1}: {2}'.format(path, self.provider.host, e))

    def download(self, remote_path, name, destination=None):
        destination = destination or tempfile.gettempdir()
        remote_file = posixpath.join(remote_path, name)
        local_path = os.path.join(destination, name)
        partial_path = local_path + '.part'

        log.info('Downloading %s from %s to %s', remote_file, self.provider.host, local_path)
        with self.pool.connection():
            try:
                self._fetch(remote_file, partial_path)
            except self.transport_errors as e:
                _remove(partial_path)
                raise ProviderConnectionError('Failed to download {0} from {1}: {2}'.format(remote_file, self.provider.host, e))
            except BaseException:
                _remove(partial_path)
                raise
        os.replace(partial_path, local_path)
        return local_path

    def upload(self, bucket, key_prefix, name, local_path):
        if self.store is None:
            raise ConfigurationError('No durable store configured for uploads')
        self.store.upload_file(bucket, pdr_key(key_prefix, name), local_path)


def _remove(path):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


class FtpClient(ProtocolClient):
    transport_errors = ftplib.all_errors

    def _connect(self):
        ftp = ftplib.FTP()
        ftp.connect(self.provider.host, self.provider.port, timeout=self.timeout)
        ftp.login(self.provider.username or 'anonymous', self.provider.password or '')
        return ftp

    def _list(self, path):
        with self._connect() as ftp:
            try:
                return [
                    {'name': name, 'path': path, 'size': int(facts['size']) if 'size' in facts else None}
                    for name, facts in ftp.mlsd(path, facts=['type', 'size'])
                    if facts.get('type') == 'file'
                ]
            except ftplib.error_perm:
                log.debug('MLSD not supported by %s, falling back to NLST', self.provider.host)
                return self._nlst(ftp, path)

    def _nlst(self, ftp, path):
        ftp.voidcmd('TYPE I')
        entries = []
        for entry in ftp.nlst(path):
            name = posixpath.basename(entry)
            try:
                size = ftp.size(posixpath.join(path, name))
            except ftplib.error_perm:
                # directories have no size
                continue
            entries.append({'name': name, 'path': path, 'size': size})
        return entries

    def _fetch(self, remote_file, local_path):
        with self._connect() as ftp:
            with open(local_path, 'wb') as f:
                ftp.retrbinary('RETR {0}'.format(remote_file), f.write)


class SftpClient(ProtocolClient):
    transport_errors = (paramiko.SSHException, OSError, EOFError)

    @contextmanager
    def _session(self):
        transport = paramiko.Transport((self.provider.host, self.provider.port))
        try:
            transport.connect(username=self.provider.username, password=self.provider.password)
            sftp = paramiko.SFTPClient.from_transport(transport)
            try:
                yield sftp
            finally:
                sftp.close()
        finally:
            transport.close()

    def _list(self, path):
        with self._session() as sftp:
            return [
                {'name': attr.filename, 'path': path, 'size': attr.st_size}
                for attr in sftp.listdir_attr(path)
                if stat.S_ISREG(attr.st_mode)
            ]

    def _fetch(self, remote_file, local_path):
        with self._session() as sftp:
            sftp.get(remote_file, local_path)


class HttpClient(ProtocolClient):
    transport_errors = (requests.RequestException,)
    chunk_size = 1024 * 1024

    def __init__(self, provider, store=None, pool=None, session=None):
        super().__init__(provider, store, pool)
        self.session = session or requests.Session()
        if provider.username:
            self.session.auth = (provider.username, provider.password)

    @property
    def scheme(self):
        return 'https' if self.provider.protocol == 'https' else 'http'

    def url_for(self, path):
        netloc = self.provider.host
        if self.provider.port != {'http': 80, 'https': 443}[self.scheme]:
            netloc = '{0}:{1}'.format(netloc, self.provider.port)
        return '{0}://{1}/{2}'.format(self.scheme, netloc, path.lstrip('/'))

    def _list(self, path):
        url = self.url_for(path.rstrip('/') + '/')
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()

        soup = BeautifulSoup(response.text, 'html.parser')
        entries = []
        seen = set()
        for anchor in soup.find_all('a', href=True):
            link = urlparse(anchor['href'])
            if link.netloc and link.netloc != urlparse(url).netloc:
                continue
            if not link.path or link.path.endswith('/'):
                continue
            name = posixpath.basename(link.path)
            if name in seen:
                continue
            seen.add(name)
            entries.append({'name': name, 'path': path, 'size': None})
        return entries

    def _fetch(self, remote_file, local_path):
        with self.session.get(self.url_for(remote_file), stream=True, timeout=self.timeout) as response:
            response.raise_for_status()
            with open(local_path, 'wb') as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    f.write(chunk)


CLIENTS = {
    'ftp': FtpClient,
    'sftp': SftpClient,
    'http': HttpClient,
    'https': HttpClient,
}


def get_client_class(protocol):
    try:
        return CLIENTS[str(protocol).lower()]
    except KeyError:
        raise UnsupportedProtocolError('Protocol {0} is not supported.'.format(protocol))
