import threading
import time

import pytest

from pdr.models import Collection, DeliveryRecord, FileRule, Provider
from pdr.protocols import ProtocolClient


class MemoryStore:
    def __init__(self, objects=None):
        self.objects = dict(objects or {})
        self.lock = threading.Lock()

    def exists(self, bucket, key):
        return (bucket, key) in self.objects

    def put_object(self, bucket, key, body, content_type=None):
        with self.lock:
            self.objects[(bucket, key)] = body

    def get_object(self, bucket, key):
        return self.objects[(bucket, key)]

    def upload_file(self, bucket, key, local_path):
        with open(local_path, 'rb') as f:
            self.put_object(bucket, key, f.read())


class MemoryClient(ProtocolClient):
    files = {}
    delay = 0

    def _list(self, path):
        time.sleep(self.delay)
        prefix = path.rstrip('/') + '/'
        return [
            {'name': key[len(prefix):], 'path': path, 'size': len(body)}
            for key, body in self.files.items()
            if key.startswith(prefix) and '/' not in key[len(prefix):]
        ]

    def _fetch(self, remote_file, local_path):
        time.sleep(self.delay)
        if remote_file not in self.files:
            raise OSError('550 {0}: no such file'.format(remote_file))
        with open(local_path, 'wb') as f:
            f.write(self.files[remote_file])


def file_spec(name, size=1024, directory='/data', checksum_type='CKSUM', checksum='2755625137', extra=''):
    lines = [
        '    OBJECT = FILE_SPEC;',
        '      DIRECTORY_ID = {0};'.format(directory),
        '      FILE_ID = {0};'.format(name),
        '      FILE_TYPE = HDF;',
    ]
    if size is not None:
        lines.append('      FILE_SIZE = {0};'.format(size))
    if checksum_type:
        lines.append('      FILE_CKSUM_TYPE = {0};'.format(checksum_type))
    if checksum:
        lines.append('      FILE_CKSUM_VALUE = {0};'.format(checksum))
    if extra:
        lines.append(extra)
    lines.append('    END_OBJECT = FILE_SPEC;')
    return '\n'.join(lines)


def file_group(specs, data_type='MOD09GQ', data_version='006'):
    lines = ['  OBJECT = FILE_GROUP;']
    if data_type:
        lines.append('    DATA_TYPE = {0};'.format(data_type))
    if data_version:
        lines.append('    DATA_VERSION = {0};'.format(data_version))
    lines.append('    NODE_NAME = modpdr01;')
    lines.extend(specs)
    lines.append('  END_OBJECT = FILE_GROUP;')
    return '\n'.join(lines)


def build_pdr(groups, total_file_count=None):
    if total_file_count is None:
        total_file_count = sum(group.count('OBJECT = FILE_SPEC;') - group.count('END_OBJECT = FILE_SPEC;') for group in groups)
    header = [
        'ORIGINATING_SYSTEM = MODAPS;',
        'TOTAL_FILE_COUNT = {0};'.format(total_file_count),
        'EXPIRATION_TIME = 2017-12-31T00:00:00Z;',
    ]
    return '\n'.join(header + list(groups)) + '\n'


def granule_group(granule, data_type='MOD09GQ'):
    return file_group([
        file_spec('{0}.hdf'.format(granule)),
        file_spec('{0}.hdf.met'.format(granule), size=2048),
    ], data_type=data_type)


class PdrBuilder:
    file_spec = staticmethod(file_spec)
    file_group = staticmethod(file_group)
    build = staticmethod(build_pdr)
    granule_group = staticmethod(granule_group)


@pytest.fixture
def pdrs():
    return PdrBuilder


@pytest.fixture
def collection():
    return Collection(
        name='MOD09GQ',
        version='006',
        provider_path='/pdrs',
        granule_id_extraction=r'^(.*)\.hdf$',
        url_path='modis/mod09gq',
        files=(
            FileRule(regex=r'\.hdf$', bucket='protected'),
            FileRule(regex=r'\.met$', bucket='private'),
        ),
    )


@pytest.fixture
def provider():
    return Provider(id='modaps', protocol='ftp', host='ftp.example.com', port=21, global_connection_limit=2)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def memory_client():
    def make(files, delay=0):
        return type('MemoryClient', (MemoryClient,), {'files': files, 'delay': delay})
    return make


@pytest.fixture
def record():
    return DeliveryRecord(name='MOD09GQ_20170125.PDR', path='/pdrs')
