import pytest

from pdr.discover import Discover
from pdr.errors import ConfigurationError, UnsupportedProtocolError
from pdr.ingest import Parse
from pdr.models import DeliveryRecord, Provider
from pdr.protocols import FtpClient, HttpClient, SftpClient
from pdr.selector import selector


@pytest.mark.parametrize('type, cls', [('discover', Discover), ('parse', Parse)])
@pytest.mark.parametrize('protocol, client_class', [
    ('ftp', FtpClient),
    ('sftp', SftpClient),
    ('http', HttpClient),
    ('https', HttpClient),
])
def test_selector_supported_pairs(type, cls, protocol, client_class):
    constructor = selector(type, protocol)

    assert constructor.func is cls
    assert constructor.keywords == {'client_class': client_class}


@pytest.mark.parametrize('type', ['discover', 'parse'])
def test_selector_unsupported_protocol(type):
    with pytest.raises(UnsupportedProtocolError, match='Protocol s3 is not supported'):
        selector(type, 's3')


def test_selector_unsupported_type():
    with pytest.raises(ConfigurationError, match='ingest is not supported'):
        selector('ingest', 'ftp')


def test_selected_constructors_build_protocol_clients(collection, store):
    provider = Provider.from_dict({'id': 'modaps', 'protocol': 'sftp', 'host': 'sftp.example.com'})

    discover = selector('discover', 'sftp')('stack', 'bucket', collection, provider, store)
    parse = selector('parse', 'sftp')(DeliveryRecord('A.PDR', '/pdrs'), 'stack', 'bucket', collection, provider, store)

    assert isinstance(discover.client, SftpClient)
    assert isinstance(parse.client, SftpClient)
    assert discover.path == '/pdrs'
    assert parse.folder == 'pdrs'
