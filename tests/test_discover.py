import threading

from pdr.discover import Discover
from pdr.ingest import Parse
from pdr.models import Provider
from pdr.protocols import ConnectionPools


def make_discover(provider, collection, store, client_class, **kwargs):
    return Discover('stack', 'bucket', collection, provider, store, client_class=client_class, **kwargs)


def test_discover_filters_suffix_and_known_pdrs(provider, collection, store, memory_client):
    client_class = memory_client({
        '/pdrs/A.PDR': b'',
        '/pdrs/B.PDR': b'',
        '/pdrs/C.pdr': b'',
        '/pdrs/README.txt': b'',
        '/pdrs/archive/D.PDR': b'',
    })
    store.put_object('bucket', 'stack/pdrs/B.PDR', b'')

    pdrs = make_discover(provider, collection, store, client_class).discover()

    assert [pdr.name for pdr in pdrs] == ['A.PDR']
    assert pdrs[0].path == '/pdrs'
    assert pdrs[0].remote_path == '/pdrs/A.PDR'


def test_discover_uses_folder(provider, collection, store, memory_client):
    client_class = memory_client({'/pdrs/A.PDR': b''})
    store.put_object('bucket', 'stack/pdrs/A.PDR', b'')

    pdrs = make_discover(provider, collection, store, client_class, folder='other').discover()

    assert [pdr.name for pdr in pdrs] == ['A.PDR']


def test_archived_pdr_is_not_rediscovered(pdrs, provider, collection, store, memory_client):
    client_class = memory_client({'/pdrs/A.PDR': pdrs.build([pdrs.granule_group('granule-1')]).encode()})
    discover = make_discover(provider, collection, store, client_class)

    first = discover.discover()
    assert [pdr.name for pdr in first] == ['A.PDR']

    Parse(first[0], 'stack', 'bucket', collection, provider, store, client_class=client_class).ingest()

    assert discover.discover() == []


def test_discover_stops_checking_when_cancelled(provider, collection, store, memory_client):
    client_class = memory_client({'/pdrs/A.PDR': b'', '/pdrs/B.PDR': b''})
    cancel = threading.Event()
    cancel.set()

    assert make_discover(provider, collection, store, client_class).discover(cancel) == []


def test_concurrent_discovery_respects_connection_limit(collection, store, memory_client):
    provider = Provider(id='modaps', protocol='ftp', host='ftp.example.com', port=21, global_connection_limit=1)
    client_class = memory_client({'/pdrs/A.PDR': b''}, delay=0.05)
    pools = ConnectionPools()
    results = []

    def run():
        results.append(make_discover(provider, collection, store, client_class, pools=pools).discover())

    threads = [threading.Thread(target=run) for _ in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert pools.get(provider).peak == 1
    assert [[pdr.name for pdr in result] for result in results] == [['A.PDR']] * 3
