import threading
from unittest.mock import MagicMock

from pdr.batch import process_pdrs
from pdr.errors import ConfigurationError, StorageError
from pdr.ingest import Parse
from pdr.models import DeliveryRecord, RecordState
from pdr.pan import PanWriter


def records(*names):
    return [DeliveryRecord(name=name, path='/pdrs') for name in names]


def factory(provider, collection, store, client_class):
    def make(record):
        return Parse(record, 'stack', 'bucket', collection, provider, store, client_class=client_class)
    return make


def test_failures_are_collected_per_record(pdrs, provider, collection, store, memory_client):
    client_class = memory_client({
        '/pdrs/GOOD.PDR': pdrs.build([pdrs.granule_group('granule-1')]).encode(),
        '/pdrs/BAD.PDR': b'TOTAL_FILE_COUNT = 1;\n',
    })
    queue = MagicMock()

    result = process_pdrs(
        records('GOOD.PDR', 'BAD.PDR', 'GONE.PDR'),
        factory(provider, collection, store, client_class),
        queue,
        max_workers=2,
        pan_writer=PanWriter(store, 'bucket', 'stack'),
    )

    assert [outcome.state for outcome in result.outcomes] == [
        RecordState.PARSED_AND_ARCHIVED,
        RecordState.PARSE_FAILED,
        RecordState.FAILED,
    ]
    assert [outcome.record.name for outcome in result.succeeded] == ['GOOD.PDR']
    assert [outcome.record.name for outcome in result.failed] == ['BAD.PDR', 'GONE.PDR']
    assert result.failed[0].error.pdr_name == 'BAD.PDR'

    queue.enqueue.assert_called_once_with(result.succeeded[0].parsed, collection)

    keys = sorted(key for bucket, key in store.objects)
    assert keys == ['stack/pans/BAD.PDRD', 'stack/pans/GOOD.PAN', 'stack/pdrs/GOOD.PDR']


def test_cancelled_run_starts_nothing(provider, collection, store, memory_client):
    client_class = memory_client({})
    client_class._fetch = MagicMock()
    cancel = threading.Event()
    cancel.set()

    result = process_pdrs(records('A.PDR', 'B.PDR'), factory(provider, collection, store, client_class), cancel=cancel)

    assert [outcome.state for outcome in result.cancelled] == [RecordState.CANCELLED] * 2
    assert result.failed == []
    client_class._fetch.assert_not_called()


def test_queue_failure_marks_record_failed(pdrs, provider, collection, store, memory_client):
    client_class = memory_client({'/pdrs/A.PDR': pdrs.build([pdrs.granule_group('granule-1')]).encode()})
    queue = MagicMock()
    queue.enqueue.side_effect = StorageError('Failed to queue granule granule-1')

    result = process_pdrs(records('A.PDR'), factory(provider, collection, store, client_class), queue)

    assert result.outcomes[0].state is RecordState.FAILED
    assert isinstance(result.outcomes[0].error, StorageError)
    assert ('bucket', 'stack/pdrs/A.PDR') in store.objects


def test_unexpected_archive_error_is_reported_as_failure(pdrs, provider, collection, store, memory_client):
    def fail(bucket, key, local_path):
        raise RuntimeError('upload exploded')

    store.upload_file = fail
    client_class = memory_client({'/pdrs/A.PDR': pdrs.build([pdrs.granule_group('granule-1')]).encode()})
    queue = MagicMock()

    result = process_pdrs(records('A.PDR'), factory(provider, collection, store, client_class), queue)

    assert result.outcomes[0].state is RecordState.FAILED
    assert [outcome.record.name for outcome in result.failed] == ['A.PDR']
    assert isinstance(result.failed[0].error, RuntimeError)
    queue.enqueue.assert_not_called()


def test_parse_construction_error_does_not_abort_batch(pdrs, provider, collection, store, memory_client):
    client_class = memory_client({'/pdrs/GOOD.PDR': pdrs.build([pdrs.granule_group('granule-1')]).encode()})
    make = factory(provider, collection, store, client_class)

    def parse_factory(record):
        if record.name == 'BROKEN.PDR':
            raise ConfigurationError('Provider modaps has no host')
        return make(record)

    result = process_pdrs(
        records('BROKEN.PDR', 'GOOD.PDR'),
        parse_factory,
        pan_writer=PanWriter(store, 'bucket', 'stack'),
    )

    assert [outcome.state for outcome in result.outcomes] == [RecordState.FAILED, RecordState.PARSED_AND_ARCHIVED]
    assert isinstance(result.failed[0].error, ConfigurationError)
    assert ('bucket', 'stack/pans/GOOD.PAN') in store.objects
