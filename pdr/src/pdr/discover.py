from concurrent.futures import ThreadPoolExecutor
from logging import getLogger

from pdr.dedup import DedupFilter
from pdr.models import DeliveryRecord
from pdr.protocols import ConnectionPools, get_client_class


log = getLogger(__name__)


class Discover:
    """Find PDRs on a provider that have not been archived to the durable store yet."""

    def __init__(self, stack, bucket, collection, provider, store, folder='pdrs',
                 client_class=None, pools=None, suffix='.PDR', max_workers=10):
        if client_class is None:
            client_class = get_client_class(provider.protocol)
        pools = pools or ConnectionPools()

        self.stack = stack
        self.bucket = bucket
        self.collection = collection
        self.provider = provider
        self.folder = folder
        self.suffix = suffix
        self.max_workers = max_workers
        self.path = collection.provider_path or '/'
        self.client = client_class(provider, store, pools.get(provider))
        self.dedup = DedupFilter(store, bucket, stack, folder)

    def discover(self, cancel=None):
        files = self.client.list(self.path)
        candidates = [
            DeliveryRecord(name=f['name'], path=f.get('path', self.path), size=f.get('size'))
            for f in files
            if f['name'].endswith(self.suffix)
        ]
        log.info('Found %d PDR candidates of %d files at %s on %s', len(candidates), len(files), self.path, self.provider.host)
        return self.find_new_pdrs(candidates, cancel)

    def find_new_pdrs(self, candidates, cancel=None):
        def check(record):
            if cancel is not None and cancel.is_set():
                return None
            return record if self.dedup.is_new(record) else None

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            results = list(executor.map(check, candidates))

        new_pdrs = [record for record in results if record is not None]
        log.info('%d new PDRs to process', len(new_pdrs))
        return new_pdrs
