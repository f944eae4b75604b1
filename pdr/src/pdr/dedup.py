from logging import getLogger

from pdr.storage import pdr_key


log = getLogger(__name__)


class DedupFilter:
    def __init__(self, store, bucket, stack, folder='pdrs'):
        self.store = store
        self.bucket = bucket
        self.stack = stack
        self.folder = folder

    def key_for(self, record):
        return pdr_key(self.stack, self.folder, record.name)

    def is_new(self, record):
        exists = self.store.exists(self.bucket, self.key_for(record))
        if exists:
            log.debug('PDR %s already processed, skipping', record.name)
        return not exists
