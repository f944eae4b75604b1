import tempfile
from logging import getLogger

from pdr.errors import PdrError, StructuralParseError
from pdr.models import RecordState
from pdr.parser import parse_pdr
from pdr.protocols import ConnectionPools, get_client_class
from pdr.storage import pdr_key


log = getLogger(__name__)


class Parse:
    """Download one PDR, parse it and archive the raw file once it parsed."""

    def __init__(self, pdr, stack, bucket, collection, provider, store, folder='pdrs',
                 client_class=None, pools=None, working_directory=None):
        if client_class is None:
            client_class = get_client_class(provider.protocol)
        pools = pools or ConnectionPools()

        self.pdr = pdr
        self.stack = stack
        self.bucket = bucket
        self.collection = collection
        self.provider = provider
        self.folder = folder
        self.working_directory = working_directory
        self.client = client_class(provider, store, pools.get(provider))
        self.state = RecordState.DISCOVERED

    def _transition(self, state):
        log.debug('PDR %s: %s -> %s', self.pdr.name, self.state.value, state.value)
        self.state = state

    def ingest(self):
        with tempfile.TemporaryDirectory(prefix='PDR_', dir=self.working_directory) as process_dir:
            try:
                self._transition(RecordState.DOWNLOADING)
                local_path = self.client.download(self.pdr.path, self.pdr.name, process_dir)

                self._transition(RecordState.PARSING)
                parsed = self.parse(local_path)

                # archiving marks the PDR as processed, so it only happens after a clean parse
                self.client.upload(self.bucket, pdr_key(self.stack, self.folder), self.pdr.name, local_path)
            except StructuralParseError as e:
                e.pdr_name = self.pdr.name
                self._transition(RecordState.PARSE_FAILED)
                log.error('PDR %s failed to parse: %s', self.pdr.name, e)
                raise
            except PdrError as e:
                e.pdr_name = self.pdr.name
                self._transition(RecordState.FAILED)
                raise
            except Exception:
                self._transition(RecordState.FAILED)
                raise

        self._transition(RecordState.PARSED_AND_ARCHIVED)
        return parsed

    def parse(self, local_path):
        parsed = parse_pdr(local_path, self.collection, self.pdr.name)
        log.info('There are %d granules in %s', parsed.granules_count, self.pdr.name)
        log.info('There are %d files in %s', parsed.files_count, self.pdr.name)
        if parsed.errors:
            log.warning('%d file groups in %s were rejected', len(parsed.errors), self.pdr.name)
        return parsed
