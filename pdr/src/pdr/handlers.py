from logging import getLogger

from pdr.config import resolve_provider
from pdr.errors import ConfigurationError
from pdr.granule_queue import granule_message
from pdr.models import Collection, DeliveryRecord
from pdr.selector import selector


log = getLogger(__name__)

REQUIRED_KEYS = ('provider', 'collection', 'stack', 'bucket')


def get_context(event, secretsmanager=None):
    missing = [key for key in REQUIRED_KEYS if not event.get(key)]
    if missing:
        raise ConfigurationError('Missing required fields: {0}'.format(', '.join(missing)))
    provider = resolve_provider(event['provider'], secretsmanager)
    collection = Collection.from_dict(event['collection'])
    protocol = event.get('protocol') or provider.protocol
    return provider, collection, protocol


def parsed_to_dict(parsed, collection):
    return {
        'pdr': parsed.pdr_name,
        'granulesCount': parsed.granules_count,
        'filesCount': parsed.files_count,
        'granules': [granule_message(granule, collection, parsed.pdr_name) for granule in parsed.granules],
        'errors': [
            {'index': error.index, 'dataType': error.data_type, 'message': error.message}
            for error in parsed.errors
        ],
    }


def discover_pdrs(event, store, secretsmanager=None, pools=None):
    provider, collection, protocol = get_context(event, secretsmanager)
    discover = selector('discover', protocol)(
        event['stack'],
        event['bucket'],
        collection,
        provider,
        store,
        folder=event.get('folder', 'pdrs'),
        pools=pools,
    )
    pdrs = discover.discover()
    return {'pdrs': [pdr.to_dict() for pdr in pdrs]}


def parse_pdr(event, store, queue=None, secretsmanager=None, pools=None):
    provider, collection, protocol = get_context(event, secretsmanager)
    if not event.get('pdr') or 'name' not in event['pdr']:
        raise ConfigurationError('Missing required field: pdr')

    record = DeliveryRecord(
        name=event['pdr']['name'],
        path=event['pdr'].get('path', collection.provider_path),
        size=event['pdr'].get('size'),
    )
    parse = selector('parse', protocol)(
        record,
        event['stack'],
        event['bucket'],
        collection,
        provider,
        store,
        folder=event.get('folder', 'pdrs'),
        pools=pools,
    )
    parsed = parse.ingest()
    if queue is not None:
        queue.enqueue(parsed, collection)
    return parsed_to_dict(parsed, collection)


def handle(event, store, queue=None, secretsmanager=None, pools=None):
    event_type = event.get('type')
    log.info('Handling %s event', event_type)
    if event_type == 'discover':
        return discover_pdrs(event, store, secretsmanager, pools)
    if event_type == 'parse':
        return parse_pdr(event, store, queue, secretsmanager, pools)
    raise ConfigurationError('{0} is not supported'.format(event_type))
