import argparse
import signal
import sys
import threading
from logging import getLogger

import boto3

from pdr.batch import process_pdrs
from pdr.config import load_config, pdr_settings, resolve_provider, setup_logging
from pdr.errors import PdrError
from pdr.granule_queue import GranuleQueue
from pdr.models import Collection
from pdr.pan import PanWriter
from pdr.protocols import ConnectionPools
from pdr.selector import selector
from pdr.storage import S3Store


log = getLogger(__name__)


def get_command_line_options(argv=None):
    parser = argparse.ArgumentParser('pdr-ingest', description='Discover and parse Product Delivery Records')
    parser.add_argument(
        '-c', '--config',
        action='store',
        dest='config_file',
        default='pdr_config.yaml',
        help='use a specific config file, local or s3://bucket/key',
    )
    parser.add_argument(
        'command',
        choices=['discover', 'run'],
        help='discover lists new PDRs, run also parses them and queues their granules',
    )
    return parser.parse_args(argv)


def run(config, command, s3, sqs, secretsmanager, cancel=None, out=sys.stdout):
    settings = pdr_settings(config)
    store = S3Store(s3)
    provider = resolve_provider(settings['provider'], secretsmanager)
    collection = Collection.from_dict(settings['collection'])
    pools = ConnectionPools()

    discover = selector('discover', provider.protocol)(
        settings['stack'],
        settings['bucket'],
        collection,
        provider,
        store,
        folder=settings['folder'],
        pools=pools,
        max_workers=settings['max_workers'],
    )
    pdrs = discover.discover(cancel)

    if command == 'discover':
        for pdr in pdrs:
            out.write(pdr.name + '\n')
        return 0

    make_parse = selector('parse', provider.protocol)

    def parse_factory(record):
        return make_parse(
            record,
            settings['stack'],
            settings['bucket'],
            collection,
            provider,
            store,
            folder=settings['folder'],
            pools=pools,
            working_directory=settings['working_directory'],
        )

    queue = GranuleQueue.from_name(sqs, settings['queue_name']) if settings['queue_name'] else None
    pan_writer = PanWriter(store, settings['bucket'], settings['stack'], settings['pan_folder'])
    result = process_pdrs(pdrs, parse_factory, queue, settings['max_workers'], cancel, pan_writer)

    for outcome in result.failed:
        log.error('PDR %s ended in state %s: %s', outcome.record.name, outcome.state.value, outcome.error)
    return 1 if result.failed else 0


def main(argv=None):
    options = get_command_line_options(argv)
    try:
        config = load_config(options.config_file, boto3.client('s3') if options.config_file.startswith('s3://') else None)
        setup_logging(config.get('log'))
        if 'aws_region' in config:
            boto3.setup_default_session(region_name=config['aws_region'])
    except PdrError as e:
        log.error('Cannot proceed from configuration error: %s', e)
        return 2

    cancel = threading.Event()

    def request_stop(signum, frame):
        log.warning('Received signal %s, finishing in-flight PDRs', signum)
        cancel.set()

    signal.signal(signal.SIGINT, request_stop)
    signal.signal(signal.SIGTERM, request_stop)

    try:
        return run(
            config,
            options.command,
            boto3.client('s3'),
            boto3.client('sqs'),
            boto3.client('secretsmanager'),
            cancel,
        )
    except PdrError as e:
        log.error('PDR run failed: %s', e)
        return 1


if __name__ == '__main__':
    sys.exit(main())
