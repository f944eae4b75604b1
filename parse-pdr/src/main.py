from logging import getLogger
import boto3
from pdr.config import get_environ_config
from pdr.granule_queue import GranuleQueue
from pdr.handlers import parse_pdr
from pdr.protocols import ConnectionPools
from pdr.storage import S3Store


log = getLogger()
store = S3Store(boto3.client('s3'))
sqs = boto3.client('sqs')
secretsmanager = boto3.client('secretsmanager')
pools = ConnectionPools()


def setup():
    config = get_environ_config()
    log.setLevel(config['log_level'])
    log.debug('Config: %s', str(config))
    return config


def lambda_handler(event, context):
    config = setup()
    request = dict(config.get('parse', {}))
    request.update(event)
    queue = GranuleQueue(sqs, config['granule_queue_url']) if config.get('granule_queue_url') else None
    response = parse_pdr(request, store, queue, secretsmanager, pools)
    log.info('Parsed %s: %d granules, %d rejected file groups', response['pdr'], response['granulesCount'], len(response['errors']))
    return response
