from logging import getLogger
import boto3
from pdr.config import get_environ_config
from pdr.handlers import discover_pdrs
from pdr.protocols import ConnectionPools
from pdr.storage import S3Store


log = getLogger()
store = S3Store(boto3.client('s3'))
secretsmanager = boto3.client('secretsmanager')
pools = ConnectionPools()


def setup():
    config = get_environ_config()
    log.setLevel(config['log_level'])
    log.debug('Config: %s', str(config))
    return config


def lambda_handler(event, context):
    config = setup()
    request = dict(config.get('discover', {}))
    request.update(event)
    response = discover_pdrs(request, store, secretsmanager, pools)
    log.info('Discovered %d new PDRs', len(response['pdrs']))
    return response
