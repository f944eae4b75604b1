import json
import logging
import logging.config
from os import environ
from logging import getLogger

import yaml
from botocore.exceptions import BotoCoreError, ClientError

from pdr.errors import ConfigurationError
from pdr.models import Provider


log = getLogger(__name__)

REQUIRED_KEYS = ('stack', 'bucket', 'provider', 'collection')
DEFAULTS = {
    'folder': 'pdrs',
    'pan_folder': 'pans',
    'queue_name': None,
    'max_workers': 5,
    'working_directory': None,
}


def load_config(config_file_name, s3=None):
    if config_file_name.startswith('s3://'):
        if s3 is None:
            raise ConfigurationError('An S3 client is required to read {0}'.format(config_file_name))
        path_parts = config_file_name.split('/')
        try:
            response = s3.get_object(Bucket=path_parts[2], Key='/'.join(path_parts[3:]))
            config = yaml.safe_load(response['Body'].read())
        except (ClientError, BotoCoreError, yaml.YAMLError) as e:
            raise ConfigurationError('Unable to read {0}: {1}'.format(config_file_name, e))
    else:
        try:
            with open(config_file_name, 'r') as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError('Unable to read {0}: {1}'.format(config_file_name, e))

    if not isinstance(config, dict):
        raise ConfigurationError('{0} does not contain a configuration mapping'.format(config_file_name))
    return config


def get_environ_config(key='CONFIG'):
    if key not in environ:
        raise ConfigurationError('{0} is not set'.format(key))
    try:
        return json.loads(environ[key])
    except ValueError as e:
        raise ConfigurationError('{0} is not valid JSON: {1}'.format(key, e))


def setup_logging(log_config=None):
    if log_config:
        logging.config.dictConfig(log_config)
    else:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s %(name)s %(levelname)s %(message)s')


def pdr_settings(config):
    section = config.get('pdr')
    if not isinstance(section, dict):
        raise ConfigurationError('Missing pdr configuration section')
    missing = [key for key in REQUIRED_KEYS if not section.get(key)]
    if missing:
        raise ConfigurationError('Missing pdr configuration keys: {0}'.format(', '.join(missing)))

    settings = dict(DEFAULTS)
    settings.update(section)
    return settings


def get_secret(secretsmanager, secret_name):
    try:
        response = secretsmanager.get_secret_value(SecretId=secret_name)
    except (ClientError, BotoCoreError) as e:
        raise ConfigurationError('Unable to read secret {0}: {1}'.format(secret_name, e))
    return json.loads(response['SecretString'])


def resolve_provider(provider_config, secretsmanager=None):
    """Build a Provider, filling credentials from Secrets Manager when secret_name is given."""
    if not provider_config:
        raise ConfigurationError('No provider configured')
    provider_config = dict(provider_config)
    secret_name = provider_config.pop('secret_name', None)
    if secret_name:
        if secretsmanager is None:
            raise ConfigurationError('Provider credentials are in {0} but no secrets client is available'.format(secret_name))
        log.debug('Reading provider credentials from %s', secret_name)
        secret = get_secret(secretsmanager, secret_name)
        provider_config['username'] = secret.get('username')
        provider_config['password'] = secret.get('password')
    return Provider.from_dict(provider_config)
