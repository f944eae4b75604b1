import json
from logging import getLogger

from botocore.exceptions import BotoCoreError, ClientError

from pdr.errors import StorageError


log = getLogger(__name__)


def granule_message(granule, collection, pdr_name):
    return {
        'granuleId': granule.granule_id,
        'collectionId': collection.collection_id,
        'files': [
            {
                'name': f.name,
                'path': f.path,
                'size': f.size,
                'checksumType': f.checksum_type,
                'checksum': f.checksum,
            }
            for f in granule.files
        ],
        'pdrName': pdr_name,
    }


class GranuleQueue:
    def __init__(self, sqs, queue_url):
        self.sqs = sqs
        self.queue_url = queue_url

    @classmethod
    def from_name(cls, sqs, queue_name):
        try:
            queue_url = sqs.get_queue_url(QueueName=queue_name)['QueueUrl']
        except (ClientError, BotoCoreError) as e:
            raise StorageError('Failed to find queue {0}: {1}'.format(queue_name, e))
        return cls(sqs, queue_url)

    def send(self, message):
        try:
            self.sqs.send_message(QueueUrl=self.queue_url, MessageBody=json.dumps(message))
        except (ClientError, BotoCoreError) as e:
            raise StorageError('Failed to queue granule {0}: {1}'.format(message.get('granuleId'), e), message.get('pdrName'))

    def enqueue(self, parsed, collection):
        for granule in parsed.granules:
            self.send(granule_message(granule, collection, parsed.pdr_name))
        log.info('Queued %d granules from %s', parsed.granules_count, parsed.pdr_name)
        return parsed.granules_count
