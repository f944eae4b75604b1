import mimetypes
from logging import getLogger

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from pdr.errors import StorageError


log = getLogger(__name__)

MISSING_CODES = ('404', 'NoSuchKey', 'NotFound')


def pdr_key(*parts):
    return '/'.join(part.strip('/') for part in parts if part.strip('/'))


class S3Store:
    def __init__(self, s3):
        self.s3 = s3

    def exists(self, bucket, key):
        try:
            self.s3.head_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if e.response['Error']['Code'] in MISSING_CODES:
                return False
            raise StorageError('Failed to check s3://{0}/{1}: {2}'.format(bucket, key, e))
        except BotoCoreError as e:
            raise StorageError('Failed to check s3://{0}/{1}: {2}'.format(bucket, key, e))
        return True

    def put_object(self, bucket, key, body, content_type=None):
        extra = {'ContentType': content_type} if content_type else {}
        try:
            self.s3.put_object(Bucket=bucket, Key=key, Body=body, **extra)
        except (ClientError, BotoCoreError) as e:
            raise StorageError('Failed to write s3://{0}/{1}: {2}'.format(bucket, key, e))

    def get_object(self, bucket, key):
        try:
            response = self.s3.get_object(Bucket=bucket, Key=key)
            return response['Body'].read()
        except (ClientError, BotoCoreError) as e:
            raise StorageError('Failed to read s3://{0}/{1}: {2}'.format(bucket, key, e))

    def upload_file(self, bucket, key, local_path):
        content_type = mimetypes.guess_type(key)[0] or 'text/plain'
        log.info('Uploading %s to s3://%s/%s', local_path, bucket, key)
        try:
            self.s3.upload_file(local_path, bucket, key, ExtraArgs={'ContentType': content_type})
        except (S3UploadFailedError, ClientError, BotoCoreError) as e:
            raise StorageError('Failed to upload {0} to s3://{1}/{2}: {3}'.format(local_path, bucket, key, e))
