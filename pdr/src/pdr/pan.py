"""
Production Acceptance Notifications (PAN) and PDR Discrepancy notices (PDRD).

A short PAN acknowledges a PDR whose file groups were all accepted. A long
PDRD reports a disposition per file group when some groups were rejected,
and a short PDRD rejects a PDR that could not be parsed at all.
"""
import posixpath
from logging import getLogger

from pdr.models import RecordState, utcnow
from pdr.storage import pdr_key


log = getLogger(__name__)

SUCCESSFUL = 'SUCCESSFUL'


def _timestamp(timestamp=None):
    timestamp = timestamp or utcnow()
    return timestamp.strftime('%Y-%m-%dT%H:%M:%SZ')


def _quote(value):
    return '"{0}"'.format(str(value).replace('"', "'").replace(';', ','))


def short_pan(disposition=SUCCESSFUL, timestamp=None):
    return (
        'MESSAGE_TYPE = SHORTPAN;\n'
        'DISPOSITION = {0};\n'
        'TIME_STAMP = {1};\n'
    ).format(_quote(disposition), _timestamp(timestamp))


def short_pdrd(error):
    message = error.args[0] if error.args else type(error).__name__
    return (
        'MESSAGE_TYPE = SHORTPDRD;\n'
        'DISPOSITION = {0};\n'
    ).format(_quote(message))


def long_pdrd(parsed):
    errors = {error.index: error for error in parsed.errors}
    granules = iter(parsed.granules)
    group_count = len(parsed.granules) + len(parsed.errors)

    lines = ['MESSAGE_TYPE = LONGPDRD;', 'NO_FILE_GRPS = {0};'.format(group_count)]
    for index in range(group_count):
        if index in errors:
            data_type = errors[index].data_type or 'UNKNOWN'
            disposition = errors[index].message
        else:
            data_type = next(granules).data_type
            disposition = SUCCESSFUL
        lines.append('DATA_TYPE = {0};'.format(data_type))
        lines.append('FILE_GRP_DISPOSITION = {0};'.format(_quote(disposition)))
    return '\n'.join(lines) + '\n'


def notice_for(outcome, timestamp=None):
    """Return (extension, body) for an outcome, or None when the provider should not be answered yet."""
    if outcome.state is RecordState.PARSED_AND_ARCHIVED:
        if outcome.parsed.errors:
            return 'PDRD', long_pdrd(outcome.parsed)
        return 'PAN', short_pan(timestamp=timestamp)
    if outcome.state is RecordState.PARSE_FAILED:
        return 'PDRD', short_pdrd(outcome.error)
    return None


class PanWriter:
    def __init__(self, store, bucket, stack, folder='pans'):
        self.store = store
        self.bucket = bucket
        self.stack = stack
        self.folder = folder

    def write(self, outcome):
        notice = notice_for(outcome)
        if notice is None:
            return None
        extension, body = notice
        name = '{0}.{1}'.format(posixpath.splitext(outcome.record.name)[0], extension)
        key = pdr_key(self.stack, self.folder, name)
        log.info('Writing %s for %s to s3://%s/%s', extension, outcome.record.name, self.bucket, key)
        self.store.put_object(self.bucket, key, body.encode('utf-8'), content_type='text/plain')
        return key
