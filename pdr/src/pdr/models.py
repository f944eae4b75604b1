import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

from pdr.errors import ConfigurationError


DEFAULT_PORTS = {
    'ftp': 21,
    'sftp': 22,
    'http': 80,
    'https': 443,
}

DUPLICATE_HANDLING = ('error', 'skip', 'replace')


def _as_int(value, name):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError('{0} must be an integer, got {1!r}'.format(name, value))


@dataclass(frozen=True)
class Provider:
    id: str
    protocol: str
    host: Optional[str]
    port: int
    username: Optional[str] = None
    password: Optional[str] = None
    global_connection_limit: int = 10

    @classmethod
    def from_dict(cls, config):
        if not config:
            raise ConfigurationError('No provider configured')
        protocol = str(config.get('protocol', '')).lower()
        if protocol not in DEFAULT_PORTS:
            raise ConfigurationError('Unknown provider protocol: {0!r}'.format(config.get('protocol')))
        limit = _as_int(config.get('global_connection_limit', 10), 'global_connection_limit')
        if limit < 1:
            raise ConfigurationError('global_connection_limit must be at least 1')
        return cls(
            id=config.get('id', config.get('host')),
            protocol=protocol,
            host=config.get('host'),
            port=_as_int(config.get('port', DEFAULT_PORTS[protocol]), 'port'),
            username=config.get('username'),
            password=config.get('password'),
            global_connection_limit=limit,
        )


@dataclass(frozen=True)
class FileRule:
    regex: str
    bucket: str


@dataclass(frozen=True)
class Collection:
    name: str
    version: str
    provider_path: str = '/'
    granule_id_extraction: str = '(.*)'
    duplicate_handling: str = 'error'
    url_path: str = ''
    files: Tuple[FileRule, ...] = ()

    @property
    def collection_id(self):
        return '{0}___{1}'.format(self.name, self.version)

    def target_for(self, file_name):
        """Return the (bucket, key) a file is ingested to, bucket None when no rule matches."""
        key = '/'.join(part for part in (self.url_path.strip('/'), file_name) if part)
        for rule in self.files:
            if re.search(rule.regex, file_name):
                return rule.bucket, key
        return None, key

    @classmethod
    def from_dict(cls, config):
        if not config:
            raise ConfigurationError('No collection configured')
        for key in ('name', 'version'):
            if key not in config:
                raise ConfigurationError('Collection is missing {0}'.format(key))

        extraction = config.get('granule_id_extraction', '(.*)')
        try:
            re.compile(extraction)
        except re.error as e:
            raise ConfigurationError('Invalid granule_id_extraction {0!r}: {1}'.format(extraction, e))

        duplicate_handling = config.get('duplicate_handling', 'error')
        if duplicate_handling not in DUPLICATE_HANDLING:
            raise ConfigurationError('Unknown duplicate_handling: {0!r}'.format(duplicate_handling))

        rules = []
        for rule in config.get('files', []):
            try:
                re.compile(rule['regex'])
                rules.append(FileRule(regex=rule['regex'], bucket=rule['bucket']))
            except (KeyError, re.error) as e:
                raise ConfigurationError('Invalid collection file rule {0!r}: {1}'.format(rule, e))

        return cls(
            name=config['name'],
            version=str(config['version']),
            provider_path=config.get('provider_path', '/'),
            granule_id_extraction=extraction,
            duplicate_handling=duplicate_handling,
            url_path=config.get('url_path', ''),
            files=tuple(rules),
        )


def utcnow():
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DeliveryRecord:
    name: str
    path: str
    size: Optional[int] = None
    discovered_at: datetime = field(default_factory=utcnow)

    @property
    def remote_path(self):
        return '/'.join((self.path.rstrip('/'), self.name))

    def to_dict(self):
        return {'name': self.name, 'path': self.path, 'size': self.size}


@dataclass(frozen=True)
class FileReference:
    name: str
    path: str
    size: int
    file_type: Optional[str] = None
    checksum_type: Optional[str] = None
    checksum: Optional[str] = None
    bucket: Optional[str] = None
    key: Optional[str] = None

    @property
    def remote_path(self):
        return '/'.join((self.path.rstrip('/'), self.name))


@dataclass(frozen=True)
class GranuleGroup:
    granule_id: str
    data_type: str
    data_version: Optional[str]
    files: Tuple[FileReference, ...]


@dataclass(frozen=True)
class GroupError:
    index: int
    message: str
    data_type: Optional[str] = None


@dataclass(frozen=True)
class ParsedRecord:
    pdr_name: str
    total_file_count: int
    granules: Tuple[GranuleGroup, ...]
    errors: Tuple[GroupError, ...] = ()
    originating_system: Optional[str] = None
    expiration_time: Optional[str] = None

    @property
    def granules_count(self):
        return len(self.granules)

    @property
    def files_count(self):
        return sum(len(granule.files) for granule in self.granules)


class RecordState(Enum):
    DISCOVERED = 'discovered'
    DOWNLOADING = 'downloading'
    PARSING = 'parsing'
    PARSED_AND_ARCHIVED = 'parsed_and_archived'
    PARSE_FAILED = 'parse_failed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


@dataclass
class RecordOutcome:
    record: DeliveryRecord
    state: RecordState
    parsed: Optional[ParsedRecord] = None
    error: Optional[Exception] = None

    @property
    def ok(self):
        return self.state is RecordState.PARSED_AND_ARCHIVED


@dataclass
class BatchResult:
    outcomes: List[RecordOutcome] = field(default_factory=list)

    @property
    def succeeded(self):
        return [outcome for outcome in self.outcomes if outcome.ok]

    @property
    def failed(self):
        return [outcome for outcome in self.outcomes if outcome.state in (RecordState.PARSE_FAILED, RecordState.FAILED)]

    @property
    def cancelled(self):
        return [outcome for outcome in self.outcomes if outcome.state is RecordState.CANCELLED]
