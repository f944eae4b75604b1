"""
Parser for Product Delivery Records.

A PDR is a sequence of ``KEY = VALUE;`` statements. ``OBJECT = NAME;`` opens
a block that ``END_OBJECT = NAME;`` closes. The header carries the declared
file count and every FILE_GROUP block describes one granule:

    ORIGINATING_SYSTEM = DAAC;
    TOTAL_FILE_COUNT = 1;
    OBJECT = FILE_GROUP;
      DATA_TYPE = MOD09GQ;
      DATA_VERSION = 006;
      OBJECT = FILE_SPEC;
        DIRECTORY_ID = /data;
        FILE_ID = MOD09GQ.A2017025.h21v00.006.hdf;
        FILE_SIZE = 17865615;
        FILE_CKSUM_TYPE = CKSUM;
        FILE_CKSUM_VALUE = 4208254019;
      END_OBJECT = FILE_SPEC;
    END_OBJECT = FILE_GROUP;

Problems inside a single FILE_GROUP are collected as GroupError entries and
the remaining groups are still parsed. Problems with the document itself
raise StructuralParseError.
"""
import re
from collections import namedtuple
from logging import getLogger

from pdr.errors import GroupParseError, StructuralParseError
from pdr.models import FileReference, GranuleGroup, GroupError, ParsedRecord


log = getLogger(__name__)

HEADER_KEYS = ('ORIGINATING_SYSTEM', 'TOTAL_FILE_COUNT', 'EXPIRATION_TIME')
CHECKSUM_TYPES = {
    'CKSUM': re.compile(r'^\d+$'),
    'MD5': re.compile(r'^[0-9a-fA-F]{32}$'),
    'SHA1': re.compile(r'^[0-9a-fA-F]{40}$'),
    'SHA256': re.compile(r'^[0-9a-fA-F]{64}$'),
}

COMMENT = re.compile(r'/\*.*?\*/', re.DOTALL)
INTEGER = re.compile(r'^[+]?\d+$')

Statement = namedtuple('Statement', ['key', 'value', 'line'])
Block = namedtuple('Block', ['name', 'items', 'line'])


def _split_statements(text):
    """Yield (statement text, line number) pairs, honouring quoted values."""
    text = COMMENT.sub(lambda match: '\n' * match.group(0).count('\n'), text)
    current = []
    line = 1
    start_line = None
    in_quotes = False
    for char in text:
        if char == '\n':
            line += 1
        if char == '"':
            in_quotes = not in_quotes
        if char == ';' and not in_quotes:
            yield ''.join(current).strip(), start_line or line
            current = []
            start_line = None
            continue
        if start_line is None and not char.isspace():
            start_line = line
        current.append(char)

    if in_quotes:
        raise StructuralParseError('Unterminated quoted value starting on line {0}'.format(start_line))
    if ''.join(current).strip():
        raise StructuralParseError('Statement on line {0} is not terminated by ";"'.format(start_line))


def _unquote(value):
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def tokenize(text):
    statements = []
    for body, line in _split_statements(text):
        if not body:
            continue
        key, sep, value = body.partition('=')
        key = key.strip().upper()
        if not sep or not key:
            raise StructuralParseError('Expected "KEY = VALUE" on line {0}, got {1!r}'.format(line, body))
        statements.append(Statement(key, _unquote(value.strip()), line))
    return statements


def build_tree(statements):
    """Nest OBJECT/END_OBJECT statements into Blocks."""
    root = Block('ROOT', [], 0)
    stack = [root]
    for statement in statements:
        if statement.key == 'OBJECT':
            block = Block(statement.value.upper(), [], statement.line)
            stack[-1].items.append(block)
            stack.append(block)
        elif statement.key == 'END_OBJECT':
            if len(stack) == 1:
                raise StructuralParseError('END_OBJECT = {0} on line {1} has no matching OBJECT'.format(statement.value, statement.line))
            if statement.value.upper() != stack[-1].name:
                raise StructuralParseError('END_OBJECT = {0} on line {1} does not close OBJECT = {2} from line {3}'.format(
                    statement.value, statement.line, stack[-1].name, stack[-1].line))
            stack.pop()
        else:
            stack[-1].items.append(statement)

    if len(stack) > 1:
        raise StructuralParseError('OBJECT = {0} on line {1} is never closed'.format(stack[-1].name, stack[-1].line))
    return root


def _values(block):
    return {item.key: item.value for item in block.items if isinstance(item, Statement)}


def _blocks(block, name):
    return [item for item in block.items if isinstance(item, Block) and item.name == name]


def _integer(value):
    if value is None or not INTEGER.match(value):
        return None
    return int(value)


def parse_file_spec(spec, collection):
    values = _values(spec)
    for key in ('DIRECTORY_ID', 'FILE_ID', 'FILE_SIZE'):
        if not values.get(key):
            raise GroupParseError('FILE_SPEC on line {0} is missing {1}'.format(spec.line, key))

    name = values['FILE_ID']
    size = _integer(values['FILE_SIZE'])
    if size is None:
        raise GroupParseError('Invalid FILE_SIZE {0!r} for {1}'.format(values['FILE_SIZE'], name))

    checksum_type = values.get('FILE_CKSUM_TYPE')
    checksum = values.get('FILE_CKSUM_VALUE')
    if checksum_type and not checksum:
        raise GroupParseError('FILE_CKSUM_TYPE given without FILE_CKSUM_VALUE for {0}'.format(name))
    if checksum and not checksum_type:
        raise GroupParseError('FILE_CKSUM_VALUE given without FILE_CKSUM_TYPE for {0}'.format(name))
    if checksum_type:
        checksum_type = checksum_type.upper()
        if checksum_type not in CHECKSUM_TYPES:
            raise GroupParseError('Unsupported checksum type {0} for {1}'.format(checksum_type, name))
        if not CHECKSUM_TYPES[checksum_type].match(checksum):
            raise GroupParseError('Invalid {0} value {1!r} for {2}'.format(checksum_type, checksum, name))

    bucket, key = collection.target_for(name)
    return FileReference(
        name=name,
        path=values['DIRECTORY_ID'],
        size=size,
        file_type=values.get('FILE_TYPE'),
        checksum_type=checksum_type,
        checksum=checksum,
        bucket=bucket,
        key=key,
    )


def extract_granule_id(file_name, regex):
    match = re.search(regex, file_name)
    if match and match.groups():
        return match.group(1)
    return None


def parse_file_group(group, collection):
    values = _values(group)
    data_type = values.get('DATA_TYPE')
    if not data_type:
        raise GroupParseError('FILE_GROUP on line {0} is missing DATA_TYPE'.format(group.line))

    specs = _blocks(group, 'FILE_SPEC')
    if not specs:
        raise GroupParseError('FILE_GROUP on line {0} has no FILE_SPEC'.format(group.line))
    files = tuple(parse_file_spec(spec, collection) for spec in specs)

    granule_id = None
    for file_reference in files:
        granule_id = extract_granule_id(file_reference.name, collection.granule_id_extraction)
        if granule_id:
            break

    return GranuleGroup(
        granule_id=granule_id or files[0].name,
        data_type=data_type,
        data_version=values.get('DATA_VERSION'),
        files=files,
    )


def parse_pdr_text(text, collection, pdr_name):
    try:
        root = build_tree(tokenize(text))
    except StructuralParseError as e:
        e.pdr_name = pdr_name
        raise

    header = {}
    groups = []
    for item in root.items:
        if isinstance(item, Block):
            if item.name != 'FILE_GROUP':
                raise StructuralParseError('Unexpected OBJECT = {0} on line {1}'.format(item.name, item.line), pdr_name)
            groups.append(item)
        elif item.key in HEADER_KEYS:
            header[item.key] = item.value
        else:
            raise StructuralParseError('Unknown keyword {0} on line {1}'.format(item.key, item.line), pdr_name)

    if 'TOTAL_FILE_COUNT' not in header:
        raise StructuralParseError('Missing TOTAL_FILE_COUNT', pdr_name)
    total_file_count = _integer(header['TOTAL_FILE_COUNT'])
    if total_file_count is None:
        raise StructuralParseError('Invalid TOTAL_FILE_COUNT {0!r}'.format(header['TOTAL_FILE_COUNT']), pdr_name)
    if not groups:
        raise StructuralParseError('No FILE_GROUP objects found', pdr_name)

    spec_count = sum(len(_blocks(group, 'FILE_SPEC')) for group in groups)
    if spec_count != total_file_count:
        raise StructuralParseError('TOTAL_FILE_COUNT is {0} but {1} FILE_SPEC objects were found'.format(
            total_file_count, spec_count), pdr_name)

    granules = []
    errors = []
    for index, group in enumerate(groups):
        try:
            granules.append(parse_file_group(group, collection))
        except GroupParseError as e:
            log.warning('PDR %s: FILE_GROUP %d rejected: %s', pdr_name, index, e)
            errors.append(GroupError(index=index, message=str(e), data_type=_values(group).get('DATA_TYPE')))

    return ParsedRecord(
        pdr_name=pdr_name,
        total_file_count=total_file_count,
        granules=tuple(granules),
        errors=tuple(errors),
        originating_system=header.get('ORIGINATING_SYSTEM'),
        expiration_time=header.get('EXPIRATION_TIME'),
    )


def parse_pdr(local_path, collection, pdr_name):
    with open(local_path, 'rb') as f:
        content = f.read()
    try:
        text = content.decode('utf-8-sig')
    except UnicodeDecodeError as e:
        raise StructuralParseError('PDR is not valid text: {0}'.format(e), pdr_name)
    return parse_pdr_text(text, collection, pdr_name)
