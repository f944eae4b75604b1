from functools import partial

from pdr.discover import Discover
from pdr.errors import ConfigurationError
from pdr.ingest import Parse
from pdr.protocols import get_client_class


TYPES = {
    'discover': Discover,
    'parse': Parse,
}


def selector(type, protocol):
    """Return a constructor for discovering or parsing PDRs over the given protocol."""
    if type not in TYPES:
        raise ConfigurationError('{0} is not supported'.format(type))
    return partial(TYPES[type], client_class=get_client_class(protocol))
