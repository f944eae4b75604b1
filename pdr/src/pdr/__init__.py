from pdr.discover import Discover
from pdr.ingest import Parse
from pdr.parser import parse_pdr
from pdr.selector import selector

__all__ = [
    'Discover',
    'Parse',
    'parse_pdr',
    'selector',
]
