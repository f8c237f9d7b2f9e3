"""Binary fetchers.

A fetcher is the supervisor's source of new binaries. Anything implementing
the Fetcher protocol can be plugged into ``Config.fetcher``.
"""

from ._file import FileFetcher
from ._http import HTTPFetcher
from ._protocol import Fetcher

__all__ = ["Fetcher", "FileFetcher", "HTTPFetcher"]
