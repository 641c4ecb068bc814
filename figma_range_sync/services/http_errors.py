"""
Transport failure classification shared by the Figma client and the Range dispatcher.
"""

import httpx

# Connection reset, refused or aborted, or timed out before a response arrived.
# httpx reports a peer that drops the connection mid-exchange as RemoteProtocolError.
NETWORK_ERRORS = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)


def is_network_error(error: BaseException) -> bool:
    return isinstance(error, NETWORK_ERRORS)
