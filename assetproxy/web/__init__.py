from .decode import ProxyRequest, decode_request
from .relay import RelayHead, filter_response, limit_stream
