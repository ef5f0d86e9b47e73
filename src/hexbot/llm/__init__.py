"""Request building, transport and stream decoding for hexbot."""

from hexbot.llm.error_resolver import resolve_stream_error
from hexbot.llm.request_builder import RequestBuilder, has_input_placeholder, substitute_input
from hexbot.llm.stream_decoder import StreamDecoder, decode_stream, iter_fragments
from hexbot.llm.transport import HttpxTransport, Transport

__all__ = [
    "HttpxTransport",
    "RequestBuilder",
    "StreamDecoder",
    "Transport",
    "decode_stream",
    "has_input_placeholder",
    "iter_fragments",
    "resolve_stream_error",
    "substitute_input",
]
