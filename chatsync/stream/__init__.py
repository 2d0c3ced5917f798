"""Reply stream framing and decoding."""

from chatsync.stream.decoder import ReplyAssembler, StreamEvent, decode_line
from chatsync.stream.framer import LineFramer

__all__ = ["LineFramer", "ReplyAssembler", "StreamEvent", "decode_line"]
