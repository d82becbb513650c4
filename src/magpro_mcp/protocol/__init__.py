"""Protocol layer: framing, CRC, command builders, and message decoding."""

from .framing import FrameReassembler, build_frame, parse_frame
from .commands import Command, build_command
from .parser import MessageType, parse_message
