"""Local sessions — pseudo-terminal processes and their output buffers.

Each local session runs in its own PTY with process group isolation and a
bounded tail buffer of recent output. The backend that manages them lives
in :mod:`agentdeck.pty.manager`.
"""

from agentdeck.pty.buffer import OUTPUT_BUFFER_SIZE, OutputBuffer
from agentdeck.pty.process import ProcessStatus, PTYProcess

__all__ = [
    "OUTPUT_BUFFER_SIZE",
    "OutputBuffer",
    "PTYProcess",
    "ProcessStatus",
]
