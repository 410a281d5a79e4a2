"""PTY primitives: process handle, output ring buffer, command building.

Classes:
    PTYHandle: One child process on a pseudo-terminal
    PTYConfig: Spawn configuration for a PTYHandle
    OutputRingBuffer: Bounded FIFO store of decoded output

Example:
    >>> from taskterm.core.pty import PTYHandle, PTYConfig, OutputRingBuffer
    >>>
    >>> buffer = OutputRingBuffer(capacity=1024)
    >>> handle = PTYHandle(
    ...     ["/bin/sh", "-l"],
    ...     PTYConfig(cwd="/project"),
    ...     on_output=lambda data: buffer.append(data.decode()),
    ... )
    >>> await handle.start()
"""

from taskterm.core.pty.command import build_agent_argv, build_command
from taskterm.core.pty.handle import PTYConfig, PTYHandle
from taskterm.core.pty.ring_buffer import OutputRingBuffer

__all__ = [
    "PTYHandle",
    "PTYConfig",
    "OutputRingBuffer",
    "build_command",
    "build_agent_argv",
]
