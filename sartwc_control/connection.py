"""One IPC client connection.

Framing is newline-delimited. Raw bytes are appended to a receive buffer on
every read, and complete lines are extracted from the front of it. The
buffer is capped: a client that sends more than IPC_MAX_RECV_BUF bytes
without completing a line is disconnected. Outgoing data is capped the same
way: once more than IPC_MAX_SEND_BUF bytes are waiting in the transport,
further sends fail.
"""

import asyncio
import logging
from typing import List

from .encoding import as_bytes
from .errors import ErrorCode, ProtocolError

logger = logging.getLogger(__name__)

IPC_BUF_SIZE = 4096
IPC_MAX_RECV_BUF = 64 * 1024
IPC_MAX_SEND_BUF = 64 * 1024


class Connection:
    """Stream pair, receive buffer and subscription flag of one client."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.reader = reader
        self.writer = writer
        self.buffer = bytearray()
        self.subscribed = False
        self.peer = writer.get_extra_info("peername")

    def __repr__(self) -> str:
        return f"Connection(peer={self.peer!r}, subscribed={self.subscribed})"

    @property
    def closing(self) -> bool:
        return self.writer.is_closing()

    async def read(self) -> bytes:
        """Read whatever is available, up to IPC_BUF_SIZE bytes (b"" on EOF)."""
        return await self.reader.read(IPC_BUF_SIZE)

    def feed(self, data: bytes) -> List[bytes]:
        """Append received bytes and extract every complete line.

        Args:
            data: Bytes from one read

        Returns:
            Complete lines without their line feed, in arrival order. A
            trailing partial line stays buffered.

        Raises:
            ProtocolError: The buffer grew past IPC_MAX_RECV_BUF
        """
        self.buffer += data
        if len(self.buffer) > IPC_MAX_RECV_BUF:
            raise ProtocolError("line too long", ErrorCode.LINE_TOO_LONG)

        lines = []
        while True:
            end = self.buffer.find(b"\n")
            if end < 0:
                break
            lines.append(bytes(self.buffer[:end]))
            del self.buffer[:end + 1]
        return lines

    def send(self, text: str) -> None:
        """Queue text for sending without waiting for the peer.

        Raises:
            ConnectionResetError: The connection is already closing, or the
                peer stopped reading and the send buffer is full
        """
        if self.writer.is_closing():
            raise ConnectionResetError("connection is closing")
        transport = self.writer.transport
        if transport is not None and transport.get_write_buffer_size() > IPC_MAX_SEND_BUF:
            raise ConnectionResetError("send buffer full")
        self.writer.write(as_bytes(text))

    async def drain(self) -> None:
        await self.writer.drain()

    def abort(self) -> None:
        """Drop the connection immediately, discarding unsent data."""
        self.buffer.clear()
        transport = self.writer.transport
        if transport is not None:
            transport.abort()

    async def close(self) -> None:
        """Close the connection and wait for the transport to go away."""
        self.buffer.clear()
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error while closing {self}: {e}")
