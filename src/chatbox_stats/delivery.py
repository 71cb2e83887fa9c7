"""Delivery channel - encodes snapshots as OSC messages and sends them over UDP."""

import logging
import socket
from typing import Optional

from pythonosc.osc_message_builder import BuildError, OscMessageBuilder

from .config import OscEndpoint
from .exceptions import DeliveryError, StartupError

logger = logging.getLogger(__name__)


class DeliveryChannel:
    """
    Fire-and-forget OSC sender.

    Every snapshot becomes one message at the endpoint address with two
    arguments: the text and ``True`` (type tags ``,sT``), which tells the
    chatbox to show the text immediately. The UDP socket is bound once on
    open() and released on close().

    Usage:
        with DeliveryChannel(OscEndpoint()) as channel:
            channel.send("CPU: 12.34%, Processes: 312")
    """

    def __init__(self, endpoint: OscEndpoint):
        self.endpoint = endpoint
        self._sock: Optional[socket.socket] = None

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    def open(self):
        """Bind the outbound socket."""
        if self._sock is not None:
            return

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((self.endpoint.bind_host, self.endpoint.bind_port))
        except (OSError, OverflowError) as e:
            sock.close()
            raise StartupError(
                f"Could not bind {self.endpoint.bind_host}:{self.endpoint.bind_port}: {e}"
            ) from e

        self._sock = sock
        logger.debug(f"Bound OSC socket to {sock.getsockname()}")

    def close(self):
        """Release the socket. Safe to call more than once."""
        if self._sock is None:
            return
        self._sock.close()
        self._sock = None
        logger.debug("Closed OSC socket")

    def __enter__(self) -> "DeliveryChannel":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def encode(self, text: str) -> bytes:
        """Encode one snapshot as an OSC message datagram."""
        builder = OscMessageBuilder(address=self.endpoint.address)
        builder.add_arg(text)
        builder.add_arg(True)
        return builder.build().dgram

    def send(self, text: str) -> int:
        """
        Send one snapshot.

        Returns:
            Number of bytes sent

        Raises:
            DeliveryError: the message could not be encoded or sent
        """
        if self._sock is None:
            raise DeliveryError("Delivery channel is not open")

        try:
            dgram = self.encode(text)
        except BuildError as e:
            raise DeliveryError(f"Could not encode snapshot: {e}") from e

        try:
            return self._sock.sendto(dgram, (self.endpoint.host, self.endpoint.port))
        except (OSError, OverflowError) as e:
            raise DeliveryError(
                f"Could not send to {self.endpoint.host}:{self.endpoint.port}: {e}"
            ) from e
