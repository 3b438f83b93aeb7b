import asyncio
import itertools
from typing import Any, Optional, Protocol, Tuple

import httpx
from loguru import logger
from thrift.Thrift import TException
from thrift.transport import TSocket, TSSLSocket, TTransport
from TCLIService import TCLIService

from .codec import decode_reply, encode_call, make_protocol
from .errors import ProtocolError, TransportError
from .options import ConnectionOptions


class TransportBinding(Protocol):
    """
    An RPC channel to a TCLIService endpoint.
    """

    async def open(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def call(self, method: str, request: Any) -> Any:
        ...


class SocketBinding:
    """
    Binary Thrift over a TCP socket, TLS-wrapped when an SSL context is configured.
    """

    def __init__(self, host: str, port: int, options: ConnectionOptions):
        self.host = host
        self.port = port
        self._options = options

        if options.ssl_context is not None:
            self._socket = TSSLSocket.TSSLSocket(host, port, ssl_context=options.ssl_context)
        else:
            self._socket = TSocket.TSocket(host, port)
        self._socket.setTimeout(options.connect_timeout)

        self._transport = TTransport.TBufferedTransport(self._socket)
        protocol = make_protocol(
            self._transport,
            strict_read=options.strict_read,
            strict_write=options.strict_write,
        )
        self._client = TCLIService.Client(protocol)

    async def open(self) -> None:
        try:
            await asyncio.to_thread(self._transport.open)
        except (TException, OSError) as e:
            raise TransportError(f"Could not connect to {self.host}:{self.port}: {e}") from e
        self._socket.setTimeout(self._options.socket_timeout)

    async def close(self) -> None:
        self._transport.close()

    async def call(self, method: str, request: Any) -> Any:
        rpc = getattr(self._client, method)
        try:
            return await asyncio.to_thread(rpc, request)
        except (TException, OSError, EOFError) as e:
            raise ProtocolError(f"{method} failed: {e}") from e


class HttpBinding:
    """
    Binary Thrift messages POSTed over HTTP (HiveServer2 http transport mode).
    """

    def __init__(
        self,
        host: str,
        port: int,
        options: ConnectionOptions,
        auth: Optional[Tuple[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        scheme = "https" if options.ssl_context is not None else "http"
        self.url = f"{scheme}://{host}:{port}/{options.http_path}"
        self._options = options
        self._auth = auth
        self._transport = transport
        self._seqids = itertools.count()
        self._client: Optional[httpx.AsyncClient] = None

    async def open(self) -> None:
        """
        Initialize the HTTP client. No request is sent until the first call, so a
        server that cannot be reached raises TransportError from that call.
        """
        timeout = httpx.Timeout(
            self._options.socket_timeout / 1000,
            connect=self._options.connect_timeout / 1000,
        )
        kwargs = {}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        try:
            self._client = httpx.AsyncClient(
                headers={"Content-Type": "application/x-thrift"},
                auth=self._auth,
                timeout=timeout,
                verify=self._options.ssl_context or True,
                **kwargs,
            )
        except (httpx.HTTPError, OSError) as e:
            raise TransportError(f"Could not set up HTTP client for {self.url}: {e}") from e

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def call(self, method: str, request: Any) -> Any:
        if not self._client:
            raise ProtocolError(f"{method} failed: HTTP binding is not open")

        seqid = next(self._seqids)
        body = encode_call(method, request, seqid, strict_write=self._options.strict_write)

        try:
            resp = await self._client.post(self.url, content=body)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProtocolError(
                f"{method} failed: HTTP {e.response.status_code}: {e.response.text}"
            ) from e
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            raise TransportError(f"Could not connect to {self.url}: {e}") from e
        except httpx.HTTPError as e:
            raise ProtocolError(f"Network error during {method}: {e}") from e

        payload = resp.content
        if len(payload) > self._options.max_message_size:
            raise ProtocolError(
                f"{method} reply of {len(payload)} bytes exceeds max message size "
                f"{self._options.max_message_size}"
            )

        try:
            return decode_reply(method, payload, seqid, strict_read=self._options.strict_read)
        except (TException, EOFError) as e:
            raise ProtocolError(f"{method} failed: {e}") from e


def create_binding(
    host: str,
    port: int,
    options: ConnectionOptions,
    auth: Optional[Tuple[str, str]] = None,
) -> TransportBinding:
    """
    Builds the binding selected by options.transport_mode.
    """
    logger.debug("Creating {} binding for {}:{}", options.transport_mode, host, port)
    if options.transport_mode == "http":
        return HttpBinding(host, port, options, auth=auth)
    return SocketBinding(host, port, options)
