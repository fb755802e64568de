import asyncio
import itertools
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import httpx
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosedOK, WebSocketException

from bundler_client.config import settings
from bundler_client.errors import (
    DecodeError,
    DialError,
    RPCError,
    TransportError,
)

logger = logging.getLogger(__name__)

MAX_MESSAGE_SIZE = 32 * 1024 * 1024


def make_request(request_id: int, method: str, params: list) -> dict:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": method,
        "params": params,
    }


def parse_response(payload, request_id: int) -> Any:
    if not isinstance(payload, dict):
        raise DecodeError(f"Not a JSON-RPC response: {payload!r}")

    if payload.get("error") is not None:
        error = RPCError.from_response(payload["error"])
        logger.debug("<- id=%s error %s", request_id, error)
        raise error

    if payload.get("id") != request_id:
        raise DecodeError(
            f"Response id {payload.get('id')!r} does not match request id "
            f"{request_id}"
        )
    if "result" not in payload:
        raise DecodeError("JSON-RPC response has neither result nor error")

    return payload["result"]


class Transport(ABC):
    """A JSON-RPC 2.0 connection to a bundler."""

    def __init__(self):
        self._ids = itertools.count(1)

    async def call(self, method: str, params: list) -> Any:
        request_id = next(self._ids)
        logger.debug("-> %s id=%d", method, request_id)
        payload = await self._round_trip(
            make_request(request_id, method, params)
        )
        return parse_response(payload, request_id)

    @abstractmethod
    async def _round_trip(self, request: dict) -> Any:
        """Send one request object and return the decoded response object."""

    @abstractmethod
    async def close(self) -> None:
        ...

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()


class HTTPTransport(Transport):
    def __init__(
        self,
        url: str,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__()
        self.url = url
        self._owns_client = client is None
        if timeout is None:
            timeout = settings.request_timeout
        if client is None:
            client = httpx.AsyncClient(headers=headers, timeout=timeout)
        self.client = client

    async def _round_trip(self, request: dict) -> Any:
        try:
            response = await self.client.post(self.url, json=request)
        except httpx.HTTPError as e:
            raise TransportError(f"{request['method']}: {e!r}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.is_error:
            # Some servers pair JSON-RPC errors with a non-2xx status.
            if isinstance(payload, dict) and payload.get("error") is not None:
                return payload
            raise TransportError(
                f"{response.status_code} {response.reason_phrase}: "
                f"{response.text[:200]}"
            )
        if payload is None:
            raise DecodeError(
                f"Response body is not JSON: {response.text[:200]}"
            )

        return payload

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()


class StreamTransport(Transport):
    """Multiplexes concurrent requests over one duplex connection by id."""

    def __init__(self):
        super().__init__()
        self._pending: Dict[int, asyncio.Future] = {}
        self._write_lock = asyncio.Lock()
        self._closed_reason: Optional[str] = None
        self._reader = asyncio.get_running_loop().create_task(
            self._read_loop()
        )

    @abstractmethod
    async def _send(self, message: str) -> None:
        ...

    @abstractmethod
    async def _receive(self):
        """Return the next message, or None once the peer has closed."""

    async def _round_trip(self, request: dict) -> Any:
        if self._closed_reason is not None:
            raise TransportError(self._closed_reason)

        future = asyncio.get_running_loop().create_future()
        self._pending[request["id"]] = future
        try:
            async with self._write_lock:
                await self._send(json.dumps(request))
            return await future
        finally:
            self._pending.pop(request["id"], None)

    async def _read_loop(self) -> None:
        reason = "connection closed"
        try:
            while True:
                message = await self._receive()
                if message is None:
                    break
                self._dispatch(message)
        except TransportError as e:
            reason = f"connection lost: {e}"
        finally:
            self._fail_pending(reason)

    def _dispatch(self, message) -> None:
        try:
            payload = json.loads(message)
        except ValueError:
            logger.warning("Dropping malformed message: %.200r", message)
            return

        if not isinstance(payload, dict) or payload.get("id") is None:
            logger.debug("Ignoring message without id: %.200r", message)
            return

        future = self._pending.get(payload["id"])
        if future is None or future.done():
            logger.debug("Dropping response for unknown id %r", payload["id"])
            return
        future.set_result(payload)

    def _fail_pending(self, reason: str) -> None:
        self._closed_reason = reason
        for future in self._pending.values():
            if not future.done():
                future.set_exception(TransportError(reason))

    async def _stop_reader(self) -> None:
        self._reader.cancel()
        await asyncio.gather(self._reader, return_exceptions=True)


class WebSocketTransport(StreamTransport):
    def __init__(self, connection):
        self.connection = connection
        super().__init__()

    @classmethod
    async def connect(
        cls, url: str, headers: Optional[Dict[str, str]] = None
    ) -> "WebSocketTransport":
        try:
            connection = await ws_connect(
                url, additional_headers=headers, max_size=MAX_MESSAGE_SIZE
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise DialError(f"{url}: {e!r}") from e

        logger.info("Connected to %s", url)
        return cls(connection)

    async def _send(self, message: str) -> None:
        try:
            await self.connection.send(message)
        except (OSError, WebSocketException) as e:
            raise TransportError(repr(e)) from e

    async def _receive(self):
        try:
            return await self.connection.recv()
        except ConnectionClosedOK:
            return None
        except (OSError, WebSocketException) as e:
            raise TransportError(repr(e)) from e

    async def close(self) -> None:
        await self.connection.close()
        await self._stop_reader()
        logger.info("Closed websocket connection")


class IPCTransport(StreamTransport):
    """Newline-delimited JSON over a Unix domain socket."""

    def __init__(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ):
        self.stream_reader = reader
        self.stream_writer = writer
        super().__init__()

    @classmethod
    async def connect(cls, path: str) -> "IPCTransport":
        try:
            reader, writer = await asyncio.open_unix_connection(
                path, limit=MAX_MESSAGE_SIZE
            )
        except OSError as e:
            raise DialError(f"{path}: {e!r}") from e

        logger.info("Connected to %s", path)
        return cls(reader, writer)

    async def _send(self, message: str) -> None:
        try:
            self.stream_writer.write(message.encode() + b"\n")
            await self.stream_writer.drain()
        except OSError as e:
            raise TransportError(repr(e)) from e

    async def _receive(self):
        try:
            line = await self.stream_reader.readline()
        except (OSError, ValueError) as e:
            raise TransportError(repr(e)) from e
        return line or None

    async def close(self) -> None:
        self.stream_writer.close()
        try:
            await self.stream_writer.wait_closed()
        except OSError:
            logger.debug("Socket already closed", exc_info=True)
        await self._stop_reader()
        logger.info("Closed IPC connection")


async def dial_transport(
    url: str, headers: Optional[Dict[str, str]] = None
) -> Transport:
    """Open a transport chosen by the URL scheme.

    http(s) URLs use HTTP POST, ws(s) URLs a websocket, and a bare
    filesystem path the IPC socket at that path.
    """
    scheme = urlparse(url).scheme
    if scheme in ("http", "https"):
        return HTTPTransport(url, headers=headers)
    if scheme in ("ws", "wss"):
        return await WebSocketTransport.connect(url, headers=headers)
    if scheme == "":
        return await IPCTransport.connect(url)

    raise DialError(f"Invalid URI: no known transport for scheme {scheme!r}")
