"""Shared fixtures: a scripted in-memory binding and TCLIService reply builders."""

import io
from collections import defaultdict, deque
from collections.abc import Generator
from types import SimpleNamespace
from typing import Any, Deque, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from loguru import logger
from thrift.Thrift import TApplicationException, TMessageType
from thrift.protocol import TBinaryProtocol
from thrift.transport import TTransport
from TCLIService import TCLIService, ttypes

from hiveclient import Connection, ConnectionOptions
from hiveclient import result as result_module


class FakeBinding:
    """Binding that answers each method from a queue of scripted replies.

    A scripted reply that is an exception instance is raised instead.
    """

    def __init__(self) -> None:
        self.replies: Dict[str, Deque[Any]] = defaultdict(deque)
        self.calls: List[Tuple[str, Any]] = []
        self.open_error: Optional[Exception] = None
        self.opened = False
        self.closed = False

    def script(self, method: str, *replies: Any) -> "FakeBinding":
        self.replies[method].extend(replies)
        return self

    @property
    def methods(self) -> List[str]:
        return [method for method, _ in self.calls]

    def requests(self, method: str) -> List[Any]:
        return [req for name, req in self.calls if name == method]

    async def open(self) -> None:
        if self.open_error is not None:
            raise self.open_error
        self.opened = True

    async def close(self) -> None:
        self.closed = True

    async def call(self, method: str, request: Any) -> Any:
        self.calls.append((method, request))
        queue = self.replies[method]
        if not queue:
            raise AssertionError(f"Unexpected {method} call")
        reply = queue.popleft()
        if isinstance(reply, Exception):
            raise reply
        return reply


def handle_id(tag: bytes) -> ttypes.THandleIdentifier:
    return ttypes.THandleIdentifier(guid=tag * 16, secret=tag * 16)


def status(code: int = 0, message: Optional[str] = None) -> ttypes.TStatus:
    return ttypes.TStatus(statusCode=code, errorMessage=message)


def open_session_resp(code: int = 0, with_handle: bool = True) -> ttypes.TOpenSessionResp:
    return ttypes.TOpenSessionResp(
        status=status(code),
        serverProtocolVersion=6,
        sessionHandle=ttypes.TSessionHandle(sessionId=handle_id(b"s")) if with_handle else None,
    )


def close_session_resp(code: int = 0) -> ttypes.TCloseSessionResp:
    return ttypes.TCloseSessionResp(status=status(code))


def operation_handle() -> ttypes.TOperationHandle:
    return ttypes.TOperationHandle(
        operationId=handle_id(b"o"),
        operationType=0,
        hasResultSet=True,
    )


def execute_resp(code: int = 0, message: Optional[str] = None) -> ttypes.TExecuteStatementResp:
    return ttypes.TExecuteStatementResp(
        status=status(code, message),
        operationHandle=operation_handle() if code in (0, 1) else None,
    )


def op_status(state: int, message: Optional[str] = None) -> ttypes.TGetOperationStatusResp:
    return ttypes.TGetOperationStatusResp(
        status=status(),
        operationState=state,
        errorMessage=message,
    )


def int_column(values: List[int], nulls: bytes = b"") -> ttypes.TColumn:
    return ttypes.TColumn(i32Val=ttypes.TI32Column(values=values, nulls=nulls))


def string_column(values: List[str], nulls: bytes = b"") -> ttypes.TColumn:
    return ttypes.TColumn(stringVal=ttypes.TStringColumn(values=values, nulls=nulls))


def fetch_resp(
    columns: List[ttypes.TColumn],
    has_more_rows: bool,
) -> ttypes.TFetchResultsResp:
    return ttypes.TFetchResultsResp(
        status=status(),
        hasMoreRows=has_more_rows,
        results=ttypes.TRowSet(startRowOffset=0, rows=[], columns=columns),
    )


def metadata_resp(columns: List[Tuple[str, int]]) -> ttypes.TGetResultSetMetadataResp:
    descs = [
        ttypes.TColumnDesc(
            columnName=name,
            typeDesc=ttypes.TTypeDesc(
                types=[ttypes.TTypeEntry(primitiveEntry=ttypes.TPrimitiveTypeEntry(type=type_id))]
            ),
            position=i + 1,
        )
        for i, (name, type_id) in enumerate(columns)
    ]
    return ttypes.TGetResultSetMetadataResp(
        status=status(),
        schema=ttypes.TTableSchema(columns=descs),
    )


def read_call(body: bytes) -> Tuple[str, int, Any]:
    """Decode a CALL message the way a server would."""
    proto = TBinaryProtocol.TBinaryProtocol(TTransport.TMemoryBuffer(body))
    name, _, seqid = proto.readMessageBegin()
    args = getattr(TCLIService, f"{name}_args")()
    args.read(proto)
    proto.readMessageEnd()
    return name, seqid, args.req


def encode_reply(method: str, seqid: int, response: Any) -> bytes:
    """Encode a REPLY message carrying a response struct."""
    buf = TTransport.TMemoryBuffer()
    proto = TBinaryProtocol.TBinaryProtocol(buf)
    proto.writeMessageBegin(method, TMessageType.REPLY, seqid)
    getattr(TCLIService, f"{method}_result")(success=response).write(proto)
    proto.writeMessageEnd()
    return buf.getvalue()


def encode_exception(method: str, seqid: int, error: TApplicationException) -> bytes:
    buf = TTransport.TMemoryBuffer()
    proto = TBinaryProtocol.TBinaryProtocol(buf)
    proto.writeMessageBegin(method, TMessageType.EXCEPTION, seqid)
    error.write(proto)
    proto.writeMessageEnd()
    return buf.getvalue()


@pytest.fixture
def binding() -> FakeBinding:
    return FakeBinding().script("OpenSession", open_session_resp())


@pytest.fixture
def options() -> ConnectionOptions:
    return ConnectionOptions(poll_interval_seconds=0.5, batch_size=2)


@pytest_asyncio.fixture
async def connection(binding: FakeBinding, options: ConnectionOptions) -> Connection:
    conn = Connection("hive.local", 10000, options, binding=binding)
    await conn.connect()
    return conn


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> List[float]:
    """Record poll delays instead of sleeping."""
    delays: List[float] = []

    async def fake_sleep(delay: float, *args: Any, **kwargs: Any) -> None:
        delays.append(delay)

    monkeypatch.setattr(result_module, "asyncio", SimpleNamespace(sleep=fake_sleep))
    return delays


@pytest.fixture
def log_capture() -> Generator[io.StringIO, None, None]:
    """Capture loguru output from hiveclient to a string buffer."""
    string_io = io.StringIO()
    logger.enable("hiveclient")
    handler_id = logger.add(string_io, format="{level} {message}", level="DEBUG")
    yield string_io
    logger.remove(handler_id)
    logger.disable("hiveclient")
