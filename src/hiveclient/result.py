import asyncio
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, AsyncIterator, List, Optional, Sequence, Tuple, TYPE_CHECKING

from loguru import logger
from TCLIService import ttypes

from .errors import (
    ApplicationError,
    HiveError,
    OperationGoneError,
    ProtocolError,
    SessionError,
    TransportError,
)
from .models import (
    ColumnSchema,
    DataType,
    OperationState,
    StatusCode,
    is_success,
    status_text,
)
from .options import ConnectionOptions

if TYPE_CHECKING:
    from .client import Connection

_COLUMN_FIELDS = (
    "boolVal",
    "byteVal",
    "i16Val",
    "i32Val",
    "i64Val",
    "doubleVal",
    "stringVal",
    "binaryVal",
)


def _unwrap_column(column: Any) -> Tuple[List[Any], bytes]:
    for field in _COLUMN_FIELDS:
        wrapper = getattr(column, field, None)
        if wrapper is not None:
            return wrapper.values or [], wrapper.nulls or b""
    raise ProtocolError("Result column carries no values")


def _unwrap_value(value: Any) -> Any:
    for field in _COLUMN_FIELDS:
        wrapper = getattr(value, field, None)
        if wrapper is not None:
            return wrapper.value
    return None


def _is_null(nulls: bytes, index: int) -> bool:
    byte = index // 8
    if byte >= len(nulls):
        return False
    return bool(nulls[byte] & (1 << (index % 8)))


_FRACTION = re.compile(r"\.(\d+)")


def _normalize_fraction(v: str) -> str:
    # Hive prints 0-9 fractional digits; fromisoformat before 3.11 wants 3 or 6.
    return _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), v, count=1)


def _convert_value(v: Any, typ: DataType) -> Any:
    if v is None or not isinstance(v, str):
        return v

    if typ == DataType.TIMESTAMP:
        try:
            return datetime.fromisoformat(_normalize_fraction(v))
        except ValueError:
            return v
    elif typ == DataType.DATE:
        try:
            return date.fromisoformat(v)
        except ValueError:
            return v
    elif typ == DataType.DECIMAL:
        try:
            return Decimal(v)
        except InvalidOperation:
            return v

    return v


class ResultPage:
    """
    One FetchResults page. Rows are built from the wire columns only when read.
    """

    def __init__(
        self,
        results: Any,
        has_more_rows: bool,
        schema: Optional[Sequence[ColumnSchema]] = None,
    ):
        self.has_more_rows = has_more_rows
        self._schema = schema
        self._columns: List[Tuple[List[Any], bytes]] = []
        self._rows: List[Any] = []
        self._num_rows = 0

        if results is None:
            return

        if results.columns:
            self._columns = [_unwrap_column(col) for col in results.columns]
            lengths = {len(values) for values, _ in self._columns}
            if len(lengths) > 1:
                raise ProtocolError(f"Result columns have unequal lengths: {sorted(lengths)}")
            self._num_rows = lengths.pop()
        else:
            self._rows = results.rows or []
            self._num_rows = len(self._rows)

    def __len__(self) -> int:
        return self._num_rows

    def row(self, index: int) -> Tuple[Any, ...]:
        if self._columns:
            values = [
                None if _is_null(nulls, index) else col_values[index]
                for col_values, nulls in self._columns
            ]
        else:
            values = [_unwrap_value(v) for v in self._rows[index].colVals]

        if self._schema:
            values = [
                _convert_value(v, self._schema[i].type) if i < len(self._schema) else v
                for i, v in enumerate(values)
            ]
        return tuple(values)

    def rows(self, start: int = 0) -> List[Tuple[Any, ...]]:
        return [self.row(i) for i in range(start, self._num_rows)]


class RowSetState(str, Enum):
    CREATED = "created"
    POLLING = "polling"
    READY = "ready"
    FETCHING = "fetching"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


def _column_type(column: Any) -> DataType:
    entry = column.typeDesc.types[0] if column.typeDesc and column.typeDesc.types else None
    if entry is None:
        return DataType.USER_DEFINED
    if entry.primitiveEntry is not None:
        return DataType.from_type_id(entry.primitiveEntry.type)
    if entry.arrayEntry is not None:
        return DataType.ARRAY
    if entry.mapEntry is not None:
        return DataType.MAP
    if entry.structEntry is not None:
        return DataType.STRUCT
    if entry.unionEntry is not None:
        return DataType.UNION
    return DataType.USER_DEFINED


class RowSet:
    """
    Polls an operation until it finishes, then reads its rows page by page.

    Rows are fetched lazily in pages of ``batch_size``; at most one page is
    held in memory. Once failed, every call raises the same error without
    issuing another RPC.
    """

    def __init__(
        self,
        connection: "Connection",
        operation_handle: Any,
        options: ConnectionOptions,
    ):
        self._connection = connection
        self.operation_handle = operation_handle
        self._options = options
        self._state = RowSetState.CREATED
        self._error: Optional[HiveError] = None
        self._page: Optional[ResultPage] = None
        self._offset = 0
        self._has_more_rows = True
        self._schema: Optional[List[ColumnSchema]] = None
        self._closed = False
        self.operation_state: Optional[OperationState] = None

    @property
    def state(self) -> RowSetState:
        return self._state

    @property
    def error(self) -> Optional[HiveError]:
        return self._error

    def _fail(self, error: HiveError) -> HiveError:
        self._state = RowSetState.FAILED
        self._error = error
        self._page = None
        return error

    def _check_failed(self) -> None:
        if self._error is not None:
            raise self._error

    async def _call(self, method: str, request: Any) -> Any:
        if not self._connection.is_open:
            raise SessionError(f"Cannot call {method}: session is not open")
        return await self._connection.binding.call(method, request)

    async def _checked_call(self, method: str, request: Any) -> Any:
        try:
            resp = await self._call(method, request)
        except TransportError as e:
            raise self._fail(ProtocolError(f"{method} failed: {e}"))
        except (ProtocolError, SessionError) as e:
            raise self._fail(e)

        if resp.status is not None and resp.status.statusCode == StatusCode.INVALID_HANDLE:
            raise self._fail(
                OperationGoneError(f"{method}: operation handle is no longer valid")
            )
        if not is_success(resp.status):
            text = status_text(resp.status)
            raise self._fail(ApplicationError(f"{method} failed: {text}", text))
        return resp

    async def wait(self) -> None:
        """
        Polls the operation status until it reaches a terminal state.
        """
        self._check_failed()
        if self._state not in (RowSetState.CREATED, RowSetState.POLLING):
            return

        self._state = RowSetState.POLLING
        req = ttypes.TGetOperationStatusReq(operationHandle=self.operation_handle)
        polls = 0

        while True:
            resp = await self._checked_call("GetOperationStatus", req)
            polls += 1

            try:
                state = OperationState(resp.operationState)
            except (ValueError, TypeError):
                raise self._fail(
                    ProtocolError(f"Unrecognized operation state: {resp.operationState!r}")
                )
            self.operation_state = state
            logger.debug("Operation state {} after {} poll(s)", state.name, polls)

            if state.is_finished():
                self._state = RowSetState.READY
                return
            if state.is_failed():
                message = resp.errorMessage or state.name
                raise self._fail(
                    ApplicationError(f"Operation {state.name.lower()}: {message}", message)
                )
            if state.is_gone():
                raise self._fail(
                    OperationGoneError(f"Operation is no longer known to the server ({state.name})")
                )

            await asyncio.sleep(self._options.poll_interval_seconds)

    async def schema(self) -> List[ColumnSchema]:
        """
        Returns the result columns, fetching them once from the server.
        """
        self._check_failed()
        if self._schema is not None:
            return self._schema
        if self._closed:
            raise OperationGoneError("Operation was closed by the client")

        await self.wait()
        req = ttypes.TGetResultSetMetadataReq(operationHandle=self.operation_handle)
        resp = await self._checked_call("GetResultSetMetadata", req)

        columns = resp.schema.columns if resp.schema and resp.schema.columns else []
        self._schema = [
            ColumnSchema(col.columnName, _column_type(col), col.comment) for col in columns
        ]
        return self._schema

    async def _fetch_next_page(self) -> None:
        await self.wait()
        schema = await self.schema() if self._options.convert_types else None

        self._state = RowSetState.FETCHING
        req = ttypes.TFetchResultsReq(
            operationHandle=self.operation_handle,
            orientation=ttypes.TFetchOrientation.FETCH_NEXT,
            maxRows=self._options.batch_size,
        )
        resp = await self._checked_call("FetchResults", req)

        try:
            page = ResultPage(resp.results, bool(resp.hasMoreRows), schema)
        except ProtocolError as e:
            raise self._fail(e)

        logger.debug("Fetched {} row(s), more rows: {}", len(page), page.has_more_rows)
        self._page = page
        self._offset = 0
        self._has_more_rows = page.has_more_rows
        self._state = RowSetState.READY

    async def _ensure_rows(self) -> bool:
        self._check_failed()
        while self._state != RowSetState.EXHAUSTED:
            if self._page is not None:
                if self._offset < len(self._page):
                    return True
                if not self._has_more_rows:
                    self._state = RowSetState.EXHAUSTED
                    self._page = None
                    break
            await self._fetch_next_page()
        return False

    async def next(self) -> Optional[Tuple[Any, ...]]:
        """
        Returns the next row, or None once all rows have been read.
        """
        if not await self._ensure_rows():
            return None
        assert self._page is not None
        row = self._page.row(self._offset)
        self._offset += 1
        return row

    async def fetch_page(self) -> List[Tuple[Any, ...]]:
        """
        Returns the unread rows of the current page, fetching a new page if needed.
        An empty list means all rows have been read.
        """
        if not await self._ensure_rows():
            return []
        assert self._page is not None
        rows = self._page.rows(self._offset)
        self._offset = len(self._page)
        return rows

    async def fetch_all(self) -> List[Tuple[Any, ...]]:
        """
        Reads all remaining rows into a list.
        """
        rows: List[Tuple[Any, ...]] = []
        while True:
            page = await self.fetch_page()
            if not page:
                return rows
            rows.extend(page)

    async def cancel(self) -> None:
        """
        Cancels the operation on the server.
        """
        self._check_failed()
        if self._closed or self._state == RowSetState.EXHAUSTED:
            return

        req = ttypes.TCancelOperationReq(operationHandle=self.operation_handle)
        await self._checked_call("CancelOperation", req)
        self._state = RowSetState.EXHAUSTED
        self._page = None

    async def close(self) -> None:
        """
        Closes the operation on the server. Safe to call more than once.
        """
        if self._closed:
            return
        self._check_failed()
        self._closed = True
        self._page = None
        self._state = RowSetState.EXHAUSTED

        if not self._connection.is_open:
            return

        req = ttypes.TCloseOperationReq(operationHandle=self.operation_handle)
        resp = await self._connection.binding.call("CloseOperation", req)
        if not is_success(resp.status):
            text = status_text(resp.status)
            raise ApplicationError(f"CloseOperation failed: {text}", text)

    def __aiter__(self) -> AsyncIterator[Tuple[Any, ...]]:
        return self

    async def __anext__(self) -> Tuple[Any, ...]:
        row = await self.next()
        if row is None:
            raise StopAsyncIteration
        return row
