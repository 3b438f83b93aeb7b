from loguru import logger

from .client import Connection, connect, connect_with_user, CLIENT_PROTOCOL_VERSION
from .errors import (
    HiveError,
    TransportError,
    ProtocolError,
    ApplicationError,
    SessionError,
    OperationGoneError,
)
from .models import (
    StatusCode,
    OperationState,
    DataType,
    ColumnSchema,
    is_success,
)
from .options import ConnectionOptions, DEFAULT_OPTIONS
from .result import ResultPage, RowSet, RowSetState
from .statement import Statement
from .transport import HttpBinding, SocketBinding, TransportBinding

logger.disable("hiveclient")

__all__ = [
    "Connection",
    "connect",
    "connect_with_user",
    "CLIENT_PROTOCOL_VERSION",
    "HiveError",
    "TransportError",
    "ProtocolError",
    "ApplicationError",
    "SessionError",
    "OperationGoneError",
    "StatusCode",
    "OperationState",
    "DataType",
    "ColumnSchema",
    "is_success",
    "ConnectionOptions",
    "DEFAULT_OPTIONS",
    "ResultPage",
    "RowSet",
    "RowSetState",
    "Statement",
    "HttpBinding",
    "SocketBinding",
    "TransportBinding",
]
