from enum import Enum, IntEnum
from dataclasses import dataclass
from typing import Any, Optional


class StatusCode(IntEnum):
    SUCCESS = 0
    SUCCESS_WITH_INFO = 1
    STILL_EXECUTING = 2
    ERROR = 3
    INVALID_HANDLE = 4


class OperationState(IntEnum):
    INITIALIZED = 0
    RUNNING = 1
    FINISHED = 2
    CANCELED = 3
    CLOSED = 4
    ERROR = 5
    UNKNOWN = 6
    PENDING = 7
    TIMEDOUT = 8

    def is_finished(self) -> bool:
        return self == OperationState.FINISHED

    def is_failed(self) -> bool:
        return self in (
            OperationState.ERROR,
            OperationState.CANCELED,
            OperationState.TIMEDOUT,
        )

    def is_gone(self) -> bool:
        return self in (OperationState.CLOSED, OperationState.UNKNOWN)

    def is_terminated(self) -> bool:
        return self.is_finished() or self.is_failed() or self.is_gone()


class DataType(str, Enum):
    BOOLEAN = "boolean"
    TINYINT = "tinyint"
    SMALLINT = "smallint"
    INT = "int"
    BIGINT = "bigint"
    FLOAT = "float"
    DOUBLE = "double"
    STRING = "string"
    TIMESTAMP = "timestamp"
    BINARY = "binary"
    ARRAY = "array"
    MAP = "map"
    STRUCT = "struct"
    UNION = "union"
    USER_DEFINED = "user_defined"
    DECIMAL = "decimal"
    NULL = "null"
    DATE = "date"
    VARCHAR = "varchar"
    CHAR = "char"
    INTERVAL_YEAR_MONTH = "interval_year_month"
    INTERVAL_DAY_TIME = "interval_day_time"
    TIMESTAMPLOCALTZ = "timestamplocaltz"

    @classmethod
    def from_type_id(cls, type_id: int) -> "DataType":
        """
        Maps a TTypeId wire value to a DataType.
        """
        members = list(cls)
        if 0 <= type_id < len(members):
            return members[type_id]
        return cls.USER_DEFINED


@dataclass(frozen=True)
class ColumnSchema:
    name: str
    type: DataType
    comment: Optional[str] = None


def is_success(status: Any) -> bool:
    """
    Returns True only for SUCCESS and SUCCESS_WITH_INFO application statuses.
    """
    if status is None:
        return False
    return status.statusCode in (StatusCode.SUCCESS, StatusCode.SUCCESS_WITH_INFO)


def status_text(status: Any) -> str:
    """
    Renders a TStatus into a readable message.
    """
    if status is None:
        return "no status in response"

    try:
        code = StatusCode(status.statusCode).name
    except ValueError:
        code = str(status.statusCode)

    text = code
    if status.errorMessage:
        text = f"{text}: {status.errorMessage}"

    details = []
    if status.sqlState:
        details.append(f"sqlState={status.sqlState}")
    if status.errorCode:
        details.append(f"errorCode={status.errorCode}")
    if details:
        text = f"{text} ({', '.join(details)})"
    return text
