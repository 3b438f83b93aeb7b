from typing import Any, Dict, Optional, TYPE_CHECKING

from loguru import logger
from TCLIService import ttypes

from .errors import ApplicationError, ProtocolError, TransportError
from .models import is_success, status_text
from .result import RowSet

if TYPE_CHECKING:
    from .client import Connection


class Statement:
    """
    Represents a statement to be executed on HiveServer2.
    """

    def __init__(
        self,
        connection: "Connection",
        sql: str,
        conf_overlay: Optional[Dict[str, str]] = None,
    ):
        self._connection = connection
        self.sql = sql
        self.conf_overlay = conf_overlay

    async def submit(self) -> Any:
        """
        Submits the statement and returns the raw TExecuteStatementResp.
        """
        session = self._connection._require_open()
        req = ttypes.TExecuteStatementReq(
            sessionHandle=session,
            statement=self.sql,
            confOverlay=self.conf_overlay,
            runAsync=True,
        )

        try:
            resp = await self._connection.binding.call("ExecuteStatement", req)
        except (ProtocolError, TransportError) as e:
            raise ProtocolError(f"Error in ExecuteStatement: {e}") from e

        if not is_success(resp.status):
            text = status_text(resp.status)
            raise ApplicationError(f"Error from server: {text}", text)

        if resp.operationHandle is None:
            raise ProtocolError("ExecuteStatement reply carries no operation handle")

        logger.debug("Submitted statement: {}", self.sql)
        return resp

    async def execute(self) -> RowSet:
        """
        Submits the statement and returns a RowSet over its results.
        """
        resp = await self.submit()
        return RowSet(self._connection, resp.operationHandle, self._connection.options)
