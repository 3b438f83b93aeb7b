from typing import Any, Dict, Optional, Tuple, TYPE_CHECKING

from loguru import logger
from TCLIService import ttypes

from .errors import ApplicationError, ProtocolError, SessionError, TransportError
from .models import is_success, status_text
from .options import DEFAULT_OPTIONS, ConnectionOptions
from .statement import Statement
from .transport import TransportBinding, create_binding

if TYPE_CHECKING:
    from .result import RowSet

# HIVE_CLI_SERVICE_PROTOCOL_V7
CLIENT_PROTOCOL_VERSION = 6


class Connection:
    """
    A single HiveServer2 session over one transport binding.
    """

    def __init__(
        self,
        host: str,
        port: int = 10000,
        options: Optional[ConnectionOptions] = None,
        binding: Optional[TransportBinding] = None,
    ):
        self.host = host
        self.port = port
        self.options = options or DEFAULT_OPTIONS
        self._binding = binding
        self._session: Optional[Any] = None
        self._closed = False
        self.server_protocol_version: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self._session is not None

    @property
    def binding(self) -> TransportBinding:
        if self._binding is None:
            raise SessionError("Connection has no transport binding")
        return self._binding

    @property
    def session_handle(self) -> Any:
        return self._session

    async def connect(self) -> None:
        """
        Opens the session, using the credentials from the options if any.
        """
        credentials = None
        if self.options.username is not None:
            credentials = (self.options.username, self.options.password or "")
        await self._open(credentials)

    async def connect_with_user(self, username: str, password: str) -> None:
        """
        Opens the session as the given user.
        """
        await self._open((username, password))

    async def _open(self, credentials: Optional[Tuple[str, str]]) -> None:
        if self._closed:
            raise SessionError("Connection was closed and cannot be reopened")
        if self.is_open:
            raise SessionError("Session is already open")

        if self._binding is None:
            auth = credentials if self.options.transport_mode == "http" else None
            self._binding = create_binding(self.host, self.port, self.options, auth=auth)

        await self._binding.open()

        req = ttypes.TOpenSessionReq(
            client_protocol=CLIENT_PROTOCOL_VERSION,
            configuration=self.options.session_configuration() or None,
        )
        if credentials is not None:
            req.username, req.password = credentials

        try:
            resp = await self._binding.call("OpenSession", req)
        except BaseException:
            await self._binding.close()
            raise

        if not is_success(resp.status) or resp.sessionHandle is None:
            await self._binding.close()
            raise SessionError(f"Server did not open a session: {status_text(resp.status)}")

        self._session = resp.sessionHandle
        self.server_protocol_version = resp.serverProtocolVersion
        logger.debug(
            "Opened session on {}:{} (server protocol {})",
            self.host,
            self.port,
            self.server_protocol_version,
        )

    async def close(self) -> None:
        """
        Closes the session. After this the connection cannot be used again.
        """
        if not self.is_open:
            return

        req = ttypes.TCloseSessionReq(sessionHandle=self._session)
        self._session = None
        self._closed = True

        resp = None
        try:
            resp = await self.binding.call("CloseSession", req)
        except (ProtocolError, TransportError) as e:
            logger.warning("CloseSession failed on {}:{}: {}", self.host, self.port, e)
            raise ProtocolError(f"Error closing session: response={resp!r}, error={e}") from e
        finally:
            await self.binding.close()

        if not is_success(resp.status):
            raise ApplicationError(
                f"Error closing session: {status_text(resp.status)}",
                status_text(resp.status),
            )
        logger.debug("Closed session on {}:{}", self.host, self.port)

    def _require_open(self) -> Any:
        if not self.is_open:
            raise SessionError("Session is not open")
        return self._session

    def statement(self, sql: str, conf_overlay: Optional[Dict[str, str]] = None) -> Statement:
        """
        Create a new statement.
        """
        return Statement(self, sql, conf_overlay)

    async def query(self, sql: str) -> "RowSet":
        """
        Submits a query and returns a RowSet for polling and reading its results.
        """
        return await self.statement(sql).execute()

    async def execute(self, sql: str) -> Any:
        """
        Submits a statement and returns the raw TExecuteStatementResp.
        """
        return await self.statement(sql).submit()

    async def __aenter__(self) -> "Connection":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def connect(
    host: str,
    port: int = 10000,
    options: Optional[ConnectionOptions] = None,
) -> Connection:
    """
    Opens a connection, anonymously unless the options carry credentials.
    """
    conn = Connection(host, port, options)
    await conn.connect()
    return conn


async def connect_with_user(
    host: str,
    port: int,
    username: str,
    password: str,
    options: Optional[ConnectionOptions] = None,
) -> Connection:
    """
    Opens a connection as the given user.
    """
    conn = Connection(host, port, options)
    await conn.connect_with_user(username, password)
    return conn
