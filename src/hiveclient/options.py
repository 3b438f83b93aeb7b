import ssl
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MAX_MESSAGE_SIZE = 100 * 1024 * 1024


class ConnectionOptions(BaseModel):
    """
    Options captured when a connection is opened.

    Timeouts are in milliseconds. ``strict_read``/``strict_write`` left as
    None keep the Thrift binary protocol defaults.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    poll_interval_seconds: float = Field(default=5, gt=0)
    batch_size: int = Field(default=10000, gt=0)

    username: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None
    configuration: Dict[str, str] = Field(default_factory=dict)

    transport_mode: Literal["binary", "http"] = "binary"
    http_path: str = "cliservice"
    max_message_size: int = Field(default=DEFAULT_MAX_MESSAGE_SIZE, gt=0)
    connect_timeout: int = Field(default=5000, gt=0)
    socket_timeout: int = Field(default=5000, gt=0)
    ssl_context: Optional[ssl.SSLContext] = None
    strict_read: Optional[bool] = None
    strict_write: Optional[bool] = None

    convert_types: bool = False

    @field_validator("http_path")
    @classmethod
    def strip_http_path(cls, v: str) -> str:
        """
        Store the HTTP path without surrounding slashes.
        """
        return v.strip("/")

    def session_configuration(self) -> Dict[str, str]:
        """
        Configuration sent with OpenSession.
        """
        conf = dict(self.configuration)
        if self.database:
            conf["use:database"] = self.database
        return conf


DEFAULT_OPTIONS = ConnectionOptions()
