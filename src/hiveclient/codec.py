from typing import Any, Optional

from thrift.Thrift import TApplicationException, TMessageType
from thrift.protocol import TBinaryProtocol
from thrift.transport import TTransport
from TCLIService import TCLIService


def make_protocol(
    transport: Any,
    strict_read: Optional[bool] = None,
    strict_write: Optional[bool] = None,
) -> TBinaryProtocol.TBinaryProtocol:
    """
    Builds a binary protocol, keeping library defaults for unset strictness flags.
    """
    kwargs = {}
    if strict_read is not None:
        kwargs["strictRead"] = strict_read
    if strict_write is not None:
        kwargs["strictWrite"] = strict_write
    return TBinaryProtocol.TBinaryProtocol(transport, **kwargs)


def encode_call(
    method: str,
    request: Any,
    seqid: int,
    strict_write: Optional[bool] = None,
) -> bytes:
    """
    Serializes a CALL message for a TCLIService method.
    """
    buf = TTransport.TMemoryBuffer()
    proto = make_protocol(buf, strict_write=strict_write)
    args = getattr(TCLIService, f"{method}_args")(req=request)

    proto.writeMessageBegin(method, TMessageType.CALL, seqid)
    args.write(proto)
    proto.writeMessageEnd()
    return buf.getvalue()


def decode_reply(
    method: str,
    payload: bytes,
    seqid: Optional[int] = None,
    strict_read: Optional[bool] = None,
) -> Any:
    """
    Deserializes the reply to a TCLIService call and returns its response struct.

    Raises TApplicationException when the server replied with an exception or
    with no result.
    """
    buf = TTransport.TMemoryBuffer(payload)
    proto = make_protocol(buf, strict_read=strict_read)

    name, mtype, rseqid = proto.readMessageBegin()
    if mtype == TMessageType.EXCEPTION:
        exc = TApplicationException()
        exc.read(proto)
        proto.readMessageEnd()
        raise exc

    if name != method or (seqid is not None and rseqid != seqid):
        raise TApplicationException(
            TApplicationException.BAD_SEQUENCE_ID,
            f"{method} reply out of sequence: got {name}#{rseqid}",
        )

    result = getattr(TCLIService, f"{method}_result")()
    result.read(proto)
    proto.readMessageEnd()

    if result.success is None:
        raise TApplicationException(
            TApplicationException.MISSING_RESULT,
            f"{method} failed: unknown result",
        )
    return result.success
