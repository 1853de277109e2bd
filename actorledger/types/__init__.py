"""Plain data types shared by the engine: messages, actions, results."""

from .actions import Action, Reserve, ReserveMode, SendMessage, SetCode
from .message import Body, ExternalHeaders, InitPayload, Message, MessageKind
from .result import AccountSnapshot, TransactionResult
from .status import ExternalOutcome, TxPhase, TxStatus

__all__ = [
    "Action",
    "Reserve",
    "ReserveMode",
    "SendMessage",
    "SetCode",
    "Body",
    "ExternalHeaders",
    "InitPayload",
    "Message",
    "MessageKind",
    "AccountSnapshot",
    "TransactionResult",
    "ExternalOutcome",
    "TxPhase",
    "TxStatus",
]
