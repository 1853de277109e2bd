"""
actorledger.runtime.replay — admission control for external messages.

Checks run in a fixed order and the first failure wins:

1. ``Expired``          — logical now > headers.expire
2. ``StaleOrReplayed``  — headers.timestamp <= account.last_accepted_timestamp
3. ``BadSignature``     — the verifier rejects the signature over
                          `Message.signing_payload()` for headers.signer_key

Passing admission does not start paying for the message. The handler must call
`ctx.accept()`, which moves the watermark to the message timestamp *through the
transaction journal*. If the transaction later rolls back, the watermark rolls
back with it, and the very same signed message is admissible again until it
expires. That replay window is deliberate, documented behaviour; callers that
cannot tolerate it must keep `expire` short.
"""

from __future__ import annotations

from typing import Any, Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from ..crypto import Ed25519Verifier, SignatureVerifier, Signer
from ..errors import BadSignature, Expired, StaleOrReplayed
from ..state.accounts import Account
from ..types.message import Message


class ReplayGuard:
    def __init__(self, verifier: Optional[SignatureVerifier] = None) -> None:
        self.verifier: SignatureVerifier = verifier or Ed25519Verifier()

    def admit(self, account: Optional[Account], message: Message, now: int) -> None:
        """Raise an `AdmissionError` subclass unless `message` may start a transaction."""
        if not message.is_external or message.headers is None:
            raise ValueError("only external messages go through admission")
        hdr = message.headers
        if now > hdr.expire:
            raise Expired(now=now, expire=hdr.expire)
        last = account.last_accepted_timestamp if account is not None else 0
        if hdr.timestamp <= last:
            raise StaleOrReplayed(timestamp=hdr.timestamp, last_accepted=last)
        if not hdr.signer_key or not hdr.signature:
            raise BadSignature("message is not signed")
        if not self.verifier.verify(hdr.signer_key, message.signing_payload(), hdr.signature):
            raise BadSignature()

    @staticmethod
    def sign_external(private_key: Any, message: Message) -> Message:
        """Client helper: sign `message` with an Ed25519 key (or a `Signer`)."""
        if isinstance(private_key, Signer):
            signer = private_key
        elif isinstance(private_key, Ed25519PrivateKey):
            signer = Signer(private_key)
        else:
            signer = Signer.from_seed(bytes(private_key))
        return message.signed_by(signer)


__all__ = ["ReplayGuard"]
