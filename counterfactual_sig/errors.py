# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Internal error taxonomy for signature verification.

None of these exceptions escape :meth:`SignatureVerifier.verify`; each one is
absorbed by the branch that raised it and turned into
``VerificationOutcome.INVALID``. They exist so that signer-side code and
diagnostics can tell the failure modes apart.
"""

from typing import Optional


class VerificationError(Exception):
    """Base class for every failure inside a verification branch."""


class MalformedWrapper(VerificationError):
    """The payload in front of the magic marker is not an (address, bytes, bytes) tuple."""


class DeploymentFailure(VerificationError):
    """The factory invocation reverted, errored or never produced a receipt."""

    tx_hash: Optional[str]

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class CallFailure(VerificationError):
    """The validation entry point could not be executed.

    This is distinct from the entry point returning a value other than the
    success magic, although the verifier treats both the same way.
    """


class InvalidSignatureLength(VerificationError):
    """A plain recoverable signature was not exactly 65 bytes."""

    length: int

    def __init__(self, length: int):
        super().__init__(f"Expected a 65 byte signature, got {length} bytes")
        self.length = length


class InvalidRecoveryParameter(VerificationError):
    """The recovery byte of a plain signature is not an accepted value."""

    v: int

    def __init__(self, v: int):
        super().__init__(f"Recovery byte {v} is not one of 27 or 28")
        self.v = v


class RecoveryFailure(VerificationError):
    """No public key could be recovered from the (digest, r, s, v) tuple."""
