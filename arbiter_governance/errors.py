"""Precondition rejections raised by the arbitration workflow.

Every rejection carries a discrete ``code``. A rejected call leaves no state
change and emits no event, so retrying with the same arguments fails the same
way.
"""

from __future__ import annotations

from typing import Dict


class ArbitrationError(ValueError):
    code = "ArbitrationError"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.detail = message or self.code

    def as_dict(self) -> Dict[str, str]:
        return {"code": self.code, "detail": self.detail}


class AlreadyRegistered(ArbitrationError):
    code = "AlreadyRegistered"


class UnknownAgent(ArbitrationError):
    code = "UnknownAgent"


class NotRegistered(UnknownAgent):
    code = "NotRegistered"


class InvalidProposal(ArbitrationError):
    code = "InvalidProposal"


class UnknownProposal(InvalidProposal):
    code = "UnknownProposal"


class WindowClosed(ArbitrationError):
    code = "WindowClosed"


class AlreadySubmitted(ArbitrationError):
    code = "AlreadySubmitted"


class DuplicateVote(AlreadySubmitted):
    code = "DuplicateVote"


class InsufficientPredictions(ArbitrationError):
    code = "InsufficientPredictions"


class AlreadyDecided(ArbitrationError):
    code = "AlreadyDecided"


class DecisionPending(ArbitrationError):
    code = "DecisionPending"


class AlreadyRecorded(ArbitrationError):
    code = "AlreadyRecorded"
