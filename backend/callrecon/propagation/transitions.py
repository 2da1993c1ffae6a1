"""Two-step payout transition used to clear the remote "converted" flag.

The remote ledger only clears the flag as a side effect of a payout change, so
setting an already-zero payout to zero does nothing. The transition first
applies a small non-zero placeholder, then the final value.
"""

import enum
from dataclasses import dataclass

from callrecon.clients.sources import WriteResult


class TransitionStep(str, enum.Enum):
    APPLY_NONZERO = "apply-nonzero"
    APPLY_FINAL = "apply-final"


class TransitionState(str, enum.Enum):
    PENDING = "pending"
    NONZERO_APPLIED = "nonzero_applied"
    FINAL_APPLIED = "final_applied"
    FAILED = "failed"


@dataclass
class PayoutTransition:
    counterpart_id: str
    placeholder_amount: float = 2.22
    final_amount: float = 0.0
    state: TransitionState = TransitionState.PENDING
    failed_step: TransitionStep | None = None
    error: str | None = None

    def next_step(self) -> tuple[TransitionStep, float] | None:
        """The next write to issue, or None once the transition has finished or failed."""
        if self.state == TransitionState.PENDING:
            return TransitionStep.APPLY_NONZERO, self.placeholder_amount
        if self.state == TransitionState.NONZERO_APPLIED:
            return TransitionStep.APPLY_FINAL, self.final_amount
        return None

    def record(self, step: TransitionStep, result: WriteResult) -> None:
        if not result.ok:
            self.state = TransitionState.FAILED
            self.failed_step = step
            self.error = result.error
            return
        if step == TransitionStep.APPLY_NONZERO:
            self.state = TransitionState.NONZERO_APPLIED
        else:
            self.state = TransitionState.FINAL_APPLIED

    @property
    def completed(self) -> bool:
        return self.state == TransitionState.FINAL_APPLIED
