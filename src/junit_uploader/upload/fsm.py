"""Per-payload upload lifecycle state machine.

Each payload gets its own FSM instance. The retry controller drives it one
transition per attempt, so an illegal sequence (a retry after success, a
second terminal outcome) fails loudly instead of being recorded.
"""

from __future__ import annotations

from statemachine import State, StateMachine


class PayloadLifecycleSM(StateMachine):
    """Lifecycle of one payload through the retry controller.

    States:
        pending    -- Not attempted yet.
        attempting -- An upload attempt is in flight (``attempt`` is 1-based).
        succeeded  -- The intake accepted the report.
        skipped    -- Terminal failure; the batch continues.
        aborted    -- Terminal failure; the batch stops.
    """

    pending = State("pending", initial=True, value="pending")
    attempting = State("attempting", value="attempting")
    succeeded = State("succeeded", final=True, value="succeeded")
    skipped = State("skipped", final=True, value="skipped")
    aborted = State("aborted", final=True, value="aborted")

    start = pending.to(attempting)
    retry = attempting.to.itself()
    succeed = attempting.to(succeeded)
    skip = attempting.to(skipped)
    abort = attempting.to(aborted)

    def __init__(self) -> None:
        self.attempt = 0
        super().__init__()

    def on_start(self) -> None:
        self.attempt = 1

    def on_retry(self) -> None:
        self.attempt += 1

    def begin_attempt(self) -> int:
        """Enter the next attempt and return its 1-based number."""
        if self.current_state.value == "pending":
            self.start()
        else:
            self.retry()
        return self.attempt
