"""Webhook run state machine enforced by the orchestrator."""

VALIDATING = "VALIDATING"
FETCHING_DETAIL = "FETCHING_DETAIL"
COMPUTING_WINDOW = "COMPUTING_WINDOW"
PERSISTING = "PERSISTING"
SCHEDULING = "SCHEDULING"
DONE = "DONE"
FAILED = "FAILED"

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    VALIDATING: {FETCHING_DETAIL, DONE, FAILED},
    FETCHING_DETAIL: {COMPUTING_WINDOW, FAILED},
    COMPUTING_WINDOW: {PERSISTING, FAILED},
    PERSISTING: {SCHEDULING, FAILED},
    # Scheduling failures are non-fatal, so there is no edge to FAILED.
    SCHEDULING: {DONE},
    DONE: set(),
    FAILED: set(),
}


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current} -> {new}")
