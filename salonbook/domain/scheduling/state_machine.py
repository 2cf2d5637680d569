"""Appointment status workflow"""

from .errors import AlreadyInStatus, BlockImmutable, InvalidTransition

STATUSES = ("new", "confirmed", "waiting", "done", "no_show", "canceled")

# Status workflow: new → confirmed → waiting → done/no_show
# Any non-terminal status can be canceled; canceled can be reopened as new.
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "new": frozenset({"confirmed", "canceled"}),
    "confirmed": frozenset({"waiting", "done", "canceled"}),
    "waiting": frozenset({"done", "no_show", "canceled"}),
    "done": frozenset(),
    "no_show": frozenset(),
    "canceled": frozenset({"new"}),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def assert_transition(current: str, target: str, appointment_type: str = "service") -> None:
    """
    Raise unless an appointment of the given type may move current -> target.

    Blocks are created confirmed and may only ever be canceled.
    """
    if current == target:
        raise AlreadyInStatus(f"Status is already {current}")
    if not can_transition(current, target):
        raise InvalidTransition(f"Cannot change status from {current} to {target}")
    if appointment_type == "block" and target != "canceled":
        raise BlockImmutable("Block appointment can only be canceled")
