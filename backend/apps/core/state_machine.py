# apps/core/state_machine.py

from typing import Dict, FrozenSet, Iterable, Mapping

from .exceptions import InvalidStateTransition


class StateMachine:
    """
    Transition table for one aggregate type.

    The table maps each status to the statuses it may move to; any pair
    not listed is rejected by :meth:`assert_transition`.
    """

    def __init__(self, entity_type: str, transitions: Mapping[str, Iterable[str]]):
        self.entity_type = entity_type
        self.transitions: Dict[str, FrozenSet[str]] = {
            source: frozenset(targets) for source, targets in transitions.items()
        }

    @property
    def states(self):
        return tuple(self.transitions)

    def allowed_targets(self, current: str) -> FrozenSet[str]:
        return self.transitions.get(current, frozenset())

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.allowed_targets(current)

    def is_terminal(self, current: str) -> bool:
        return not self.allowed_targets(current)

    def assert_transition(self, current: str, target: str, entity_id=None):
        if not self.can_transition(current, target):
            raise InvalidStateTransition(self.entity_type, current, target, entity_id=entity_id)

    def assert_in(self, current: str, allowed: Iterable[str], entity_id=None, message: str = None):
        """Guard for operations that are only legal in some statuses"""
        if current not in allowed:
            raise InvalidStateTransition(
                self.entity_type, current, entity_id=entity_id, message=message
            )
