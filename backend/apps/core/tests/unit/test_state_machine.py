# apps/core/tests/unit/test_state_machine.py
import pytest

from apps.core.exceptions import InvalidStateTransition
from apps.core.state_machine import StateMachine

LIGHT = StateMachine('Light', {
    'off': {'on'},
    'on': {'off', 'broken'},
    'broken': set(),
})


class TestStateMachine:
    """Test the transition table gate."""

    def test_allowed_transition(self):
        LIGHT.assert_transition('off', 'on')
        assert LIGHT.can_transition('on', 'broken')

    def test_rejected_transition_names_both_states(self):
        """Test that the error names the attempted source and destination."""
        with pytest.raises(InvalidStateTransition) as exc_info:
            LIGHT.assert_transition('off', 'broken', entity_id=7)

        error = exc_info.value
        assert error.code == 'INVALID_STATUS_TRANSITION'
        assert error.details == {
            'entity_type': 'Light',
            'entity_id': 7,
            'current_status': 'off',
            'target_status': 'broken',
        }
        assert "'off' to 'broken'" in error.message

    def test_terminal_and_unknown_states(self):
        assert LIGHT.is_terminal('broken')
        assert not LIGHT.is_terminal('on')
        assert LIGHT.allowed_targets('melted') == frozenset()

    def test_assert_in_reports_invalid_state(self):
        """Test the editable-window guard."""
        with pytest.raises(InvalidStateTransition) as exc_info:
            LIGHT.assert_in('broken', ('off', 'on'), message='Broken lights cannot be dimmed')

        assert exc_info.value.code == 'INVALID_STATE'
        assert exc_info.value.message == 'Broken lights cannot be dimmed'
