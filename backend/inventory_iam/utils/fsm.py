"""Simple finite state machine utility for enforcing allowed state transitions.

Used by the session authorizer; framework-agnostic so it runs outside a request.
Usage:
    from inventory_iam.utils.fsm import TransitionValidator
    SESSION_FSM = TransitionValidator({
        'UNRESOLVED': {'RESOLVING'},
        'RESOLVING': {'AUTHORIZED', 'ACCESS_DENIED'},
    }, field_name='session state')
    SESSION_FSM.assert_can_transition(current, target)

Raises InvalidTransition if the edge is not in the graph.
"""
from typing import Dict, Hashable, Set


class InvalidTransition(ValueError):
    pass


class TransitionValidator:
    def __init__(self, graph: Dict[Hashable, Set[Hashable]], field_name: str = 'status'):
        self.graph = graph
        self.field_name = field_name

    def can_transition(self, current, target) -> bool:
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current, target):
        if not self.can_transition(current, target):
            raise InvalidTransition(f"Invalid {self.field_name} transition {_label(current)} -> {_label(target)}")
        return True


def _label(state) -> str:
    return getattr(state, 'value', state)


__all__ = ['TransitionValidator', 'InvalidTransition']
