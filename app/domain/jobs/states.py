"""Job lifecycle states and the transition table"""

from enum import Enum
from typing import Dict, FrozenSet, List, NamedTuple, Optional, Tuple


class JobState(str, Enum):
    OFFERED = "OFFERED"
    ASSIGNED = "ASSIGNED"
    EN_ROUTE = "EN_ROUTE"
    ARRIVED = "ARRIVED"
    IN_PROGRESS = "IN_PROGRESS"
    AWAITING_CLIENT_REVIEW = "AWAITING_CLIENT_REVIEW"
    COMPLETED_APPROVED = "COMPLETED_APPROVED"
    CANCELLED = "CANCELLED"
    DISPUTED = "DISPUTED"
    UNDER_REVIEW = "UNDER_REVIEW"


class JobSubState(str, Enum):
    NONE = "NONE"
    EXTRA_TIME_REQUESTED = "EXTRA_TIME_REQUESTED"
    EXTRA_TIME_APPROVED = "EXTRA_TIME_APPROVED"
    EXTRA_TIME_DENIED = "EXTRA_TIME_DENIED"
    RESCHEDULE_REQUESTED = "RESCHEDULE_REQUESTED"


class ActorRole(str, Enum):
    CLEANER = "cleaner"
    CLIENT = "client"
    ADMIN = "admin"


INITIAL_STATE = JobState.OFFERED
TERMINAL_STATES: FrozenSet[JobState] = frozenset(
    {JobState.COMPLETED_APPROVED, JobState.CANCELLED}
)


class Transition(NamedTuple):
    sources: FrozenSet[JobState]
    # None means the operation leaves state unchanged (side channel)
    target: Optional[JobState]


NON_TERMINAL = frozenset(s for s in JobState if s not in TERMINAL_STATES)

TRANSITIONS: Dict[str, Transition] = {
    "accept_job": Transition(frozenset({JobState.OFFERED}), JobState.ASSIGNED),
    "mark_en_route": Transition(frozenset({JobState.ASSIGNED}), JobState.EN_ROUTE),
    "mark_arrived": Transition(frozenset({JobState.EN_ROUTE}), JobState.ARRIVED),
    "start_job": Transition(frozenset({JobState.ARRIVED}), JobState.IN_PROGRESS),
    "complete_job": Transition(
        frozenset({JobState.IN_PROGRESS}), JobState.AWAITING_CLIENT_REVIEW
    ),
    "approve_completion": Transition(
        frozenset({JobState.AWAITING_CLIENT_REVIEW}), JobState.COMPLETED_APPROVED
    ),
    "open_dispute": Transition(frozenset({JobState.AWAITING_CLIENT_REVIEW}), JobState.DISPUTED),
    "begin_dispute_review": Transition(frozenset({JobState.DISPUTED}), JobState.UNDER_REVIEW),
    # Target depends on the resolution (approve or refund)
    "resolve_dispute": Transition(frozenset({JobState.UNDER_REVIEW}), None),
    "cancel_job": Transition(NON_TERMINAL - {JobState.UNDER_REVIEW}, JobState.CANCELLED),
    # Side channels
    "record_photo": Transition(frozenset({JobState.IN_PROGRESS}), None),
    "request_extra_time": Transition(frozenset({JobState.IN_PROGRESS}), None),
    "approve_extra_time": Transition(frozenset({JobState.IN_PROGRESS}), None),
    "deny_extra_time": Transition(frozenset({JobState.IN_PROGRESS}), None),
    "request_reschedule": Transition(frozenset({JobState.OFFERED, JobState.ASSIGNED}), None),
}

DISPUTE_RESOLUTION_TARGETS: Dict[str, JobState] = {
    "approve": JobState.COMPLETED_APPROVED,
    "refund": JobState.CANCELLED,
}


def can_apply(operation: str, state: JobState) -> bool:
    return JobState(state) in TRANSITIONS[operation].sources


def state_edges() -> List[Tuple[JobState, JobState]]:
    """Every (source, target) pair that changes state"""
    edges = set()
    for operation, transition in TRANSITIONS.items():
        targets = (
            list(DISPUTE_RESOLUTION_TARGETS.values())
            if operation == "resolve_dispute"
            else [transition.target]
        )
        for target in targets:
            if target is None:
                continue
            for source in transition.sources:
                edges.add((source, target))
    return sorted(edges, key=lambda e: (e[0].value, e[1].value))


def reachable_states(start: JobState = INITIAL_STATE) -> FrozenSet[JobState]:
    seen = {start}
    frontier = [start]
    edges = state_edges()
    while frontier:
        current = frontier.pop()
        for source, target in edges:
            if source == current and target not in seen:
                seen.add(target)
                frontier.append(target)
    return frozenset(seen)
