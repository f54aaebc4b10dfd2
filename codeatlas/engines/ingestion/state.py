"""Repository lifecycle states and the allowed transitions between them."""

from __future__ import annotations

from enum import Enum

from codeatlas.services import InvalidTransitionError


class RepositoryStatus(str, Enum):
    PENDING = "pending"
    CLONING = "cloning"
    WALKING = "walking"
    EXTRACTING = "extracting"
    EMBEDDING = "embedding"
    COMPUTING_OWNERSHIP = "computing_ownership"
    COMPLETED = "completed"
    FAILED = "failed"


_S = RepositoryStatus

TRANSITIONS: dict[RepositoryStatus, frozenset[RepositoryStatus]] = {
    _S.PENDING: frozenset({_S.CLONING, _S.FAILED}),
    _S.CLONING: frozenset({_S.WALKING, _S.FAILED}),
    _S.WALKING: frozenset({_S.EXTRACTING, _S.FAILED}),
    _S.EXTRACTING: frozenset({_S.EMBEDDING, _S.FAILED}),
    _S.EMBEDDING: frozenset({_S.COMPUTING_OWNERSHIP, _S.FAILED}),
    _S.COMPUTING_OWNERSHIP: frozenset({_S.COMPLETED, _S.FAILED}),
    # full re-analysis restarts from pending; an incremental run re-enters walking
    _S.COMPLETED: frozenset({_S.PENDING, _S.WALKING}),
    _S.FAILED: frozenset({_S.PENDING}),
}

# A repository found in one of these at startup belonged to a run that died.
IN_FLIGHT: frozenset[RepositoryStatus] = frozenset(
    {_S.CLONING, _S.WALKING, _S.EXTRACTING, _S.EMBEDDING, _S.COMPUTING_OWNERSHIP}
)


def can_transition(current: str, target: str) -> bool:
    try:
        return RepositoryStatus(target) in TRANSITIONS[RepositoryStatus(current)]
    except ValueError:
        return False


def check_transition(current: str, target: str) -> None:
    """Raise :class:`InvalidTransitionError` unless ``current -> target`` is allowed."""
    if not can_transition(current, target):
        raise InvalidTransitionError(f"cannot move repository from {current!r} to {target!r}")
