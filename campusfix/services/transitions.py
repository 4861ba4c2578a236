"""
Правила смены статуса дефекта.

Администратор может выполнить любой переход. Для остальных ролей разрешенные
переходы перечислены явно: каждая роль и каждый статус присутствуют в таблице,
пустое множество означает, что из этого статуса роль ничего менять не может.
"""
from typing import Dict, FrozenSet, Union

from campusfix.models.defect import DefectStatus
from campusfix.models.user import UserRole

S = DefectStatus
NOTHING: FrozenSet[DefectStatus] = frozenset()

TRANSITIONS: Dict[UserRole, Dict[DefectStatus, FrozenSet[DefectStatus]]] = {
    UserRole.MANAGER: {
        S.NEW: frozenset({S.CONFIRMED, S.REJECTED}),
        S.CONFIRMED: frozenset({S.IN_PROGRESS, S.REJECTED}),
        S.IN_PROGRESS: frozenset({S.FIXED, S.CONFIRMED}),
        S.FIXED: frozenset({S.VERIFIED, S.IN_PROGRESS}),
        S.VERIFIED: frozenset({S.CLOSED, S.IN_PROGRESS}),
        S.CLOSED: frozenset({S.IN_PROGRESS}),
        S.REJECTED: frozenset({S.NEW}),
    },
    # Инженер только берет дефект в работу и отмечает исправление
    UserRole.ENGINEER: {
        S.NEW: NOTHING,
        S.CONFIRMED: frozenset({S.IN_PROGRESS}),
        S.IN_PROGRESS: frozenset({S.FIXED}),
        S.FIXED: NOTHING,
        S.VERIFIED: NOTHING,
        S.CLOSED: NOTHING,
        S.REJECTED: NOTHING,
    },
    # Наблюдатель (технадзор) принимает или возвращает исправления
    UserRole.OBSERVER: {
        S.NEW: NOTHING,
        S.CONFIRMED: NOTHING,
        S.IN_PROGRESS: NOTHING,
        S.FIXED: frozenset({S.VERIFIED, S.IN_PROGRESS}),
        S.VERIFIED: frozenset({S.CLOSED}),
        S.CLOSED: NOTHING,
        S.REJECTED: NOTHING,
    },
}


def allowed_transitions(current: Union[DefectStatus, str], role: Union[UserRole, str]) -> FrozenSet[DefectStatus]:
    """Возвращает множество статусов, в которые роль может перевести дефект."""
    current = DefectStatus(current)
    role = UserRole(role)
    if role == UserRole.ADMIN:
        return frozenset(s for s in DefectStatus if s != current)
    return TRANSITIONS.get(role, {}).get(current, NOTHING)


def is_transition_allowed(
    current: Union[DefectStatus, str], requested: Union[DefectStatus, str], role: Union[UserRole, str]
) -> bool:
    """
    Проверяет, может ли пользователь с ролью role перевести дефект
    из статуса current в статус requested.
    """
    if UserRole(role) == UserRole.ADMIN:
        return True
    return DefectStatus(requested) in allowed_transitions(current, role)
