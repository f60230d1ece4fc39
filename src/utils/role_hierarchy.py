"""Role hierarchy and the permission predicates derived from it.

Rank is authority: a lower number means more authority. Unknown roles get
UNKNOWN_RANK, the lowest authority there is, so an unrecognized initiator
can never reach a known role.
"""

from typing import Dict, FrozenSet, List, Union

from schemas.role import Role

UNKNOWN_RANK = 999

ROLE_RANKS: Dict[Role, int] = {
    Role.SUPERADMIN: 0,
    Role.BIGADMIN: 1,
    Role.ADMIN: 2,
    Role.TEACHER: 3,
    Role.PARENT: 4,
    Role.STUDENT: 5,
}

# Who may issue invites for whom. This is school policy, not rank order:
# a principal invites staff but never parents.
INVITABLE_ROLES: Dict[Role, FrozenSet[Role]] = {
    Role.SUPERADMIN: frozenset({Role.BIGADMIN}),
    Role.BIGADMIN: frozenset({Role.ADMIN, Role.TEACHER}),
    Role.ADMIN: frozenset({Role.TEACHER, Role.PARENT}),
    Role.TEACHER: frozenset({Role.STUDENT}),
    Role.PARENT: frozenset(),
    Role.STUDENT: frozenset(),
}

RoleLike = Union[Role, str, None]


def rank(role: RoleLike) -> int:
    """Return the authority rank of a role, UNKNOWN_RANK if unrecognized."""
    parsed = Role.from_string(role)
    if parsed is None:
        return UNKNOWN_RANK
    return ROLE_RANKS[parsed]


def can_initiate_conversation(initiator_role: RoleLike, target_role: RoleLike) -> bool:
    """Check whether initiator may open a conversation with target.

    Equal or higher authority may always initiate toward equal or lower
    authority. Missing roles are denied outright.
    """
    if initiator_role is None or target_role is None:
        return False
    return rank(initiator_role) <= rank(target_role)


def invitable_roles(creator_role: RoleLike) -> List[Role]:
    """Roles the creator may issue invites for, most senior first."""
    parsed = Role.from_string(creator_role)
    if parsed is None:
        return []
    return sorted(INVITABLE_ROLES[parsed], key=rank)


def can_invite(creator_role: RoleLike, target_role: RoleLike) -> bool:
    parsed = Role.from_string(target_role)
    return parsed is not None and parsed in invitable_roles(creator_role)


def messageable_roles(role: RoleLike) -> List[Role]:
    """Roles the given role may initiate a conversation with, by rank."""
    return [target for target in sorted(Role, key=rank) if can_initiate_conversation(role, target)]


def can_change_role(
    actor_role: RoleLike,
    target_current_role: RoleLike,
    new_role: RoleLike,
) -> bool:
    """Check whether an actor may reassign someone's role.

    A superadmin may reassign anyone. Anyone else must strictly outrank the
    target's current role and be allowed to invite the new role.
    """
    actor = Role.from_string(actor_role)
    if actor is None or Role.from_string(new_role) is None:
        return False
    if actor == Role.SUPERADMIN:
        return True
    if rank(actor) >= rank(target_current_role):
        return False
    return can_invite(actor, new_role)
