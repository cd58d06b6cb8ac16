"""
Identity provider for the drawing workflow.

Turns a user id into an ``Actor``.  Authentication itself happens upstream;
this module only checks that the user exists, is active, and carries a
known role.
"""

from fcpm.core.exceptions import AuthorizationError, NotFoundError
from fcpm.models import db
from fcpm.models.auth import USER_ROLES, User
from fcpm.services.approval_service import Actor


def resolve_actor(user_id) -> Actor:
    """
    Build the Actor for *user_id*.

    Raises:
        NotFoundError: unknown user.
        AuthorizationError: inactive user or unrecognised role.
    """
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        raise NotFoundError("User", user_id) from None

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    if not user.is_active or user.role not in USER_ROLES:
        raise AuthorizationError(user.id, user.role, "act")
    return Actor(id=user.id, role=user.role)
