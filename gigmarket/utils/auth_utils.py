from collections import namedtuple
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity, get_jwt
from gigmarket.utils.exceptions import IdentityUnavailable

PRIVILEGED_ROLES = {"admin", "system"}

class Actor(namedtuple("Actor", ["user_id", "role"])):
    """The caller of a service operation, as supplied by the identity layer."""

    __slots__ = ()

    @classmethod
    def system(cls):
        return cls(user_id=None, role="system")

    @property
    def is_admin(self):
        return self.role == "admin"

    @property
    def is_system(self):
        return self.role == "system"


def current_actor():
    verify_jwt_in_request(optional=True)
    uid = get_jwt_identity()
    if not uid:
        raise IdentityUnavailable("No authenticated user for this request")

    role = get_jwt().get("role")
    if not role:
        raise IdentityUnavailable("Access token carries no role claim", {"user_id": uid})

    # tokens cannot mint the in-process system caller
    if role == "system":
        raise IdentityUnavailable("The system role cannot be asserted by a token", {"user_id": uid})

    return Actor(user_id=uid, role=role)
