"""Role -> capability mapping. Authorization checks capabilities, never role strings."""

import enum

from staybook.models.user import Role


class Capability(str, enum.Enum):
    BOOK_STAY = "book_stay"
    MANAGE_OWN_BOOKINGS = "manage_own_bookings"
    APPLY_COUPON = "apply_coupon"
    USE_LOYALTY = "use_loyalty"
    WRITE_REVIEW = "write_review"
    VIEW_PAYOUTS = "view_payouts"
    MANAGE_COUPONS = "manage_coupons"


_GUEST_CAPABILITIES = frozenset(
    {
        Capability.BOOK_STAY,
        Capability.MANAGE_OWN_BOOKINGS,
        Capability.APPLY_COUPON,
        Capability.USE_LOYALTY,
        Capability.WRITE_REVIEW,
    }
)

ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.GUEST: _GUEST_CAPABILITIES,
    # Hosts can travel too.
    Role.HOST: _GUEST_CAPABILITIES | {Capability.VIEW_PAYOUTS},
    Role.ADMIN: frozenset(Capability),
}


def has_capability(role: Role, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(role, frozenset())
