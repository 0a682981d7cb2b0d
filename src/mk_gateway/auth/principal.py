"""The authenticated caller, as asserted by the auth service's token."""

from dataclasses import dataclass

from src.mk_common.enums import Role


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str = Role.BUYER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_seller(self) -> bool:
        return self.role == Role.SELLER
