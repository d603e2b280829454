"""
Authorization Guard
===================

[SECURITY] Compares a stored principal (admin/owner) with the identity
resolved for the current call.

Strategies:
- FEE_PAYER          fee payer == principal (vault set_admin, as built)
- INVOKER_OR_SOURCE  principal == invoker OR principal == tx source, where
                     a missing tx source defaults to the principal itself
                     and therefore passes (ledger mint/set_admin, as built)
- EFFECTIVE_CALLER   one canonical caller identity per call, used by every
                     privileged operation in hardened mode
"""

import logging
from enum import Enum

from core.errors import NotAuthorized
from core.host import Host
from core.identity import Identity, short_id

logger = logging.getLogger(__name__)


class AuthStrategy(str, Enum):
    FEE_PAYER = "fee_payer"
    INVOKER_OR_SOURCE = "invoker_or_source"
    EFFECTIVE_CALLER = "effective_caller"


class AuthorizationGuard:
    """Resolves who is calling and checks it against a principal."""

    def __init__(self, host: Host):
        self.host = host

    def effective_caller(self) -> Identity:
        """The platform-verified invoker of the current frame."""
        return self.host.current_invoker()

    def check(self, principal: bytes, strategy: AuthStrategy) -> bool:
        ctx = self.host.current_frame().ctx

        if strategy is AuthStrategy.FEE_PAYER:
            return ctx.payer == principal

        if strategy is AuthStrategy.INVOKER_OR_SOURCE:
            source = ctx.tx_source if ctx.tx_source is not None else principal
            if principal != ctx.invoker and ctx.tx_source is None:
                logger.warning(
                    f"[AUTH] {short_id(principal)} authorized without tx source "
                    f"(invoker {short_id(ctx.invoker)})"
                )
            return principal == ctx.invoker or principal == source

        return self.effective_caller() == principal

    def require(self, principal: bytes, strategy: AuthStrategy, operation: str, role: str = "principal") -> None:
        """Raise NotAuthorized unless check() passes."""
        if not self.check(principal, strategy):
            caller = self.effective_caller()
            logger.warning(
                f"[AUTH] {operation} denied: caller {short_id(caller)} is not {role} "
                f"({strategy.value})"
            )
            raise NotAuthorized(f"{operation}: caller is not {role}")
