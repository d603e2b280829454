"""
Programs
========
Кастодиальные программы, исполняемые на core.Host:
- Vault: депозитный vault с агрегированным учётом (total_deposits)
- FungibleLedger: балансы, allowances, mint, permits
- SignedApprovalVerifier: проверка подписанных permit сообщений
"""

from .vault import Vault, VaultState
from .token import FungibleLedger
from .permit import SignedApprovalVerifier, sign_permit, permit_digest, build_permit_message

__all__ = [
    "Vault",
    "VaultState",
    "FungibleLedger",
    "SignedApprovalVerifier",
    "sign_permit",
    "permit_digest",
    "build_permit_message",
]
