#!/usr/bin/env python3
"""
Custodia - Scenario Runner
==========================

[PROGRAMS] Runs the custodial programs on an in-process host and prints the
resulting state:
- ledger: init, third-party approve, transfer_from, permit replay
- vault:  initialize, deposit, withdraw with a reentrant transfer hook

[MODES] --mode as_built reproduces the documented defects,
--mode hardened applies the corrected checks and ordering.

Использование:
    python main.py [--mode as_built|hardened] [--scenario ledger|vault|all] [--db FILE] [--seed TEXT]

Примеры:
    # Оба сценария в as-built режиме
    python main.py --mode as_built

    # Vault сценарий с сохранением состояния
    python main.py --scenario vault --db data/custodia.db

    # Воспроизводимый отчёт (ключи из seed)
    python main.py --mode hardened --seed demo
"""

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from config import config, SecurityMode
from core.assets import AssetBank, TransferNotice
from core.errors import ProgramError
from core.host import CallContext, Host
from core.identity import Keypair, short_id
from core.logger import setup_logging
from programs.permit import sign_permit
from programs.token import FungibleLedger
from programs.vault import Vault

logger = logging.getLogger(__name__)


def _keypairs(seed: Optional[bytes], label: str, count: int) -> List[Keypair]:
    """Fresh keypairs, or reproducible ones when a seed is given."""
    if seed is None:
        return [Keypair() for _ in range(count)]
    return [Keypair.from_seed(Host.hash(seed + f"/{label}/{i}".encode())) for i in range(count)]


async def _attempt(label: str, coro) -> Dict[str, Any]:
    """Await a program call and report success or the error code."""
    try:
        result = await coro
        return {"step": label, "ok": True, "result": result}
    except ProgramError as e:
        return {"step": label, "ok": False, "error": e.code}


async def run_ledger_scenario(host: Host, mode: SecurityMode, seed: Optional[bytes] = None) -> Dict[str, Any]:
    """
    init(O, M, 1000); third party C approves O -> S for 200;
    S pulls 150 from O to D; O's permit for S is submitted twice.
    """
    owner, admin, third, spender, dest = _keypairs(seed, "ledger", 5)
    ledger = FungibleLedger(host, program_id=f"ledger-{mode.value}", mode=mode)
    steps: List[Dict[str, Any]] = []

    steps.append(await _attempt(
        "init",
        ledger.init(CallContext(owner.identity), owner.identity, admin.identity, 1000),
    ))
    steps.append(await _attempt(
        "approve by third party",
        ledger.approve(CallContext(third.identity), owner.identity, spender.identity, 200),
    ))
    if not steps[-1]["ok"]:
        steps.append(await _attempt(
            "approve by owner",
            ledger.approve(CallContext(owner.identity), owner.identity, spender.identity, 200),
        ))
    steps.append(await _attempt(
        "transfer_from",
        ledger.transfer_from(CallContext(spender.identity), spender.identity, owner.identity, dest.identity, 150),
    ))
    allowance_after_pull = await ledger.allowance(owner.identity, spender.identity)

    signature = sign_permit(owner, spender.identity, 500, nonce=0, domain=ledger.permit_domain)
    for attempt in (1, 2):
        steps.append(await _attempt(
            f"permit #{attempt}",
            ledger.permit(CallContext(spender.identity), owner.identity, spender.identity, 500, signature),
        ))

    return {
        "mode": mode.value,
        "steps": steps,
        "balance_owner": await ledger.balance_of(owner.identity),
        "balance_dest": await ledger.balance_of(dest.identity),
        "allowance_after_transfer_from": allowance_after_pull,
        "allowance_owner_spender": await ledger.allowance(owner.identity, spender.identity),
        "nonce_owner": await ledger.nonce(owner.identity),
        "total_supply": await ledger.total_supply(),
        "events": host.events.topics(),
    }


async def run_vault_scenario(host: Host, mode: SecurityMode, seed: Optional[bytes] = None) -> Dict[str, Any]:
    """
    initialize; user deposits 100; a transfer hook records total_deposits
    while the vault pays out a withdrawal of 40.
    """
    admin, user, mint_key, newcomer = _keypairs(seed, "vault", 4)
    mint = mint_key.identity
    bank = AssetBank(host, namespace=f"asset-bank-{mode.value}")
    vault = Vault(host, bank, program_id=f"vault-{mode.value}", mode=mode)
    steps: List[Dict[str, Any]] = []
    observed: List[int] = []

    async def observe(notice: TransferNotice) -> None:
        if notice.dest == user.identity:
            observed.append(await vault.total_deposits(mint))

    await bank.issue(mint, user.identity, 1_000)
    steps.append(await _attempt("initialize", vault.initialize(CallContext(admin.identity), mint, 254)))
    steps.append(await _attempt("deposit 100", vault.deposit(CallContext(user.identity), mint, 100)))
    steps.append(await _attempt("deposit 0", vault.deposit(CallContext(user.identity), mint, 0)))

    bank.add_transfer_hook(observe)
    steps.append(await _attempt("withdraw 40", vault.withdraw(CallContext(user.identity), mint, 40)))
    bank.remove_transfer_hook(observe)

    steps.append(await _attempt(
        "set_admin via fee payer",
        vault.set_admin(CallContext(user.identity, fee_payer=admin.identity), mint, user.identity),
    ))
    steps.append(await _attempt("exec", vault.exec(CallContext(admin.identity), mint, b"\x00" * 12)))
    steps.append(await _attempt("re-initialize", vault.initialize(CallContext(newcomer.identity), mint, 254)))

    state = await vault.get_state(mint)
    return {
        "mode": mode.value,
        "steps": steps,
        "total_deposits": state.total_deposits if state else None,
        "admin": short_id(state.admin) if state else None,
        "total_seen_by_hook": observed,
        "user_balance": await bank.balance(mint, user.identity),
    }


def _printable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _printable(dataclasses.asdict(value))
    if isinstance(value, bytes):
        return short_id(value)
    if isinstance(value, dict):
        return {k: _printable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_printable(v) for v in value]
    return value


async def main(argv: Optional[List[str]] = None) -> int:
    """
    Главная функция - точка входа.
    """
    parser = argparse.ArgumentParser(
        description="Custodial vault and fungible ledger scenarios",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --mode as_built
  python main.py --mode hardened --scenario ledger
  python main.py --mode as_built --seed demo
""",
    )
    parser.add_argument(
        "--mode", "-m",
        type=SecurityMode.parse,
        default=config.security.mode,
        help=f"Security mode (default: {config.security.mode.value})",
    )
    parser.add_argument(
        "--scenario", "-s",
        choices=["ledger", "vault", "all"],
        default="all",
        help="Scenario to run (default: all)",
    )
    parser.add_argument(
        "--db", "-d",
        type=str,
        default=config.persistence.database_path,
        help=f"State database path (default: {config.persistence.database_path})",
    )
    parser.add_argument(
        "--seed",
        type=str,
        default=None,
        help="Derive all scenario keypairs from this seed (reproducible report)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=config.log_level,
        help="Logging level (default: %(default)s)",
    )
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    logger.info(f"[MAIN] Mode {args.mode.value}, scenario {args.scenario}, db {args.db}")

    seed = args.seed.encode("utf-8") if args.seed is not None else None
    host = await Host.create(args.db)
    report: Dict[str, Any] = {}
    try:
        if args.scenario in ("ledger", "all"):
            report["ledger"] = await run_ledger_scenario(host, args.mode, seed)
        if args.scenario in ("vault", "all"):
            report["vault"] = await run_vault_scenario(host, args.mode, seed)
    finally:
        await host.close()

    print(json.dumps(_printable(report), indent=2))
    return 0


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
