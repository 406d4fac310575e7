"""Per-card ledger invariants over summarized totals."""

import logging

from src.pw_ledger.domain.balances import CardTotals

logger = logging.getLogger(__name__)


def check_card_invariants(totals: CardTotals, allow_negative_equity: bool = False) -> list[str]:
    """Check a card's totals. Returns list of violation strings, empty when clean.

    Pool/equity: sum(member balance) == pool balance.
    Holds: each member's reserved amount (from entries) == pending requests.
    Signs: no negative pool, no negative member equity unless allowed.
    """
    violations: list[str] = []
    card = totals.card_id

    if totals.sum_of_member_equity != totals.pool_balance:
        violations.append(
            f"card {card}: sum of member equity ({totals.sum_of_member_equity}) "
            f"!= pool balance ({totals.pool_balance})"
        )

    for member in totals.members:
        if member.reserved != member.pending:
            violations.append(
                f"card {card}: member {member.user_id} reserved ({member.reserved}) "
                f"!= pending withdrawals ({member.pending})"
            )
        if member.balance < 0 and not allow_negative_equity:
            violations.append(
                f"card {card}: member {member.user_id} equity is negative ({member.balance})"
            )

    if totals.pool_balance < 0:
        violations.append(f"card {card}: pool balance is negative ({totals.pool_balance})")
    if totals.available_pool < 0:
        violations.append(
            f"card {card}: pending withdrawals ({totals.pending_withdrawals}) "
            f"exceed pool balance ({totals.pool_balance})"
        )

    for msg in violations:
        logger.error("Ledger invariant violated: %s", msg)
    return violations
