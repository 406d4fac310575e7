"""Spend split policies: turn one card capture amount into per-member splits.

PAYER_ONLY   the cardholder pays the whole amount
EQUAL_SPLIT  every wallet member pays amount // n; the first (amount % n)
             members in wallet order pay one extra cent
"""

from src.pw_common.cents import validate_amount
from src.pw_common.enums import SpendPolicy
from src.pw_common.errors import InvalidSplitError
from src.pw_posting.domain.commands import Split


def calculate_splits(
    policy: SpendPolicy | str,
    amount: int,
    payer_user_id: str,
    member_user_ids: list[str],
) -> tuple[Split, ...]:
    validate_amount(amount)
    try:
        policy = SpendPolicy(policy)
    except ValueError:
        raise InvalidSplitError(f"unknown spend policy {policy!r}") from None

    if policy == SpendPolicy.PAYER_ONLY:
        return (Split(user_id=payer_user_id, amount=amount),)

    if not member_user_ids:
        raise InvalidSplitError("wallet has no members to split across")
    base, remainder = divmod(amount, len(member_user_ids))
    splits = (
        Split(user_id=user_id, amount=base + (1 if index < remainder else 0))
        for index, user_id in enumerate(member_user_ids)
    )
    # Amounts smaller than the member count leave some members with nothing
    return tuple(s for s in splits if s.amount > 0)
