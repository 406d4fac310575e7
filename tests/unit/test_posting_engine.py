"""PostingEngine against the in-memory ledger: deposits, captures, idempotency, atomicity."""

import pytest

from src.pw_common.enums import EntryKind, SpendPolicy
from src.pw_common.errors import (
    CurrencyMismatchError,
    IdempotencyConflictError,
    InsufficientAvailableBalanceError,
    InsufficientPoolBalanceError,
    InvalidAmountError,
    InvalidSplitError,
    MissingTransactionIdError,
    StorageFailureError,
    UnknownMemberError,
)
from src.pw_ledger.domain.balances import load_card_totals
from src.pw_ledger.infrastructure.memory import MemoryLedgerRepository, MemoryLedgerStore
from src.pw_posting.application.service import PostingEngine
from src.pw_posting.domain.commands import CaptureCommand, DepositCommand, Split

CARD = "card-1"


def _deposit(tx: str, user: str, amount: int, card: str = CARD) -> DepositCommand:
    return DepositCommand(transaction_id=tx, card_id=card, user_id=user, amount=amount)


def _capture(tx: str, *splits: tuple[str, int], card: str = CARD) -> CaptureCommand:
    return CaptureCommand(
        transaction_id=tx, card_id=card, splits=tuple(Split(u, a) for u, a in splits)
    )


async def _totals(repo, store: MemoryLedgerStore, card: str = CARD):
    async with store.session() as s:
        return await load_card_totals(repo, s, card)


class TestDeposit:
    async def test_scenario_1_credits_pool_and_equity(self, engine, repo, store) -> None:
        result = await engine.post_deposit(store.session(), _deposit("tx1", "alice", 10000))

        assert result.transaction_id == "tx1"
        assert result.replayed is False
        assert [e.kind for e in result.entries] == [EntryKind.DEPOSIT.value] * 2
        assert [e.amount for e in result.entries] == [10000, 10000]

        totals = await _totals(repo, store)
        assert totals.pool_balance == 10000
        assert totals.member("alice").balance == 10000
        assert totals.currency == "USD"

    async def test_second_member_gets_own_equity_account(self, engine, repo, store) -> None:
        await engine.post_deposit(store.session(), _deposit("tx1", "alice", 10000))
        await engine.post_deposit(store.session(), _deposit("tx2", "bob", 2500))

        totals = await _totals(repo, store)
        assert totals.pool_balance == 12500
        assert [m.user_id for m in totals.members] == ["alice", "bob"]
        assert totals.sum_of_member_equity == totals.pool_balance

    async def test_metadata_carried_on_entries(self, engine, store) -> None:
        cmd = DepositCommand("tx1", CARD, "alice", 500, metadata={"source": "ach"})
        result = await engine.post_deposit(store.session(), cmd)
        assert all(e.metadata == {"source": "ach"} for e in result.entries)

    async def test_rejects_non_positive_amount_before_any_write(self, engine, store) -> None:
        with pytest.raises(InvalidAmountError):
            await engine.post_deposit(store.session(), _deposit("tx1", "alice", 0))
        assert store.commit_count == 0

    async def test_rejects_amount_above_bigint(self, engine, store) -> None:
        with pytest.raises(InvalidAmountError):
            await engine.post_deposit(store.session(), _deposit("tx1", "alice", 2**63))
        assert store.commit_count == 0

    async def test_rejects_missing_transaction_id(self, engine, store) -> None:
        with pytest.raises(MissingTransactionIdError):
            await engine.post_deposit(store.session(), _deposit("  ", "alice", 100))

    async def test_currency_mismatch(self, engine, store) -> None:
        await engine.post_deposit(store.session(), _deposit("tx1", "alice", 100))
        cmd = DepositCommand("tx2", CARD, "alice", 100, currency="EUR")
        with pytest.raises(CurrencyMismatchError):
            await engine.post_deposit(store.session(), cmd)


class TestCapture:
    async def test_scenario_2_single_split(self, engine, repo, store) -> None:
        await engine.post_deposit(store.session(), _deposit("tx1", "alice", 10000))
        result = await engine.post_capture(store.session(), _capture("tx2", ("alice", 6000)))

        assert [e.amount for e in result.entries] == [-6000, -6000]
        totals = await _totals(repo, store)
        assert totals.pool_balance == 4000
        assert totals.member("alice").balance == 4000

    async def test_multi_member_split(self, engine, repo, store) -> None:
        await engine.post_deposit(store.session(), _deposit("tx1", "alice", 5000))
        await engine.post_deposit(store.session(), _deposit("tx2", "bob", 5000))
        await engine.post_capture(store.session(), _capture("tx3", ("alice", 1000), ("bob", 3000)))

        totals = await _totals(repo, store)
        assert totals.pool_balance == 6000
        assert totals.member("alice").balance == 4000
        assert totals.member("bob").balance == 2000

    async def test_scenario_6_capture_on_empty_equity_fails(self, engine, repo, store) -> None:
        await engine.post_deposit(store.session(), _deposit("tx1", "alice", 10000))
        await engine.post_capture(store.session(), _capture("tx2", ("alice", 10000)))
        commits = store.commit_count

        with pytest.raises((InsufficientPoolBalanceError, InsufficientAvailableBalanceError)):
            await engine.post_capture(store.session(), _capture("tx5", ("alice", 100)))

        assert store.commit_count == commits
        assert "tx5" not in store.state.transactions

    async def test_pool_checked_before_member(self, engine, store) -> None:
        await engine.post_deposit(store.session(), _deposit("tx1", "alice", 100))
        with pytest.raises(InsufficientPoolBalanceError):
            await engine.post_capture(store.session(), _capture("tx2", ("alice", 200)))

    async def test_member_headroom_enforced(self, engine, store) -> None:
        await engine.post_deposit(store.session(), _deposit("tx1", "alice", 5000))
        await engine.post_deposit(store.session(), _deposit("tx2", "bob", 100))
        with pytest.raises(InsufficientAvailableBalanceError):
            await engine.post_capture(store.session(), _capture("tx3", ("bob", 1000)))

    async def test_unknown_member_rejected(self, engine, store) -> None:
        await engine.post_deposit(store.session(), _deposit("tx1", "alice", 5000))
        with pytest.raises(UnknownMemberError):
            await engine.post_capture(store.session(), _capture("tx2", ("carol", 10)))
        assert "tx2" not in store.state.transactions

    async def test_negative_equity_when_allowed(self, repo, locks, store) -> None:
        engine = PostingEngine(repo=repo, locks=locks, allow_negative_equity=True)
        await engine.post_deposit(store.session(), _deposit("tx1", "alice", 5000))
        await engine.post_capture(store.session(), _capture("tx2", ("carol", 1000)))

        totals = await _totals(repo, store)
        assert totals.member("carol").balance == -1000
        assert totals.sum_of_member_equity == totals.pool_balance == 4000

    async def test_empty_splits(self, engine, store) -> None:
        with pytest.raises(InvalidSplitError):
            await engine.post_capture(store.session(), _capture("tx1"))

    async def test_split_above_bigint(self, engine, store) -> None:
        with pytest.raises(InvalidSplitError):
            await engine.post_capture(store.session(), _capture("tx1", ("alice", 2**63)))
        assert store.commit_count == 0

    async def test_total_above_bigint(self, engine, store) -> None:
        half = 2**62
        cmd = _capture("tx1", ("alice", half), ("bob", half))
        with pytest.raises(InvalidSplitError, match="above"):
            await engine.post_capture(store.session(), cmd)
        assert store.commit_count == 0

    async def test_expected_total_mismatch(self, engine, store) -> None:
        cmd = CaptureCommand("tx1", CARD, (Split("alice", 100),), expected_total=150)
        with pytest.raises(InvalidSplitError):
            await engine.post_capture(store.session(), cmd)

    async def test_pending_withdrawals_reduce_available_pool(
        self, engine, withdrawals, store
    ) -> None:
        from src.pw_withdrawal.domain.models import WithdrawalCommand

        await engine.post_deposit(store.session(), _deposit("tx1", "alice", 1000))
        await engine.post_deposit(store.session(), _deposit("tx2", "bob", 1000))
        await withdrawals.request_withdrawal(
            store.session(), WithdrawalCommand("tx3", CARD, "alice", 1000)
        )
        with pytest.raises(InsufficientPoolBalanceError):
            await engine.post_capture(store.session(), _capture("tx4", ("bob", 1500)))


class TestPolicyCapture:
    async def test_equal_split_spreads_remainder(self, engine, repo, store) -> None:
        await engine.post_deposit(store.session(), _deposit("tx1", "alice", 1000))
        await engine.post_deposit(store.session(), _deposit("tx2", "bob", 1000))

        result = await engine.post_policy_capture(
            store.session(), "tx3", CARD, 101, SpendPolicy.EQUAL_SPLIT, "alice", ["alice", "bob"]
        )

        assert [e.amount for e in result.entries] == [-101, -51, -50]
        assert result.entries[0].metadata["spend_policy"] == "EQUAL_SPLIT"

    async def test_payer_only(self, engine, repo, store) -> None:
        await engine.post_deposit(store.session(), _deposit("tx1", "alice", 1000))
        await engine.post_policy_capture(
            store.session(), "tx2", CARD, 300, "PAYER_ONLY", "alice", ["alice", "bob"]
        )
        totals = await _totals(repo, store)
        assert totals.member("alice").balance == 700


class TestIdempotency:
    async def test_scenario_5_replay_returns_original_result(
        self, engine, withdrawals, repo, store
    ) -> None:
        from src.pw_withdrawal.domain.models import WithdrawalCommand

        first = await engine.post_deposit(store.session(), _deposit("tx1", "alice", 10000))
        await engine.post_capture(store.session(), _capture("tx2", ("alice", 6000)))
        requested = await withdrawals.request_withdrawal(
            store.session(), WithdrawalCommand("tx3", CARD, "alice", 4000)
        )
        await withdrawals.finalize_withdrawal(store.session(), "tx4", requested.withdrawal_id)
        entries_before = len(store.state.entries)

        replay = await engine.post_deposit(store.session(), _deposit("tx1", "alice", 10000))

        assert replay == first
        assert replay.replayed is True
        assert len(store.state.entries) == entries_before
        totals = await _totals(repo, store)
        assert totals.pool_balance == 0
        assert totals.member("alice").balance == 0

    async def test_replay_ignores_changed_amount(self, engine, repo, store) -> None:
        first = await engine.post_deposit(store.session(), _deposit("tx1", "alice", 100))
        again = await engine.post_deposit(store.session(), _deposit("tx1", "alice", 999))
        assert again == first
        assert (await _totals(repo, store)).pool_balance == 100

    async def test_capture_replay(self, engine, store) -> None:
        await engine.post_deposit(store.session(), _deposit("tx1", "alice", 100))
        first = await engine.post_capture(store.session(), _capture("tx2", ("alice", 40)))
        again = await engine.post_capture(store.session(), _capture("tx2", ("alice", 40)))
        assert again == first
        assert again.replayed

    async def test_reuse_for_other_operation_conflicts(self, engine, store) -> None:
        await engine.post_deposit(store.session(), _deposit("tx1", "alice", 100))
        with pytest.raises(IdempotencyConflictError):
            await engine.post_capture(store.session(), _capture("tx1", ("alice", 40)))

    async def test_reuse_on_other_card_conflicts(self, engine, store) -> None:
        await engine.post_deposit(store.session(), _deposit("tx1", "alice", 100))
        with pytest.raises(IdempotencyConflictError):
            await engine.post_deposit(store.session(), _deposit("tx1", "alice", 100, card="card-2"))


class _FailingInsertRepository(MemoryLedgerRepository):
    """Stages entries, then fails like a dropped connection mid-write."""

    def __init__(self) -> None:
        self.fail = True

    async def insert_entries(self, db, transaction_id, entries):
        staged = await super().insert_entries(db, transaction_id, entries)
        if self.fail:
            from sqlalchemy.exc import OperationalError

            raise OperationalError("INSERT INTO ledger_entries", {}, Exception("connection lost"))
        return staged


class TestAtomicity:
    async def test_storage_failure_leaves_nothing_and_retry_succeeds(self, locks, store) -> None:
        repo = _FailingInsertRepository()
        engine = PostingEngine(repo=repo, locks=locks)

        with pytest.raises(StorageFailureError):
            await engine.post_deposit(store.session(), _deposit("tx1", "alice", 500))
        assert store.state.entries == []
        assert store.state.transactions == {}
        assert store.state.accounts == {}

        repo.fail = False
        result = await engine.post_deposit(store.session(), _deposit("tx1", "alice", 500))
        assert result.replayed is False
        assert len(store.state.entries) == 2
