"""ReconciliationService and check_card_invariants."""

import logging

from src.pw_common.enums import AccountKind, EntryKind
from src.pw_ledger.domain.balances import CardTotals, MemberTotals
from src.pw_ledger.domain.models import Entry, LedgerTransaction, NewEntry
from src.pw_posting.domain.commands import CaptureCommand, DepositCommand, Split
from src.pw_reconciliation.domain.invariants import check_card_invariants
from src.pw_wallet.infrastructure.static import StaticMemberDirectory, WalletRecord
from src.pw_withdrawal.domain.models import WithdrawalCommand

CARD = "card-1"


def _totals(pool: int, *members: MemberTotals, pending: int = 0) -> CardTotals:
    return CardTotals(CARD, "USD", "acc-pool", pool, members, pending)


class TestCheckCardInvariants:
    def test_clean(self) -> None:
        totals = _totals(500, MemberTotals("alice", "acc-a", 500, 0, 0))
        assert check_card_invariants(totals) == []

    def test_pool_equity_mismatch(self, caplog) -> None:
        totals = _totals(500, MemberTotals("alice", "acc-a", 400, 0, 0))
        with caplog.at_level(logging.ERROR):
            violations = check_card_invariants(totals)
        assert len(violations) == 1
        assert "sum of member equity (400) != pool balance (500)" in violations[0]
        assert "invariant violated" in caplog.text

    def test_reserved_vs_pending(self) -> None:
        totals = _totals(500, MemberTotals("alice", "acc-a", 500, 100, 0))
        violations = check_card_invariants(totals)
        assert any("reserved (100) != pending withdrawals (0)" in v for v in violations)

    def test_negative_equity_flagged_unless_allowed(self) -> None:
        totals = _totals(
            100,
            MemberTotals("alice", "acc-a", 200, 0, 0),
            MemberTotals("bob", "acc-b", -100, 0, 0),
        )
        assert any("negative" in v for v in check_card_invariants(totals))
        assert check_card_invariants(totals, allow_negative_equity=True) == []

    def test_pending_exceeding_pool(self) -> None:
        totals = _totals(100, MemberTotals("alice", "acc-a", 100, 200, 200), pending=200)
        assert any("exceed pool balance" in v for v in check_card_invariants(totals))


class TestReconcile:
    async def test_unknown_card_is_consistent_zero(self, reconciler, store) -> None:
        report = await reconciler.reconcile(store.session(), "card-none")
        assert report.consistent is True
        assert report.pool_balance == 0
        assert report.member_equity == ()
        assert report.violations == ()

    async def test_after_full_lifecycle(self, engine, withdrawals, reconciler, store) -> None:
        await engine.post_deposit(store.session(), DepositCommand("tx1", CARD, "alice", 10000))
        await engine.post_deposit(store.session(), DepositCommand("tx2", CARD, "bob", 3000))
        await engine.post_capture(
            store.session(),
            CaptureCommand("tx3", CARD, (Split("alice", 6000), Split("bob", 1000))),
        )
        pending = await withdrawals.request_withdrawal(
            store.session(), WithdrawalCommand("tx4", CARD, "bob", 2000)
        )
        done = await withdrawals.request_withdrawal(
            store.session(), WithdrawalCommand("tx5", CARD, "alice", 1000)
        )
        await withdrawals.finalize_withdrawal(store.session(), "tx6", done.withdrawal_id)

        report = await reconciler.reconcile(store.session(), CARD)

        assert report.consistent is True
        assert report.violations == ()
        assert report.pool_balance == 5000
        assert report.sum_of_member_equity == 5000
        assert report.pending_withdrawals == 2000
        equity = {m.user_id: m for m in report.member_equity}
        assert equity["alice"].balance == 3000
        assert equity["bob"].balance == 2000
        assert equity["bob"].available == 0
        assert pending.withdrawal_id

    async def test_reports_corruption_without_raising(
        self, engine, reconciler, repo, store
    ) -> None:
        await engine.post_deposit(store.session(), DepositCommand("tx1", CARD, "alice", 1000))
        # A stray pool-only entry written around the engine
        async with store.session() as s:
            pool = next(
                a for a in s.accounts() if a.kind == AccountKind.POOL.value
            )
            await repo.insert_transaction(s, LedgerTransaction("bad", CARD, "DEPOSIT"))
            s.staged.entries.append(
                Entry(store.next_entry_id(), pool.id, "bad", 50, EntryKind.DEPOSIT.value)
            )
            await s.commit()

        report = await reconciler.reconcile(store.session(), CARD)
        assert report.consistent is False
        assert report.pool_balance == 1050
        assert report.sum_of_member_equity == 1000

    async def test_never_writes(self, engine, reconciler, store) -> None:
        await engine.post_deposit(store.session(), DepositCommand("tx1", CARD, "alice", 1000))
        commits = store.commit_count
        await reconciler.reconcile(store.session(), CARD)
        assert store.commit_count == commits

    async def test_snapshot_ignores_uncommitted_writes(self, engine, reconciler, repo, store) -> None:
        await engine.post_deposit(store.session(), DepositCommand("tx1", CARD, "alice", 1000))
        writer = store.session()
        equity = await repo.find_account(writer, CARD, AccountKind.MEMBER_EQUITY.value, "alice")
        await repo.insert_transaction(writer, LedgerTransaction("in-flight", CARD, "DEPOSIT"))
        await repo.insert_entries(
            writer,
            "in-flight",
            [NewEntry(equity.id, 10, EntryKind.DEPOSIT.value)],
        )

        report = await reconciler.reconcile(store.session(), CARD)
        assert report.consistent is True
        assert report.pool_balance == 1000
        await writer.rollback()

    async def test_wallet_reconciliation(self, engine, reconciler, store) -> None:
        directory = StaticMemberDirectory(
            [WalletRecord("w1", members=["alice"], cards=[CARD, "card-2"])]
        )
        await engine.post_deposit(store.session(), DepositCommand("tx1", CARD, "alice", 100))
        await engine.post_deposit(store.session(), DepositCommand("tx2", "card-2", "alice", 50))

        report = await reconciler.reconcile_wallet(store.session(), directory, "w1")
        assert report.consistent is True
        assert [c.card_id for c in report.cards] == [CARD, "card-2"]
        assert [c.pool_balance for c in report.cards] == [100, 50]
