"""Shared test fixtures.

Services are wired to the in-memory ledger store; the API client swaps the
routers' module-level services and the DB/member-directory dependencies for
the same in-memory doubles.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from src.main import app
from src.pw_balances.api import router as balances_router
from src.pw_balances.application.projector import BalanceProjector
from src.pw_baas.api import router as baas_router
from src.pw_baas.application.authorization import CardAuthorizer
from src.pw_baas.application.ingest import BaasEventIngestor
from src.pw_common.card_locks import CardLockRegistry
from src.pw_common.database import get_db_session
from src.pw_ledger.infrastructure.memory import (
    MemoryLedgerRepository,
    MemoryLedgerStore,
    MemorySession,
)
from src.pw_posting.api import router as posting_router
from src.pw_posting.application.service import PostingEngine
from src.pw_reconciliation.api import router as reconciliation_router
from src.pw_reconciliation.application.service import ReconciliationService
from src.pw_wallet.api.dependencies import get_member_directory
from src.pw_wallet.infrastructure.static import StaticMemberDirectory, WalletRecord
from src.pw_withdrawal.api import router as withdrawal_router
from src.pw_withdrawal.application.service import WithdrawalService

CARD = "card-1"
OTHER_CARD = "card-2"
WALLET = "wallet-1"
ALICE = "alice"
BOB = "bob"


@pytest.fixture
def store() -> MemoryLedgerStore:
    return MemoryLedgerStore()


@pytest.fixture
def repo() -> MemoryLedgerRepository:
    return MemoryLedgerRepository()


@pytest.fixture
def db(store: MemoryLedgerStore) -> MemorySession:
    return store.session()


@pytest.fixture
def locks() -> CardLockRegistry:
    return CardLockRegistry(timeout_seconds=1.0)


@pytest.fixture
def engine(repo: MemoryLedgerRepository, locks: CardLockRegistry) -> PostingEngine:
    return PostingEngine(
        repo=repo, locks=locks, default_currency="USD", allow_negative_equity=False
    )


@pytest.fixture
def withdrawals(repo: MemoryLedgerRepository, locks: CardLockRegistry) -> WithdrawalService:
    return WithdrawalService(repo=repo, locks=locks, default_currency="USD")


@pytest.fixture
def authorizer(repo: MemoryLedgerRepository, locks: CardLockRegistry) -> CardAuthorizer:
    return CardAuthorizer(repo=repo, locks=locks, default_currency="USD")


@pytest.fixture
def reconciler(repo: MemoryLedgerRepository) -> ReconciliationService:
    return ReconciliationService(repo=repo, allow_negative_equity=False)


@pytest.fixture
def projector(repo: MemoryLedgerRepository) -> BalanceProjector:
    return BalanceProjector(repo=repo)


@pytest.fixture
def directory() -> StaticMemberDirectory:
    return StaticMemberDirectory(
        [WalletRecord(WALLET, members=[ALICE, BOB], cards=[CARD, OTHER_CARD])]
    )


@pytest.fixture
async def client(
    store: MemoryLedgerStore,
    engine: PostingEngine,
    withdrawals: WithdrawalService,
    authorizer: CardAuthorizer,
    reconciler: ReconciliationService,
    projector: BalanceProjector,
    directory: StaticMemberDirectory,
    monkeypatch: pytest.MonkeyPatch,
) -> AsyncClient:
    """Async HTTP client for the FastAPI app over the in-memory ledger."""
    monkeypatch.setattr(posting_router, "_service", engine)
    monkeypatch.setattr(withdrawal_router, "_service", withdrawals)
    monkeypatch.setattr(reconciliation_router, "_service", reconciler)
    monkeypatch.setattr(balances_router, "_projector", projector)
    monkeypatch.setattr(
        baas_router, "_ingestor", BaasEventIngestor(posting=engine, authorizer=authorizer)
    )

    async def _memory_session():
        async with store.session() as session:
            yield session

    app.dependency_overrides[get_db_session] = _memory_session
    app.dependency_overrides[get_member_directory] = lambda: directory
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
