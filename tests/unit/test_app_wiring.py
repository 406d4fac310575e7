"""Without test overrides the routers run on PostgreSQL-backed storage."""

from src.main import app
from src.pw_baas.api import router as baas_router
from src.pw_balances.api import router as balances_router
from src.pw_common.database import get_db_session
from src.pw_ledger.infrastructure.persistence import LedgerRepository
from src.pw_posting.api import router as posting_router
from src.pw_reconciliation.api import router as reconciliation_router
from src.pw_wallet.api.dependencies import get_member_directory
from src.pw_wallet.infrastructure.persistence import MemberDirectory
from src.pw_withdrawal.api import router as withdrawal_router


class TestDefaultWiring:
    def test_services_use_sql_ledger(self) -> None:
        services = [
            posting_router._service,
            withdrawal_router._service,
            reconciliation_router._service,
            balances_router._projector,
            baas_router._ingestor._posting,
            baas_router._ingestor._authorizer,
        ]
        for service in services:
            assert isinstance(service._repo, LedgerRepository)

    def test_member_directory_is_sql(self) -> None:
        assert isinstance(get_member_directory(), MemberDirectory)

    def test_no_dependency_overrides_installed(self) -> None:
        assert get_db_session not in app.dependency_overrides
        assert get_member_directory not in app.dependency_overrides
