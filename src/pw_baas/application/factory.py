"""Select the BaaS provider named by BAAS_PROVIDER."""

from functools import lru_cache

from config.settings import Settings, settings
from src.pw_baas.domain.provider import BaasProvider
from src.pw_baas.infrastructure.mock_provider import MockBaasProvider
from src.pw_common.enums import BaasProviderName
from src.pw_common.errors import InternalError


def get_baas_provider(config: Settings | None = None) -> BaasProvider:
    config = config or settings
    try:
        name = BaasProviderName(config.BAAS_PROVIDER)
    except ValueError:
        raise InternalError(f"Unknown BAAS_PROVIDER {config.BAAS_PROVIDER!r}") from None

    if name == BaasProviderName.MOCK:
        return MockBaasProvider(config.BAAS_WEBHOOK_SECRET)
    # Stripe Issuing and Synctera clients live outside this service
    raise InternalError(f"BaaS provider {name.value} is not available in this deployment")


@lru_cache(maxsize=1)
def get_configured_provider() -> BaasProvider:
    """FastAPI dependency: the provider for this process, built on first use."""
    return get_baas_provider()
