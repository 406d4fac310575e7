"""FastAPI dependency for the member directory; tests override it."""

from src.pw_wallet.domain.directory import MemberDirectoryProtocol
from src.pw_wallet.infrastructure.persistence import MemberDirectory

_directory = MemberDirectory()


def get_member_directory() -> MemberDirectoryProtocol:
    return _directory
