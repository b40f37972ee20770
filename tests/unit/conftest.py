import pytest

from wasession.infra.arena import CredentialArena
from wasession.utils.settings import BootstrapSettings


@pytest.fixture
def arena(tmp_path) -> CredentialArena:
    return CredentialArena(tmp_path / "sessions")


@pytest.fixture
def fast_settings() -> BootstrapSettings:
    return BootstrapSettings(
        token_timeout_s=2.0,
        link_timeout_s=2.0,
        settle_delay_s=0.0,
        max_attempts=3,
        retry_backoff_s=0.0,
        upload_url_prefix="https://files.example.com/file/",
        session_id_prefix="SESSION~",
    )
