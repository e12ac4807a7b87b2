"""Settings tests: fail-fast validation and derived values."""

import pytest
from pydantic import ValidationError

from rtm_sync.core.config import Settings


def test_sync_requires_rpc_password_outside_tests():
    with pytest.raises(ValidationError, match="RTM_RPC_PASSWORD"):
        Settings(_env_file=None, APP_ENV="production", SYNC_ENABLED=True)  # type: ignore[call-arg]


def test_rpc_password_not_required_when_sync_disabled():
    settings = Settings(  # type: ignore[call-arg]
        _env_file=None, APP_ENV="production", SYNC_ENABLED=False
    )
    assert settings.sync_enabled is False


def test_test_environment_skips_validation():
    settings = Settings(_env_file=None, APP_ENV="test", SYNC_ENABLED=True)  # type: ignore[call-arg]
    assert settings.rpc_password == ""


def test_derived_rpc_url_and_gateways():
    settings = Settings(  # type: ignore[call-arg]
        _env_file=None,
        APP_ENV="test",
        RTM_RPC_HOST="node.internal",
        RTM_RPC_PORT=19998,
        IPFS_LOCAL_GATEWAY="http://127.0.0.1:8080/",
        IPFS_PUBLIC_GATEWAY="",
    )

    assert settings.rpc_url == "http://node.internal:19998"
    assert settings.ipfs_gateways == ["http://127.0.0.1:8080"]


def test_defaults():
    settings = Settings(_env_file=None, APP_ENV="test")  # type: ignore[call-arg]

    assert settings.sync_batch_size == 100
    assert settings.sync_retry_attempts == 3
    assert settings.sync_checkpoint_interval == 100
    assert settings.sync_max_restarts == 3
    assert settings.ipfs_gateways == ["http://127.0.0.1:8080", "https://ipfs.io"]


def test_batch_size_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, APP_ENV="test", SYNC_BATCH_SIZE=0)  # type: ignore[call-arg]
