"""
Tests for settings validation.
"""
import pytest
from pydantic import ValidationError

from pipeline_journey.config import Settings


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestDispatchWindow:

    def test_defaults_are_consistent(self):
        config = make_settings()

        assert config.CLAIM_TTL_SECONDS > config.worst_case_dispatch_seconds()

    def test_backoff_doubles_up_to_cap(self):
        config = make_settings(RETRY_BASE_DELAY_SECONDS=1.0, RETRY_MAX_DELAY_SECONDS=5.0)

        assert [config.retry_delay(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_worst_case_window(self):
        config = make_settings(
            MAX_DISPATCH_ATTEMPTS=3,
            WEBHOOK_TIMEOUT_SECONDS=10.0,
            RETRY_BASE_DELAY_SECONDS=1.0,
            RETRY_MAX_DELAY_SECONDS=30.0
        )

        # 3 timeouts plus the 1s and 2s waits between them
        assert config.worst_case_dispatch_seconds() == 33.0

    def test_claim_ttl_must_outlive_retries(self):
        with pytest.raises(ValidationError, match="CLAIM_TTL_SECONDS"):
            make_settings(CLAIM_TTL_SECONDS=30, WEBHOOK_TIMEOUT_SECONDS=10.0, MAX_DISPATCH_ATTEMPTS=5)

    @pytest.mark.parametrize("overrides", [
        {"MAX_DISPATCH_ATTEMPTS": 0},
        {"WORKER_PARTITION_COUNT": 2, "WORKER_PARTITION_INDEX": 2},
    ])
    def test_rejects_invalid_worker_settings(self, overrides):
        with pytest.raises(ValidationError):
            make_settings(**overrides)
