"""Unit tests for Settings validation."""
import pytest
from pydantic import ValidationError

from kindred.config import Settings


def _settings(**overrides):
    return Settings(DATABASE_URL="sqlite+aiosqlite:///:memory:", _env_file=None, **overrides)


class TestSettings:

    def test_defaults(self):
        settings = _settings()
        assert settings.REALTIME_BACKEND == "memory"
        assert settings.uses_redis is False
        assert settings.REALTIME_OUTBOX_SIZE >= 1

    def test_backend_is_case_insensitive(self):
        assert _settings(REALTIME_BACKEND="Redis").uses_redis is True

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            _settings(REALTIME_BACKEND="kafka")

    @pytest.mark.parametrize("field", ["MESSAGE_MAX_LENGTH", "MATCH_TX_MAX_ATTEMPTS", "REALTIME_OUTBOX_SIZE"])
    def test_limits_must_be_positive(self, field):
        with pytest.raises(ValidationError):
            _settings(**{field: 0})

    def test_allowed_origins_split(self):
        settings = _settings(ALLOWED_ORIGINS="https://a.test, https://b.test")
        assert settings.allowed_origins_list == ["https://a.test", "https://b.test"]
