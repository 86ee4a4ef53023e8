from unittest.mock import patch

import pytest
import structlog

from helpdesk.config.logging import _processors
from helpdesk.config.settings import Settings, get_settings


def test_default_settings():
    """Test default settings values."""
    settings = Settings()

    assert settings.app_name == "Helpdesk Jobs"
    assert settings.version == "1.0.0"
    assert settings.job_poll_interval_ms == 5000
    assert settings.job_error_backoff_ms == 10000
    assert settings.job_batch_size == 5
    assert settings.job_timeout_s == 300
    assert settings.job_max_attempts == 3
    assert settings.job_backoff_base_s == 300
    assert settings.job_max_backoff_s == 3600
    assert settings.job_visibility_timeout_s == 900


def test_visibility_timeout_must_exceed_job_timeout():
    """Test that running jobs cannot be recovered as stuck."""
    with pytest.raises(ValueError, match="JOB_VISIBILITY_TIMEOUT_S must be larger"):
        Settings(job_timeout_s=600, job_visibility_timeout_s=600)


def test_max_backoff_below_base_rejected():
    """Test that the backoff cap cannot be lower than the base delay."""
    with pytest.raises(ValueError, match="JOB_MAX_BACKOFF_S"):
        Settings(job_backoff_base_s=600, job_max_backoff_s=60)


def test_unknown_timezone_rejected():
    """Test that the scheduler time zone must be a known IANA zone."""
    with pytest.raises(ValueError, match="Unknown SCHEDULER_TIMEZONE"):
        Settings(scheduler_timezone="Mars/Olympus_Mons")


def test_scheduler_tz():
    settings = Settings(scheduler_timezone="Asia/Kolkata")
    assert settings.scheduler_tz.key == "Asia/Kolkata"


def test_settings_dependency_injection():
    """Test the get_settings dependency function."""
    settings = get_settings()
    assert isinstance(settings, Settings)
    assert settings.app_name == "Helpdesk Jobs"


@patch.dict(
    "os.environ", {"JOB_BATCH_SIZE": "12", "SCHEDULER_TIMEZONE": "Europe/Berlin"}
)
def test_env_var_loading():
    """Test that environment variables are loaded correctly."""
    settings = Settings()
    assert settings.job_batch_size == 12
    assert settings.scheduler_timezone == "Europe/Berlin"


@pytest.mark.parametrize(
    ("debug", "renderer"),
    [(True, structlog.dev.ConsoleRenderer), (False, structlog.processors.JSONRenderer)],
)
def test_log_renderer_follows_debug(debug, renderer):
    """Test that debug mode alone adds the call site and console output."""
    processors = _processors(debug)

    assert isinstance(processors[-1], renderer)
    has_callsite = any(
        isinstance(p, structlog.processors.CallsiteParameterAdder) for p in processors
    )
    assert has_callsite is debug
