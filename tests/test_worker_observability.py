import json
import logging

from ams_actions.core.logging import JsonLogFormatter, reset_job_id, set_job_id


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="worker.actions",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="action_job.completed",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_worker_log_lines_carry_job_context() -> None:
    token = set_job_id("job-1")
    try:
        line = JsonLogFormatter(mode="worker", env="production").format(
            _record(component="worker", idempotency_key="idem-1", recipients=3)
        )
    finally:
        reset_job_id(token)

    payload = json.loads(line)
    assert payload["msg"] == "action_job.completed"
    assert payload["component"] == "worker"
    assert payload["mode"] == "worker"
    assert payload["env"] == "production"
    assert payload["job_id"] == "job-1"
    assert payload["idempotency_key"] == "idem-1"
    assert payload["recipients"] == 3


def test_sensitive_extras_are_redacted() -> None:
    payload = json.loads(
        JsonLogFormatter().format(_record(fcm_token="device-token", service_role_key="secret", user_id="u-1"))
    )

    assert payload["fcm_token"] == "[redacted]"
    assert payload["service_role_key"] == "[redacted]"
    assert payload["user_id"] == "u-1"
    assert "job_id" not in payload
