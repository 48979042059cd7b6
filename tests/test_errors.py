import json

from collector.core.errors import (
    CollectorError,
    DeliveryError,
    ExtractionError,
    InvalidIdentifier,
    KillSwitchActive,
    NormalizationFailure,
    RepostDetected,
    ResolutionMiss,
    TerminalDeliveryError,
    TransientDeliveryError,
    log_delivery_failure,
)


def test_taxonomy():
    for exc in (ResolutionMiss, NormalizationFailure, InvalidIdentifier, RepostDetected):
        assert issubclass(exc, ExtractionError)
    assert issubclass(KillSwitchActive, TerminalDeliveryError)
    assert issubclass(TransientDeliveryError, DeliveryError)
    assert issubclass(DeliveryError, CollectorError)
    assert not issubclass(TransientDeliveryError, TerminalDeliveryError)


def test_delivery_error_keeps_status():
    err = TerminalDeliveryError("HTTP 404", status=404)
    assert err.status == 404
    assert str(err) == "HTTP 404"


def test_failure_registry_throttles(tmp_path):
    path = tmp_path / "failures.log"
    written = [
        log_delivery_failure("transient", TransientDeliveryError("HTTP 500"), trace_id=f"t{i}", path=str(path))
        for i in range(1, 13)
    ]
    # first three, then every tenth occurrence
    assert written == [True, True, True] + [False] * 6 + [True, False, False]
    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["occurrences"] for line in lines] == [1, 2, 3, 10]
    assert lines[0]["signature"] == "transient:TransientDeliveryError"
    assert lines[0]["trace_id"] == "t1"


def test_failure_registry_env_path(tmp_path, monkeypatch):
    path = tmp_path / "env_failures.log"
    monkeypatch.setenv("DELIVERY_FAILURE_LOG", str(path))
    assert log_delivery_failure("terminal", "HTTP 404") is True
    assert json.loads(path.read_text(encoding="utf-8"))["signature"] == "terminal:str"
