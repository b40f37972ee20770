import dataclasses
import time

import pytest
from fakes import FakeUploader, ScriptedSocketFactory, linked_script

from wasession.core.errors import (
    BootstrapTimeout,
    CapacityError,
    ConnectionTerminated,
    DisconnectFatal,
)
from wasession.core.events import DisconnectReason, PresentationMode
from wasession.utils.settings import Settings
from wasession.web.runtime import BootstrapRuntime


def _wait_until(predicate, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def make_runtime(tmp_path, fast_settings):
    runtimes = []

    def _make(*scripts, uploader=None, on_fatal=None, max_sessions=4, bootstrap=None, **socket_kwargs):
        settings = Settings(
            session_root=str(tmp_path / "sessions"),
            max_concurrent_sessions=max_sessions,
            bootstrap=bootstrap or fast_settings,
        )
        factory = ScriptedSocketFactory(*scripts, **socket_kwargs)
        runtime = BootstrapRuntime(
            settings,
            socket_factory=factory,
            uploader=uploader or FakeUploader(),
            on_fatal=on_fatal,
        )
        runtimes.append(runtime)
        return runtime, factory

    yield _make
    for runtime in runtimes:
        runtime.close()


def test_qr_bootstrap_runs_to_completion(make_runtime) -> None:
    uploader = FakeUploader()
    runtime, factory = make_runtime(linked_script(("qr", "ref")), uploader=uploader)

    record = runtime.start(PresentationMode.QR_PNG)
    token = runtime.wait_for_token(record, timeout=3)

    assert token.content_type == "image/png"
    assert _wait_until(lambda: record.state == "completed")
    assert record.session_id.startswith("SESSION~")
    assert record.confirmation_delivered is True
    assert record.attempts == 1
    assert len(uploader.calls) == 1
    assert runtime.get_record(record.request_id) is record
    assert _wait_until(lambda: runtime.stats()["active_sessions"] == 0)
    assert runtime.stats()["credential_dirs"] == 0


def test_pairing_code_returned_before_upload(make_runtime) -> None:
    uploader = FakeUploader()
    runtime, factory = make_runtime(linked_script(("qr", "ref"), ("sleep", 0.3)), uploader=uploader)

    record = runtime.start(PresentationMode.PAIRING_CODE, phone_number="15551234567")
    token = runtime.wait_for_token(record, timeout=3)

    assert token.body == "ABCD-1234"
    assert uploader.calls == []
    assert record.to_dict()["phone_number"] == "*******4567"
    assert _wait_until(lambda: record.state == "completed")
    assert len(uploader.calls) == 1


def test_no_token_in_time(make_runtime, fast_settings) -> None:
    runtime, _ = make_runtime([], bootstrap=dataclasses.replace(fast_settings, token_timeout_s=0.05))

    record = runtime.start(PresentationMode.QR_DATA_URL)

    with pytest.raises(BootstrapTimeout):
        runtime.wait_for_token(record, timeout=3)
    assert _wait_until(lambda: record.state == "failed")


def test_lost_connection_ends_request(make_runtime) -> None:
    runtime, _ = make_runtime([("close", DisconnectReason.CONNECTION_LOST)])

    record = runtime.start(PresentationMode.QR_PNG)

    with pytest.raises(ConnectionTerminated):
        runtime.wait_for_token(record, timeout=3)
    assert _wait_until(lambda: record.state == "closed")
    assert record.reason == "connection-lost"


def test_fatal_disconnect_reaches_handler(make_runtime) -> None:
    fatal = []
    runtime, _ = make_runtime([("close", DisconnectReason.LOGGED_OUT)], on_fatal=fatal.append)

    record = runtime.start(PresentationMode.QR_PNG)

    with pytest.raises(DisconnectFatal):
        runtime.wait_for_token(record, timeout=3)
    assert _wait_until(lambda: len(fatal) == 1)
    assert fatal[0].reason == "logged-out"
    assert record.state == "failed"
    assert runtime.stats()["fatal_disconnects"] == 1


def test_capacity_limit(make_runtime) -> None:
    runtime, _ = make_runtime([("qr", "ref")], max_sessions=1)

    first = runtime.start(PresentationMode.QR_PNG)
    runtime.wait_for_token(first, timeout=3)

    with pytest.raises(CapacityError) as excinfo:
        runtime.start(PresentationMode.QR_PNG)
    assert excinfo.value.http_status == 503


def test_close_cancels_running_bootstraps(make_runtime) -> None:
    runtime, factory = make_runtime([("qr", "ref")])

    record = runtime.start(PresentationMode.QR_PNG)
    runtime.wait_for_token(record, timeout=3)
    runtime.close()

    assert record.state == "failed"
    assert factory.sockets[0].closed is True
    assert runtime.arena.active() == []
    with pytest.raises(CapacityError):
        runtime.start(PresentationMode.QR_PNG)
