"""Task status decoding, cached snapshot and derived accessors."""

from datetime import timedelta

import pytest

from proxmox_tasks.errors import MalformedResponse, NotAuthorized, TransientTransport
from proxmox_tasks.task import StatusSnapshot, Task, WaitState, task_from_result
from proxmox_tasks.upid import UPID

from .fakes import UPID_OK, running, status_path, stopped

LOG_PATH = f"/nodes/pve1/tasks/{UPID_OK}/log"


class TestConstruction:
    def test_no_io(self, transport):
        task = Task(UPID_OK, transport)
        assert transport.calls == []
        assert task.wait_state is WaitState.PENDING
        assert task.upid == UPID.parse(UPID_OK)
        assert task.node == "pve1"

    def test_accepts_parsed_upid(self, transport):
        upid = UPID.parse(UPID_OK)
        assert Task(upid, transport).upid is upid

    def test_initial_accessors(self, task):
        assert not task.is_running()
        assert not task.is_successful()
        assert not task.is_failed()
        assert not task.is_terminal()
        assert task.duration is None


class TestSnapshot:
    def test_stopped_without_exit_status_is_not_terminal(self):
        snap = StatusSnapshot.from_status({"status": "stopped"})
        assert not snap.running
        assert not snap.terminal
        assert not snap.success

    def test_success_marker(self):
        assert StatusSnapshot.from_status(stopped("OK")).success
        snap = StatusSnapshot.from_status(stopped("WARNINGS: 2"))
        assert snap.terminal
        assert not snap.success

    @pytest.mark.parametrize("payload", [None, "running", [], {"status": "paused"}, {}])
    def test_malformed(self, payload):
        with pytest.raises(MalformedResponse):
            StatusSnapshot.from_status(payload)


class TestStatus:
    def test_running(self, task, transport):
        transport.script("GET", status_path(), running())
        snap = task.status()
        assert snap.running
        assert task.is_running()
        assert not task.is_successful()
        assert not task.is_failed()
        assert transport.calls == [("GET", status_path(), {})]

    def test_successful(self, task, transport):
        transport.script("GET", status_path(), stopped("OK"))
        task.status()
        assert not task.is_running()
        assert task.is_successful()
        assert not task.is_failed()

    def test_failed(self, task, transport):
        transport.script("GET", status_path(), stopped("command 'vzdump 100' failed: exit code 2"))
        task.status()
        assert task.is_failed()
        assert not task.is_successful()

    def test_transport_errors_propagate_without_retry(self, task, transport):
        transport.script("GET", status_path(), TransientTransport("connection reset"))
        with pytest.raises(TransientTransport):
            task.status()
        assert transport.count("GET", status_path()) == 1

    def test_not_authorized_propagates(self, task, transport):
        transport.script("GET", status_path(), NotAuthorized("denied", status_code=403))
        with pytest.raises(NotAuthorized):
            task.status()

    def test_terminal_snapshot_never_regresses(self, task, transport):
        transport.script("GET", status_path(), stopped("OK"), running(), stopped("boom"))
        task.status()
        assert task.is_successful()
        for _ in range(3):
            snap = task.status()
            assert snap.success
        assert task.is_successful()
        assert not task.is_failed()
        assert transport.count("GET", status_path()) == 1

    def test_failed_snapshot_never_regresses(self, task, transport):
        transport.script("GET", status_path(), stopped("boom"), stopped("OK"))
        task.status()
        task.status()
        assert task.is_failed()

    def test_endtime_recorded(self, task, transport):
        payload = dict(stopped("OK"), endtime=0x65F0A1B2 + 30)
        transport.script("GET", status_path(), payload)
        task.status()
        assert task.duration == timedelta(seconds=30)


class TestLog:
    def test_lines_ordered_and_kept_on_snapshot(self, task, transport):
        transport.script(
            "GET", LOG_PATH,
            [{"n": 2, "t": "second"}, {"n": 1, "t": "first"}, {"n": 3, "t": "TASK OK"}],
        )
        assert task.log(limit=10) == ["first", "second", "TASK OK"]
        assert task.snapshot.log_tail == ["first", "second", "TASK OK"]
        assert transport.calls[-1] == ("GET", LOG_PATH, {"start": 0, "limit": 10})

    def test_log_survives_status_update(self, task, transport):
        transport.script("GET", LOG_PATH, [{"n": 1, "t": "starting"}])
        transport.script("GET", status_path(), running())
        task.log()
        task.status()
        assert task.snapshot.log_tail == ["starting"]

    def test_log_does_not_change_terminality(self, task, transport):
        transport.script("GET", status_path(), stopped("OK"))
        transport.script("GET", LOG_PATH, [{"n": 1, "t": "TASK OK"}])
        task.status()
        task.log()
        assert task.is_successful()

    def test_malformed_log(self, task, transport):
        transport.script("GET", LOG_PATH, {"n": 1})
        with pytest.raises(MalformedResponse):
            task.log()


def test_stop_deletes_task(task, transport):
    transport.script("DELETE", f"/nodes/pve1/tasks/{UPID_OK}", None)
    task.stop()
    assert transport.calls == [("DELETE", f"/nodes/pve1/tasks/{UPID_OK}", {})]


class TestFromListing:
    def test_finished_row(self, transport):
        row = {"upid": UPID_OK, "node": "pve1", "status": "OK", "endtime": 0x65F0A1B2 + 5}
        task = Task.from_listing(row, transport)
        assert task.is_successful()
        assert task.duration == timedelta(seconds=5)
        assert transport.calls == []

    def test_failed_row(self, transport):
        row = {"upid": UPID_OK, "status": "unable to open file", "endtime": 0x65F0A1B2 + 1}
        assert Task.from_listing(row, transport).is_failed()

    def test_running_row(self, transport):
        task = Task.from_listing({"upid": UPID_OK, "node": "pve1"}, transport)
        assert not task.is_terminal()
        assert task.is_running()
        assert not task.is_failed()
        assert task.transport is transport


class TestTaskFromResult:
    def test_upid_result(self, transport):
        task = task_from_result(UPID_OK, transport)
        assert isinstance(task, Task)
        assert str(task.upid) == UPID_OK

    @pytest.mark.parametrize("result", [None, "", 0, {"data": None}])
    def test_synchronous_result(self, transport, result):
        assert task_from_result(result, transport) is None
