"""
test_scheduler.py
~~~~~~~~~~~~~~~~~
Frame writing, done policies, text mode, degradation and the render thread.

Most tests drive frames with explicit tick() calls on unthreaded engines;
the TestThread cases run the real loop with a short interval.
"""
from __future__ import annotations

import json
import logging
import threading
import time

import pytest

from termjobs.tui.model import DoneBehavior, JobSpec, Status
from termjobs.tui.scheduler import OutputMode, aggregate_progress
from termjobs.tui.terminal import Terminal
from termjobs.utils.osc import ProgressState

from .conftest import BrokenStream, RecordingStream

CLEAR_ONE = Terminal.clear_sequence(1)


def plain(message: str, **kwargs) -> JobSpec:
    """A job whose frame does not change with time."""
    return JobSpec(body="{{ message }}", **kwargs).prop("message", message)


def wait_for(predicate, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def held_by_another_thread(lock) -> bool:
    """True when lock cannot be taken from a fresh thread right now."""
    acquired = []

    def attempt():
        got = lock.acquire(blocking=False)
        if got:
            lock.release()
        acquired.append(got)

    thread = threading.Thread(target=attempt)
    thread.start()
    thread.join()
    return not acquired[0]


class TestFrames:

    def test_first_frame(self, engine, stream):
        engine.start(plain("a"))
        engine.scheduler.tick()
        assert stream.writes == ["a\n"]

    def test_unchanged_frame_not_rewritten(self, engine, stream):
        engine.start(plain("a"))
        engine.scheduler.tick()
        engine.scheduler.tick()
        engine.scheduler.tick()
        assert len(stream.writes) == 1

    def test_changed_frame_replaces_previous(self, engine, stream):
        job = engine.start(plain("a"))
        engine.scheduler.tick()
        job.message("b")
        engine.scheduler.tick()
        assert stream.writes[-1] == CLEAR_ONE + "b\n"

    def test_wrapped_rows_are_cleared(self, make_engine):
        stream = RecordingStream()
        engine = make_engine(stream=stream, width=10)
        job = engine.start(JobSpec(body="x" * 25))
        engine.scheduler.tick()
        job.set_body("y")
        engine.scheduler.tick()
        assert stream.writes[-1].startswith(Terminal.clear_sequence(3))

    def test_request_redraw_forces_repaint(self, engine, stream):
        engine.start(plain("a"))
        engine.scheduler.tick()
        engine.scheduler.request_redraw()
        engine.scheduler.tick()
        assert len(stream.writes) == 2

    def test_width_change_reflows(self, engine, stream):
        engine.start(JobSpec(body="{{ message | flex_fill }}|").prop("message", "a"))
        engine.scheduler.tick()
        engine.terminal.fixed_width = 20
        engine.scheduler.tick()
        assert stream.writes[-1] == CLEAR_ONE + "a" + " " * 18 + "|\n"

    def test_tick_reports_liveness(self, engine):
        job = engine.start(plain("a"))
        assert engine.scheduler.tick() is True
        job.set_status(Status.DONE)
        assert engine.scheduler.tick() is False

    def test_pending_jobs_keep_loop_alive(self, engine):
        engine.start(plain("a", status=Status.PENDING))
        assert engine.scheduler.tick() is True


class TestDonePolicies:

    def test_hide_removed_before_next_frame(self, engine, stream):
        job = engine.start(plain("gone", on_done=DoneBehavior.HIDE))
        engine.scheduler.tick()
        job.set_status(Status.DONE)
        engine.scheduler.tick()
        assert engine.job_count() == 0
        assert job.status is None
        assert stream.writes[-1] == CLEAR_ONE

    def test_collapse_renders_once_without_children(self, engine, stream):
        parent = engine.start(plain("parent", on_done=DoneBehavior.COLLAPSE))
        parent.add(plain("child"))
        engine.scheduler.tick()
        assert stream.writes[-1] == "parent\n  child\n"
        parent.set_status(Status.DONE)
        engine.scheduler.tick()
        assert stream.writes[-1] == Terminal.clear_sequence(2) + "parent\n"
        engine.scheduler.tick()
        assert engine.job_count() == 0

    def test_keep_stays_on_screen(self, engine, stream):
        job = engine.start(plain("kept"))
        job.set_status(Status.FAILED)
        engine.scheduler.tick()
        engine.scheduler.tick()
        assert engine.job_count() == 1
        assert stream.writes == ["kept\n"]


class TestPause:

    def test_pause_erases_and_stops_painting(self, engine, stream):
        job = engine.start(plain("a"))
        engine.scheduler.tick()
        engine.pause()
        assert engine.is_paused()
        assert stream.writes[-1] == CLEAR_ONE
        job.message("b")
        assert engine.scheduler.tick() is True
        assert stream.writes[-1] == CLEAR_ONE

    def test_resume_repaints(self, engine, stream):
        engine.start(plain("a"))
        engine.scheduler.tick()
        engine.pause()
        engine.resume()
        assert not engine.is_paused()
        engine.scheduler.tick()
        assert stream.writes[-1] == "a\n"


class TestForeignOutput:

    def test_println_clears_region_then_redraws(self, engine, stream):
        engine.start(plain("job"))
        engine.scheduler.tick()
        engine.println("hello")
        engine.scheduler.tick()
        assert stream.writes == ["job\n", CLEAR_ONE, "hello\n", "job\n"]

    def test_with_terminal_lock_returns_body_value(self, engine):
        assert engine.with_terminal_lock(lambda: 42) == 42

    def test_redraw_requested_even_when_body_raises(self, engine, stream):
        engine.start(plain("job"))
        engine.scheduler.tick()

        def boom():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            engine.with_terminal_lock(boom)
        engine.scheduler.tick()
        assert stream.writes[-1] == "job\n"


class TestStop:

    def test_stop_leaves_final_frame(self, engine, stream):
        job = engine.start(JobSpec().prop("message", "built"))
        job.set_status(Status.DONE)
        engine.stop()
        assert stream.getvalue().endswith("✔ built\n")
        assert engine.job_count() == 0

    def test_stop_does_not_repeat_identical_frame(self, engine, stream):
        engine.start(plain("a", status=Status.DONE))
        engine.scheduler.tick()
        engine.stop()
        assert stream.writes == ["a\n"]

    def test_stop_clear_erases(self, engine, stream):
        engine.start(plain("a"))
        engine.scheduler.tick()
        engine.stop_clear()
        assert stream.writes[-1] == CLEAR_ONE
        assert engine.job_count() == 0

    def test_engine_usable_after_stop(self, engine, stream):
        engine.start(plain("first"))
        engine.stop()
        engine.start(plain("second"))
        engine.scheduler.tick()
        assert stream.writes[-1] == "second\n"

    def test_diagnostics_get_final_state(self, make_engine, tmp_path):
        path = tmp_path / "trace" / "frames.jsonl"
        engine = make_engine(trace_log=path)
        job = engine.start(JobSpec(body="{{ message }} {{ cur }}/{{ total }}", progress_total=4).prop("message", "copy"))
        engine.scheduler.tick()
        job.progress_current(4)
        job.set_status(Status.DONE)
        engine.stop()

        records = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
        assert records[0]["rendered"] == "copy 0/4"
        final = records[-1]
        assert final["rendered"] == "copy 4/4"
        assert final["jobs"] == [
            {"id": job.id, "status": "done", "message": "copy", "progress": [4, 4], "children": []}
        ]

    def test_stop_clear_still_records_final_state(self, make_engine, tmp_path):
        path = tmp_path / "frames.jsonl"
        engine = make_engine(trace_log=path)
        engine.start(plain("a"))
        engine.stop_clear()
        final = json.loads(path.read_text(encoding="utf-8").splitlines()[-1])
        assert final["rendered"] == "a"


class TestTextMode:

    def test_non_tty_selects_text_mode(self, text_engine):
        assert text_engine.output_mode() is OutputMode.TEXT

    def test_config_forces_text_mode(self, make_engine):
        assert make_engine(text_mode=True).output_mode() is OutputMode.TEXT

    def test_completed_job_printed_once(self, text_engine):
        stream = text_engine.terminal.stream
        job = text_engine.start(JobSpec().prop("message", "built"))
        job.progress_total(10).progress_current(3)
        assert stream.getvalue() == ""
        job.set_status(Status.DONE)
        job.set_status(Status.DONE)
        text_engine.flush()
        text_engine.stop()
        assert stream.getvalue() == "✔ built\n"

    def test_completion_order(self, text_engine):
        stream = text_engine.terminal.stream
        first = text_engine.start(plain("first"))
        second = text_engine.start(plain("second"))
        text_engine.tree.mutate(first.id, lambda state: state.set_status(Status.DONE, 2.0))
        text_engine.tree.mutate(second.id, lambda state: state.set_status(Status.FAILED, 1.0))
        text_engine.flush()
        assert stream.getvalue() == "second\nfirst\n"

    def test_body_text_used(self, text_engine):
        stream = text_engine.terminal.stream
        job = text_engine.start(JobSpec(body="ui", body_text="done: {{ message }}").prop("message", "x"))
        job.set_status(Status.DONE)
        assert stream.getvalue() == "done: x\n"

    def test_hide_on_done_prints_nothing(self, text_engine):
        stream = text_engine.terminal.stream
        job = text_engine.start(plain("quiet", on_done=DoneBehavior.HIDE))
        job.set_status(Status.DONE)
        assert stream.getvalue() == ""
        assert text_engine.job_count() == 0

    def test_reopened_job_prints_again(self, text_engine):
        stream = text_engine.terminal.stream
        job = text_engine.start(plain("retry"))
        job.set_status(Status.FAILED)
        job.set_status(Status.RUNNING)
        job.set_status(Status.DONE)
        assert stream.getvalue() == "retry\nretry\n"

    def test_switching_to_text_erases_region(self, engine, stream):
        engine.start(plain("a"))
        engine.scheduler.tick()
        engine.set_output_mode(OutputMode.TEXT)
        assert engine.output_mode() is OutputMode.TEXT
        assert stream.writes[-1] == CLEAR_ONE


class TestDegrade:

    def test_write_failure_switches_to_text(self, make_engine, caplog):
        engine = make_engine(stream=BrokenStream(tty=True))
        assert engine.output_mode() is OutputMode.UI
        job = engine.start(plain("a"))
        with caplog.at_level(logging.WARNING, logger="termjobs"):
            engine.scheduler.tick()
        assert engine.output_mode() is OutputMode.TEXT
        assert "switching to text output" in caplog.text
        # Further failures are contained too
        job.set_status(Status.DONE)
        engine.stop()

    def test_text_write_failure_logged_once(self, make_engine, caplog):
        engine = make_engine(stream=BrokenStream(tty=False))
        with caplog.at_level(logging.WARNING, logger="termjobs"):
            for name in ("a", "b"):
                engine.start(plain(name)).set_status(Status.DONE)
        assert caplog.text.count("cannot write progress output") == 1


class TestDisabled:

    def test_nothing_rendered(self, make_engine):
        stream = RecordingStream()
        engine = make_engine(stream=stream, disabled=True)
        job = engine.start(plain("a"))
        engine.scheduler.tick()
        job.set_status(Status.DONE)
        engine.flush()
        engine.stop()
        assert stream.writes == []

    def test_jobs_still_tracked(self, make_engine):
        engine = make_engine(disabled=True)
        job = engine.start(plain("a"))
        job.message("b")
        assert job.snapshot().message == "b"


class TestAggregateProgress:

    def test_empty_tree(self, engine):
        assert aggregate_progress(engine.tree.snapshot_all()) is None

    def test_first_root_fraction_wins(self, engine):
        engine.start(plain("a", progress_total=4, progress_current=1))
        engine.start(plain("b", status=Status.DONE))
        fraction, state = aggregate_progress(engine.tree.snapshot_all())
        assert fraction == pytest.approx(0.25)
        assert state is ProgressState.NORMAL

    def test_status_estimates(self, engine):
        engine.start(plain("pending", status=Status.PENDING))
        engine.start(plain("running"))
        engine.start(plain("done", status=Status.DONE))
        fraction, _ = aggregate_progress(engine.tree.snapshot_all())
        assert fraction == pytest.approx(0.5)

    def test_error_beats_warning(self, engine):
        engine.start(plain("a", status=Status.WARN))
        engine.start(plain("b", status=Status.FAILED))
        _, state = aggregate_progress(engine.tree.snapshot_all())
        assert state is ProgressState.ERROR

    def test_warning(self, engine):
        engine.start(plain("a"))
        engine.start(plain("b", status=Status.WARN))
        _, state = aggregate_progress(engine.tree.snapshot_all())
        assert state is ProgressState.WARNING


class TestOscReports:

    def test_reports_only_on_change(self, engine, sink):
        job = engine.start(plain("a", progress_total=10, progress_current=5))
        engine.scheduler.tick()
        engine.scheduler.tick()
        assert sink.reports == [(0.5, ProgressState.NORMAL)]
        job.progress_current(6)
        engine.scheduler.tick()
        assert sink.reports[-1] == (pytest.approx(0.6), ProgressState.NORMAL)

    def test_failure_state(self, engine, sink):
        job = engine.start(plain("a", progress_total=10, progress_current=5))
        engine.scheduler.tick()
        job.set_status(Status.FAILED)
        engine.scheduler.tick()
        assert sink.reports[-1][1] is ProgressState.ERROR

    def test_stop_clears_indicator(self, engine, sink):
        engine.start(plain("a", progress_total=10, progress_current=5))
        engine.scheduler.tick()
        engine.stop()
        assert sink.reports[-1] == (None, ProgressState.NONE)

    def test_reports_written_under_terminal_lock(self, engine):
        lock = engine.coordinator.lock
        held = []

        class LockCheckingSink:
            def report_progress(self, fraction, state):
                held.append(held_by_another_thread(lock))

        engine.scheduler.sink = LockCheckingSink()
        engine.start(plain("a", progress_total=10, progress_current=5))
        engine.scheduler.tick()
        engine.stop()
        assert held == [True, True]


class TestInterval:

    def test_set_interval(self, engine):
        engine.set_interval(0.05)
        assert engine.interval() == 0.05

    def test_interval_has_a_floor(self, engine):
        engine.set_interval(0)
        assert engine.interval() > 0

    def test_interval_from_config(self, make_engine):
        assert make_engine(interval=0.5).interval() == 0.5


class TestThread:

    @pytest.fixture
    def threaded(self, make_engine, stream):
        return make_engine(stream=stream, threaded=True, interval=0.01)

    def test_loop_starts_on_first_job(self, threaded, stream):
        threaded.start(plain("a"))
        assert wait_for(lambda: "a\n" in stream.writes)

    def test_loop_exits_when_nothing_is_live(self, threaded):
        job = threaded.start(plain("a", on_done=DoneBehavior.HIDE))
        assert wait_for(lambda: threaded.scheduler.is_running)
        job.set_status(Status.DONE)
        assert wait_for(lambda: not threaded.scheduler.is_running)
        assert threaded.job_count() == 0

    def test_loop_restarts_lazily(self, threaded, stream):
        threaded.start(plain("a", on_done=DoneBehavior.HIDE)).set_status(Status.DONE)
        assert wait_for(lambda: not threaded.scheduler.is_running)
        threaded.start(plain("again"))
        assert wait_for(lambda: "again\n" in stream.writes)

    def test_updates_are_picked_up(self, threaded, stream):
        job = threaded.start(plain("one"))
        assert wait_for(lambda: "one\n" in stream.writes)
        job.message("two")
        assert wait_for(lambda: CLEAR_ONE + "two\n" in stream.writes)

    def test_stop_joins_loop(self, threaded):
        threaded.start(plain("a"))
        assert wait_for(lambda: threaded.scheduler.is_running)
        threaded.stop()
        assert not threaded.scheduler.is_running

    def test_resize_requests_repaint(self, threaded, stream):
        threaded.start(plain("a"))
        assert wait_for(lambda: "a\n" in stream.writes)
        written = len(stream.writes)
        threaded.scheduler.notify_resize()
        assert wait_for(lambda: len(stream.writes) > written)

    def test_resize_repaints_without_waiting_for_interval(self, make_engine, stream):
        slow = make_engine(stream=stream, threaded=True, interval=1.0)
        slow.start(plain("a"))
        assert wait_for(lambda: "a\n" in stream.writes)
        time.sleep(0.05)
        written = len(stream.writes)
        started = time.monotonic()
        slow.scheduler.notify_resize()
        assert wait_for(lambda: len(stream.writes) > written, timeout=0.9)
        assert time.monotonic() - started < 0.25
        assert stream.writes[-1] == CLEAR_ONE + "a\n"

    def test_failing_template_does_not_stop_loop(self, threaded, stream):
        threaded.start(JobSpec(body="{{ cur / total }}", progress_total=0))
        good = threaded.start(plain("good"))
        assert wait_for(lambda: any("good" in chunk for chunk in stream.writes))
        good.message("still good")
        assert wait_for(lambda: any("still good" in chunk for chunk in stream.writes))
        assert threaded.scheduler.is_running
