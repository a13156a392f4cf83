import io
import os
import signal

import pytest

from ektask import errors
from ektask import terminal as term
from ektask.line_editor import LineEditor


@pytest.fixture
def pipe_session():
    r, w = os.pipe()
    session = term.TerminalSession(stdin_fd=r, stdout=io.StringIO(), reply_timeout=0.2)
    try:
        yield session, w
    finally:
        os.close(r)
        try:
            os.close(w)
        except OSError:
            pass


def test_parse_cursor_pos():
    assert term.parse_cursor_pos(b"\x1b[17;31R") == term.CursorPos(row=17, col=31)


@pytest.mark.parametrize("reply", [b"\x1b[17;31", b"17;31R", b"\x1b[17R", b"\x1b[a;bR", b"x\x1b[1;1R"])
def test_parse_cursor_pos_rejects_malformed(reply):
    with pytest.raises(errors.CursorProtocolError):
        term.parse_cursor_pos(reply)


def test_query_cursor_position_reads_reply(pipe_session):
    session, w = pipe_session
    os.write(w, b"\x1b[12;5R")
    assert session.query_cursor_position() == term.CursorPos(12, 5)
    assert session.out.getvalue() == "\x1b[6n"


def test_query_keeps_keystrokes_around_reply(pipe_session):
    session, w = pipe_session
    os.write(w, b"ab\x1b[3;9Rc")
    assert session.query_cursor_position() == term.CursorPos(3, 9)
    assert [session.read_key() for _ in range(3)] == [b"a", b"b", b"c"]


def test_query_times_out(pipe_session):
    session, _ = pipe_session
    with pytest.raises(errors.CursorProtocolError):
        session.query_cursor_position()


def test_query_fails_when_input_closes(pipe_session):
    session, w = pipe_session
    os.write(w, b"\x1b[12")
    os.close(w)
    with pytest.raises(errors.CursorProtocolError):
        session.query_cursor_position()


def test_query_rejects_long_garbage(pipe_session):
    session, w = pipe_session
    os.write(w, b"z" * (term.MAX_REPLY_BYTES + 1))
    with pytest.raises(errors.CursorProtocolError):
        session.query_cursor_position()


def test_read_key_splits_events(pipe_session):
    session, w = pipe_session
    os.write(w, b"\x1b[Ax\x1b[D" + "é日".encode("utf-8") + b"\r")
    keys = [session.read_key() for _ in range(6)]
    assert keys == [b"\x1b[A", b"x", b"\x1b[D", "é".encode(), "日".encode(), b"\r"]


def test_read_key_returns_empty_at_eof(pipe_session):
    session, w = pipe_session
    os.close(w)
    assert session.read_key() == b""


def test_set_cursor_position_writes_sequence():
    out = io.StringIO()
    session = term.TerminalSession(stdin_fd=0, stdout=out)
    session.set_cursor_position(term.CursorPos(4, 7))
    assert out.getvalue() == "\x1b[4;7H"


def test_excursion_restores_position_on_error(pipe_session):
    session, w = pipe_session
    os.write(w, b"\x1b[3;4R")
    with pytest.raises(RuntimeError):
        with session.excursion():
            session.write("moved")
            raise RuntimeError("boom")
    assert session.out.getvalue() == "\x1b[6nmoved\x1b[3;4H"


def test_with_excursion_returns_action_result(pipe_session):
    session, w = pipe_session
    os.write(w, b"\x1b[1;1R")
    assert session.with_excursion(lambda: 42) == 42
    assert session.out.getvalue().endswith("\x1b[1;1H")


def test_enter_requires_a_tty(pipe_session):
    session, _ = pipe_session
    with pytest.raises(errors.TerminalUnavailable):
        session.enter()


class RecordingRawMode:
    instances = []

    def __init__(self, fileno):
        self.fileno = fileno
        self.entered = 0
        self.exited = 0
        RecordingRawMode.instances.append(self)

    def __enter__(self):
        self.entered += 1

    def __exit__(self, *args):
        self.exited += 1


@pytest.fixture
def fake_tty(monkeypatch):
    RecordingRawMode.instances.clear()
    monkeypatch.setattr(term.os, "isatty", lambda fd: True)
    monkeypatch.setattr(term, "raw_mode", RecordingRawMode)
    return RecordingRawMode


def test_enter_and_restore_once(fake_tty):
    before = signal.getsignal(signal.SIGTERM)
    session = term.TerminalSession(stdin_fd=0, stdout=io.StringIO())
    with session:
        raw = fake_tty.instances[-1]
        assert raw.entered == 1
        assert signal.getsignal(signal.SIGTERM) == session._on_signal
        session.restore()
    session.restore()
    assert raw.exited == 1
    assert signal.getsignal(signal.SIGTERM) == before


def test_restore_runs_on_error(fake_tty):
    session = term.TerminalSession(stdin_fd=0, stdout=io.StringIO())
    with pytest.raises(ValueError):
        with session:
            raise ValueError("fail")
    assert fake_tty.instances[-1].exited == 1


def test_signal_restores_terminal_then_reaches_previous_handler(fake_tty):
    seen = []
    original = signal.signal(signal.SIGTERM, lambda s, f: seen.append(s))
    try:
        session = term.TerminalSession(stdin_fd=0, stdout=io.StringIO())
        session.enter()
        session._on_signal(signal.SIGTERM, None)
        assert fake_tty.instances[-1].exited == 1
        assert seen == [signal.SIGTERM]
    finally:
        signal.signal(signal.SIGTERM, original)


def test_read_key_keeps_whole_escape_sequences(pipe_session):
    session, w = pipe_session
    os.write(w, b"ab\x1b[H\x1b[3~\x1b[F\x1bOA\x1b[15~z")
    keys = [session.read_key() for _ in range(8)]
    assert keys == [b"a", b"b", b"\x1b[H", b"\x1b[3~", b"\x1b[F", b"\x1bOA", b"\x1b[15~", b"z"]


def test_escape_keys_leave_editor_buffer_alone(pipe_session):
    session, w = pipe_session
    os.write(w, b"ab\x1b[H\x1b[3~\x1b[F\x1bOA")
    os.close(w)
    editor = LineEditor()
    while True:
        key = session.read_key()
        if not key:
            break
        editor.feed(key)
    assert editor.text == "ab"


def test_lone_escape_is_one_key(pipe_session):
    session, w = pipe_session
    os.write(w, b"\x1b")
    assert session.read_key() == b"\x1b"
