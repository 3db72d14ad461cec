import pyperclip
import pytest

from clipboard import (
    CF_UNICODETEXT,
    ClipboardSource,
    PyperclipClipboardSource,
    create_clipboard_source,
    strip_units,
)
from errors import (
    ClipboardCloseFailed,
    ClipboardDataUnavailable,
    ClipboardOpenFailed,
    ClipboardUnlockFailed,
)


def units(text: str) -> list[int]:
    raw = text.encode("utf-16-le", "surrogatepass")
    return [int.from_bytes(raw[i:i + 2], "little") for i in range(0, len(raw), 2)]


class FakeClipboardApi:
    def __init__(self, text="", open_ok=True, has_data=True, unlock_ok=True, close_ok=True):
        self.data = units(text) + [0, ord("x")]  # мусор после терминатора не читается
        self.open_ok = open_ok
        self.has_data = has_data
        self.unlock_ok = unlock_ok
        self.close_ok = close_ok
        self.calls = []

    def open(self):
        self.calls.append("open")
        return self.open_ok

    def get_data(self, fmt):
        self.calls.append(("get_data", fmt))
        return 1234 if self.has_data else None

    def lock(self, handle):
        self.calls.append("lock")
        return self.data

    def unlock(self, handle):
        self.calls.append("unlock")
        return self.unlock_ok

    def close(self):
        self.calls.append("close")
        return self.close_ok


def test_strip_units_drops_cr_and_stops_at_zero():
    assert strip_units([ord("a"), 13, 10, ord("b"), 0, ord("c")]) == [ord("a"), 10, ord("b")]


def test_read_crlf_becomes_lf():
    api = FakeClipboardApi("a\r\nb")
    assert ClipboardSource(api).read() == [ord("a"), 10, ord("b")]
    assert api.calls == ["open", ("get_data", CF_UNICODETEXT), "lock", "unlock", "close"]


def test_read_keeps_surrogate_pairs_as_two_units():
    assert ClipboardSource(FakeClipboardApi("😀")).read() == [0xD83D, 0xDE00]


def test_read_empty_text():
    assert ClipboardSource(FakeClipboardApi("")).read() == []


def test_open_failure_never_closes():
    api = FakeClipboardApi("a", open_ok=False)
    with pytest.raises(ClipboardOpenFailed):
        ClipboardSource(api).read()
    assert api.calls == ["open"]


def test_missing_text_closes_clipboard():
    api = FakeClipboardApi("a", has_data=False)
    with pytest.raises(ClipboardDataUnavailable):
        ClipboardSource(api).read()
    assert api.calls[-1] == "close"
    assert "lock" not in api.calls


def test_unlock_failure_still_closes():
    api = FakeClipboardApi("a", unlock_ok=False)
    with pytest.raises(ClipboardUnlockFailed):
        ClipboardSource(api).read()
    assert api.calls[-2:] == ["unlock", "close"]


def test_close_failure_is_reported():
    api = FakeClipboardApi("a", close_ok=False)
    with pytest.raises(ClipboardCloseFailed):
        ClipboardSource(api).read()


def test_data_error_wins_over_close_error():
    api = FakeClipboardApi("a", has_data=False, close_ok=False)
    with pytest.raises(ClipboardDataUnavailable):
        ClipboardSource(api).read()
    assert api.calls.count("close") == 1


def test_pyperclip_source(monkeypatch):
    monkeypatch.setattr(pyperclip, "paste", lambda: "hi\r\n😀")
    assert PyperclipClipboardSource().read() == [ord("h"), ord("i"), 10, 0xD83D, 0xDE00]


def test_pyperclip_source_empty(monkeypatch):
    monkeypatch.setattr(pyperclip, "paste", lambda: "")
    with pytest.raises(ClipboardDataUnavailable):
        PyperclipClipboardSource().read()


def test_pyperclip_source_failure(monkeypatch):
    def boom():
        raise pyperclip.PyperclipException("busy")

    monkeypatch.setattr(pyperclip, "paste", boom)
    with pytest.raises(ClipboardOpenFailed):
        PyperclipClipboardSource().read()


def test_create_pyperclip_backend():
    assert isinstance(create_clipboard_source("pyperclip"), PyperclipClipboardSource)
