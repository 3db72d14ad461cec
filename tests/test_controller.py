import random
import threading
from unittest.mock import MagicMock

import pytest

from clipboard import ClipboardSource
from controller import CountdownSlot, PasteController, PasteState, PlaybackFlag, compute_delay_ms
from errors import (
    ClipboardDataUnavailable,
    InvalidConfig,
    InvalidPlaybackParams,
    Suspended,
    TriggerRebindFailed,
)
from hotkey_config import DEFAULT_HOTKEY, HotkeyConfig
from keystrokes import VK_RETURN, KeystrokeSynthesizer


class FakeClipboard:
    def __init__(self, text):
        self.units = [ord(c) for c in text.replace("\r", "")]
        self.reads = 0

    def read(self):
        self.reads += 1
        return list(self.units)


class FixedRng:
    def __init__(self, value):
        self.value = value

    def getrandbits(self, k):
        return self.value


def make_controller(text="hello", sleep=None, **kwargs):
    batches = []
    clip = FakeClipboard(text)
    ctrl = PasteController(
        clip,
        KeystrokeSynthesizer(batches.append),
        sleep=sleep or (lambda s: None),
        **kwargs,
    )
    return ctrl, clip, batches


def typed_units(batches):
    return [b[0].scan if b[0].vk == 0 else "ENTER" for b in batches]


def test_play_types_whole_clipboard():
    ctrl, clip, batches = make_controller("ab\ncd")
    ctrl.play(10, 5)
    assert typed_units(batches) == [ord("a"), ord("b"), "ENTER", ord("c"), ord("d")]
    assert not ctrl.is_playing


class RawClipboardApi:
    """Буфер с текстом в виде WCHAR с нулём на конце."""

    def __init__(self, text):
        self.data = [ord(c) for c in text] + [0]

    def open(self):
        return True

    def get_data(self, fmt):
        return 1

    def lock(self, handle):
        return self.data

    def unlock(self, handle):
        return True

    def close(self):
        return True


def test_crlf_emits_enter_without_cr():
    batches = []
    ctrl = PasteController(
        ClipboardSource(RawClipboardApi("a\r\nb")),
        KeystrokeSynthesizer(batches.append),
        sleep=lambda s: None,
    )
    ctrl.play(1, 1)
    assert typed_units(batches) == [ord("a"), "ENTER", ord("b")]
    assert all(e.scan != 13 for b in batches for e in b)
    assert batches[1][0].vk == VK_RETURN


def test_paused_never_reads_clipboard():
    clip = MagicMock()
    ctrl = PasteController(clip, MagicMock(), sleep=lambda s: None)
    ctrl.toggle_pause()
    with pytest.raises(Suspended):
        ctrl.play(10, 5)
    clip.read.assert_not_called()
    assert not ctrl.is_playing


def test_second_play_cancels_first():
    holder = {}
    sleeps = []

    def sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) == 2:
            # повторный запуск во время паузы между символами
            assert holder["ctrl"].play(10, 5) is None

    ctrl, clip, batches = make_controller("abcdef", sleep=sleep)
    holder["ctrl"] = ctrl
    ctrl.play(10, 5)

    assert typed_units(batches) == [ord("a"), ord("b")]
    assert clip.reads == 1
    assert not ctrl.is_playing


def test_second_play_cancels_first_across_threads():
    first_sent = threading.Event()
    batches = []

    def sender(events):
        batches.append(events)
        first_sent.set()

    ctrl = PasteController(FakeClipboard("abcdef"), KeystrokeSynthesizer(sender))
    # длинная пауза: отмена должна разбудить поток раньше
    worker = threading.Thread(target=ctrl.play, args=(60000, 1))
    worker.start()
    assert first_sent.wait(2.0)

    ctrl.play(60000, 1)
    worker.join(2.0)

    assert not worker.is_alive()
    assert len(batches) == 1
    assert not ctrl.is_playing


def test_play_after_cancel_starts_fresh():
    holder = {"cancelled": False}

    def sleep(seconds):
        if not holder["cancelled"]:
            holder["cancelled"] = True
            holder["ctrl"].play(1, 1)

    ctrl, clip, batches = make_controller("xyz", sleep=sleep)
    holder["ctrl"] = ctrl
    ctrl.play(1, 1)
    assert len(batches) == 1

    ctrl.play(1, 1)
    assert len(batches) == 4
    assert clip.reads == 2


def test_pause_does_not_interrupt_running_playback():
    holder = {}

    def sleep(seconds):
        if not holder.get("paused"):
            holder["paused"] = holder["ctrl"].toggle_pause()

    ctrl, clip, batches = make_controller("abc", sleep=sleep)
    holder["ctrl"] = ctrl
    ctrl.play(1, 1)
    assert len(batches) == 3
    assert ctrl.is_paused
    with pytest.raises(Suspended):
        ctrl.play(1, 1)


def test_clipboard_error_clears_flag_and_sends_nothing():
    clip = MagicMock()
    clip.read.side_effect = ClipboardDataUnavailable()
    synth = MagicMock()
    ctrl = PasteController(clip, synth, sleep=lambda s: None)
    with pytest.raises(ClipboardDataUnavailable):
        ctrl.play(10, 5)
    synth.emit.assert_not_called()
    assert not ctrl.is_playing


def test_zero_jitter_is_rejected():
    clip = MagicMock()
    ctrl = PasteController(clip, MagicMock(), sleep=lambda s: None)
    with pytest.raises(InvalidPlaybackParams):
        ctrl.play(10, 0)
    clip.read.assert_not_called()
    assert not ctrl.is_playing


def test_toggle_pause_is_its_own_inverse():
    ctrl, _, _ = make_controller()
    assert ctrl.is_paused is False
    assert ctrl.toggle_pause() is True
    assert ctrl.is_paused is True
    assert ctrl.toggle_pause() is False
    assert ctrl.is_paused is False


def test_delays_stay_within_jitter_window():
    sleeps = []
    ctrl, _, batches = make_controller("x" * 300, sleep=sleeps.append, rng=random.Random(42))
    ctrl.play(50, 30)
    assert len(sleeps) == 300
    assert all(0.050 <= s <= 0.079 for s in sleeps)
    assert len(set(sleeps)) > 1


def test_compute_delay_bounds():
    assert compute_delay_ms(50, 30, FixedRng(0)) == 50
    assert compute_delay_ms(50, 30, FixedRng(29)) == 79
    assert compute_delay_ms(50, 30, FixedRng(30)) == 50
    assert compute_delay_ms(50, 30, FixedRng(0xFFFFFFFF)) == 50 + 0xFFFFFFFF % 30


def test_update_config_rejects_missing_modifiers():
    rebind, persist = MagicMock(), MagicMock()
    ctrl = PasteController(MagicMock(), MagicMock(), rebind=rebind, persist=persist)
    bad = HotkeyConfig(alt=False, ctrl=False, shift=False, key="V")
    with pytest.raises(InvalidConfig):
        ctrl.update_config(bad)
    assert ctrl.get_config() == DEFAULT_HOTKEY
    rebind.assert_not_called()
    persist.assert_not_called()


def test_update_config_replaces_persists_and_rebinds():
    rebind, persist = MagicMock(), MagicMock(return_value=True)
    ctrl = PasteController(MagicMock(), MagicMock(), rebind=rebind, persist=persist)
    new = HotkeyConfig(alt=False, ctrl=True, shift=True, key="V")
    assert ctrl.update_config(new) == "Ctrl+Shift+V"
    assert ctrl.get_config() == new
    persist.assert_called_once_with(new)
    rebind.assert_called_once_with("Control+Shift+V")


def test_update_config_rebind_failure_is_partial():
    rebind = MagicMock(side_effect=OSError("busy"))
    persist = MagicMock(return_value=True)
    ctrl = PasteController(MagicMock(), MagicMock(), rebind=rebind, persist=persist)
    new = HotkeyConfig(intercept_system_combo=True)
    with pytest.raises(TriggerRebindFailed) as exc:
        ctrl.update_config(new)
    assert exc.value.restart_required
    assert exc.value.accelerator == "Control+V"
    assert exc.value.description == new.describe()
    # конфигурация уже заменена и сохранена
    assert ctrl.get_config() == new
    persist.assert_called_once_with(new)


def test_cancel_without_playback():
    ctrl, _, _ = make_controller()
    assert ctrl.cancel() is False


def test_state_seeded_with_loaded_config():
    cfg = HotkeyConfig(alt=False, ctrl=True, shift=True, key="P")
    ctrl = PasteController(MagicMock(), MagicMock(), state=PasteState(cfg))
    assert ctrl.get_config() == cfg


def test_flag_stale_clear_does_not_touch_newer_playback():
    flag = PlaybackFlag()
    first = flag.test_and_set()
    assert flag.test_and_set() is None  # отмена
    second = flag.test_and_set()
    assert second != first
    flag.clear(first)
    assert flag.is_current(second)
    assert not flag.is_current(first)
    flag.clear(second)
    assert not flag.is_set()


def test_flag_wait_wakes_on_clear():
    flag = PlaybackFlag()
    flag.test_and_set()
    assert flag.wait_cancelled(0.01) is False
    threading.Timer(0.05, flag.clear).start()
    assert flag.wait_cancelled(2.0) is True


def test_pause_is_checked_before_playback_params():
    ctrl, clip, _ = make_controller()
    ctrl.toggle_pause()
    with pytest.raises(Suspended):
        ctrl.play(10, 0)
    assert clip.reads == 0


def test_delayed_start_skips_when_playback_ran_during_countdown():
    ctrl, clip, batches = make_controller("ab")
    since = ctrl.playback_generation
    ctrl.play(1, 1)  # вставка по комбинации во время отсчёта
    assert len(batches) == 2

    ctrl.play(1, 1, since_generation=since)
    assert len(batches) == 2
    assert clip.reads == 1


def test_delayed_start_does_not_cancel_running_playback():
    holder = {}

    def sleep(seconds):
        if "skipped" not in holder:
            holder["skipped"] = holder["ctrl"].play(1, 1, since_generation=holder["since"]) is None

    ctrl, clip, batches = make_controller("abc", sleep=sleep)
    holder["ctrl"] = ctrl
    holder["since"] = ctrl.playback_generation
    ctrl.play(1, 1)
    assert holder["skipped"]
    assert typed_units(batches) == [ord("a"), ord("b"), ord("c")]
    assert clip.reads == 1


def test_delayed_start_plays_when_nothing_happened():
    ctrl, clip, batches = make_controller("ab")
    ctrl.play(1, 1, since_generation=ctrl.playback_generation)
    assert len(batches) == 2
    assert not ctrl.is_playing


def test_countdown_slot_second_begin_cancels_first():
    slot = CountdownSlot()
    first = slot.begin()
    assert first is not None and slot.pending
    assert slot.begin() is None
    assert first.is_set()
    assert not slot.pending
    second = slot.begin()
    assert second is not None and not second.is_set()


def test_countdown_slot_finish_and_cancel():
    slot = CountdownSlot()
    old = slot.begin()
    slot.finish(old)
    assert not slot.pending
    assert slot.cancel() is False
    current = slot.begin()
    slot.finish(old)  # чужое событие не снимает текущий отсчёт
    assert slot.pending
    assert slot.cancel() is True
    assert current.is_set()
