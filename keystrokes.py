"""
Синтез нажатий: один UTF-16 код-юнит -> события клавиатуры для SendInput.

Перевод строки отправляется настоящей клавишей Enter (VK_RETURN): часть
приложений не принимает Unicode-событие как перенос. Остальные юниты идут
через KEYEVENTF_UNICODE, всегда парой down + up (без явного up некоторые
окна дублировали символы).
"""

from collections.abc import Callable, Sequence
from typing import NamedTuple

INPUT_KEYBOARD = 1
KEYEVENTF_KEYUP = 0x0002
KEYEVENTF_UNICODE = 0x0004

VK_RETURN = 0x0D
NEWLINE = 0x0A


class KeyEvent(NamedTuple):
    """Поля KEYBDINPUT, которые нам нужны."""

    vk: int
    scan: int
    flags: int

    @property
    def is_key_up(self) -> bool:
        return bool(self.flags & KEYEVENTF_KEYUP)


def events_for_unit(unit: int) -> tuple[KeyEvent, ...]:
    """Вернуть события для одного код-юнита (без побочных эффектов)."""
    if unit == NEWLINE:
        return (
            KeyEvent(VK_RETURN, 0, 0),
            KeyEvent(VK_RETURN, 0, KEYEVENTF_KEYUP),
        )
    return (
        KeyEvent(0, unit, KEYEVENTF_UNICODE),
        KeyEvent(0, unit, KEYEVENTF_UNICODE | KEYEVENTF_KEYUP),
    )


class KeystrokeSynthesizer:
    """
    Отправляет события одного юнита через sender (в Windows — winapi.send_key_events).

    emit() не спит и ничего не возвращает: отправка best-effort, о сбоях
    sender пишет в лог сам.
    """

    def __init__(self, sender: Callable[[Sequence[KeyEvent]], object]):
        self._sender = sender

    def emit(self, unit: int) -> None:
        self._sender(events_for_unit(unit))
