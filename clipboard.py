"""
Чтение текста из буфера обмена в виде UTF-16 код-юнитов.

ClipboardSource работает поверх низкоуровневого API (в Windows —
winapi.Win32ClipboardApi): OpenClipboard -> GetClipboardData(CF_UNICODETEXT)
-> GlobalLock -> копирование до нулевого юнита -> GlobalUnlock -> CloseClipboard.
Буфер закрывается на любом пути выхода, '\r' отбрасывается.

PyperclipClipboardSource — альтернативный бэкенд (clipboard_backend="pyperclip"):
pyperclip сам повторяет OpenClipboard, пока буфер занят другим процессом,
но различает меньше ошибок.
"""

from collections.abc import Iterable
from typing import Protocol

import pyperclip

from logging_setup import logger
from errors import (
    ClipboardCloseFailed,
    ClipboardDataUnavailable,
    ClipboardOpenFailed,
    ClipboardUnlockFailed,
)

CF_UNICODETEXT = 13
CARRIAGE_RETURN = 0x0D


class ClipboardApi(Protocol):
    def open(self) -> bool: ...

    def get_data(self, fmt: int) -> object | None: ...

    def lock(self, handle: object): ...

    def unlock(self, handle: object) -> bool: ...

    def close(self) -> bool: ...


def strip_units(units: Iterable[int]) -> list[int]:
    """Скопировать юниты до первого нуля, выбросив все '\r'."""
    result: list[int] = []
    for unit in units:
        if unit == 0:
            break
        if unit == CARRIAGE_RETURN:
            continue
        result.append(unit)
    return result


def _iter_units(data) -> Iterable[int]:
    # data — указатель на WCHAR (или последовательность в тестах); длину не знаем, идём до нуля
    i = 0
    while True:
        yield int(data[i])
        i += 1


class ClipboardSource:
    def __init__(self, api: ClipboardApi):
        self._api = api

    def read(self) -> list[int]:
        api = self._api
        if not api.open():
            raise ClipboardOpenFailed()
        try:
            handle = api.get_data(CF_UNICODETEXT)
            if not handle:
                raise ClipboardDataUnavailable()
            data = api.lock(handle)
            if not data:
                raise ClipboardDataUnavailable()
            try:
                units = strip_units(_iter_units(data))
            finally:
                unlocked = api.unlock(handle)
            if not unlocked:
                raise ClipboardUnlockFailed()
        except BaseException:
            # основная ошибка важнее ошибки закрытия; закрыть всё равно нужно
            if not api.close():
                logger.warning("clipboard: CloseClipboard failed after read error")
            raise
        if not api.close():
            raise ClipboardCloseFailed()
        logger.debug("clipboard: read %d units", len(units))
        return units


class PyperclipClipboardSource:
    """Тот же контракт read(), но через pyperclip.paste()."""

    def read(self) -> list[int]:
        try:
            text = pyperclip.paste()
        except pyperclip.PyperclipException as e:
            logger.debug("clipboard: pyperclip.paste failed: %s", e)
            raise ClipboardOpenFailed() from e
        if not text:
            raise ClipboardDataUnavailable()
        raw = text.encode("utf-16-le", "surrogatepass")
        units = [int.from_bytes(raw[i:i + 2], "little") for i in range(0, len(raw), 2)]
        result = strip_units(units)
        logger.debug("clipboard: read %d units via pyperclip", len(result))
        return result


def create_clipboard_source(backend: str = "winapi"):
    """Создать источник по имени бэкенда из конфига."""
    if backend == "pyperclip":
        return PyperclipClipboardSource()
    # WinAPI импортируем лениво: модуль грузит ctypes.windll
    from winapi import Win32ClipboardApi

    return ClipboardSource(Win32ClipboardApi())
