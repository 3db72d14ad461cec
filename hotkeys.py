"""
Глобальная комбинация запуска (RegisterHotKey) и Windows message loop для неё.

RegisterHotKey привязывает комбинацию к потоку, поэтому регистрация и
перерегистрация выполняются только внутри HotkeyThread: остальные потоки
посылают ему MSG_REBIND и ждут результат.
"""

import ctypes
import queue
import threading
from collections.abc import Callable
from ctypes import wintypes

import win32con

from errors import InvalidConfig
from hotkey_config import registration_for_accelerator
from logging_setup import logger
from winapi import get_active_window_info, is_key_down, kernel32, user32

HOTKEY_ID_PASTE = 1

WM_USER = 0x0400
MSG_REBIND = WM_USER + 1
PM_NOREMOVE = 0x0000

REBIND_TIMEOUT_SEC = 2.0


class HotkeyRegistrationError(Exception):
    """RegisterHotKey не удался (комбинация занята другим приложением и т.п.)."""


class _RebindRequest:
    def __init__(self, accelerator: str):
        self.accelerator = accelerator
        self.error: str | None = None
        self.done = threading.Event()


class HotkeyThread:
    """
    Поток с message loop: регистрирует комбинацию и вызывает on_trigger на WM_HOTKEY.

    on_trigger вызывается в этом потоке и не должен блокировать его надолго.
    """

    def __init__(self, accelerator: str, on_trigger: Callable[[], None]):
        self._accelerator = accelerator
        self._on_trigger = on_trigger
        self._thread: threading.Thread | None = None
        self._thread_id = 0
        self._ready = threading.Event()
        self._requests: queue.Queue[_RebindRequest] = queue.Queue()
        self._side_vk: int | None = None
        self.registered: str | None = None
        self.initial_error: str | None = "поток горячих клавиш не запущен"

    # ---------------- Публичный интерфейс ----------------
    def start(self, timeout: float = REBIND_TIMEOUT_SEC) -> bool:
        """Запустить поток; True, если стартовая комбинация зарегистрирована."""
        self._thread = threading.Thread(target=self._loop, name="WinHotkeyThread", daemon=True)
        self._thread.start()
        if not self._ready.wait(timeout):
            logger.error("hotkeys: поток не запустился за %.1f c", timeout)
            return False
        return self.initial_error is None

    def rebind(self, accelerator: str, timeout: float = REBIND_TIMEOUT_SEC) -> None:
        """Перерегистрировать комбинацию; при неудаче бросить HotkeyRegistrationError."""
        if not self._ready.is_set() or self._thread_id == 0:
            raise HotkeyRegistrationError("поток горячих клавиш не запущен")
        request = _RebindRequest(accelerator)
        self._requests.put(request)
        if not user32.PostThreadMessageW(self._thread_id, MSG_REBIND, 0, 0):
            err = ctypes.get_last_error()
            logger.error("hotkeys: PostThreadMessageW failed (err=%d)", err)
            raise HotkeyRegistrationError(f"PostThreadMessageW, код ошибки {err}")
        if not request.done.wait(timeout):
            raise HotkeyRegistrationError("поток горячих клавиш не ответил")
        if request.error:
            raise HotkeyRegistrationError(request.error)

    def stop(self) -> None:
        if self._thread_id:
            user32.PostThreadMessageW(self._thread_id, win32con.WM_QUIT, 0, 0)
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None

    # ---------------- Внутри потока ----------------
    def _register(self, accelerator: str) -> str | None:
        """Снять старую комбинацию и зарегистрировать новую. Вернуть текст ошибки или None."""
        user32.UnregisterHotKey(None, HOTKEY_ID_PASTE)
        self.registered = None
        self._side_vk = None
        try:
            mask, vk, side_vk = registration_for_accelerator(accelerator)
        except InvalidConfig as e:
            logger.error("hotkeys: некорректный акселератор %r: %s", accelerator, e)
            return str(e)
        if not user32.RegisterHotKey(None, HOTKEY_ID_PASTE, mask, vk):
            err = ctypes.get_last_error()
            logger.error("hotkeys: failed to register %s (err=%d) mask=0x%X vk=0x%X", accelerator, err, mask, vk)
            return f"RegisterHotKey, код ошибки {err}"
        self.registered = accelerator
        self._side_vk = side_vk
        logger.debug("hotkeys: registered %s (mask=0x%X vk=0x%X side=%s)", accelerator, mask, vk, side_vk)
        return None

    def _handle_rebind_requests(self) -> None:
        while True:
            try:
                request = self._requests.get_nowait()
            except queue.Empty:
                return
            request.error = self._register(request.accelerator)
            request.done.set()

    def _handle_hotkey(self) -> None:
        if self._side_vk is not None and not is_key_down(self._side_vk):
            logger.debug("hotkeys: нужная сторона Ctrl не нажата — игнорирую")
            return
        title, pid, proc_name = get_active_window_info()
        logger.debug("hotkeys: trigger, active window: %r pid=%s proc=%r", title, pid, proc_name)
        try:
            self._on_trigger()
        except Exception:  # noqa
            logger.exception("hotkeys: on_trigger raised")

    def _loop(self) -> None:
        msg = wintypes.MSG()
        try:
            self._thread_id = kernel32.GetCurrentThreadId()
            # создать очередь сообщений до того, как другие потоки начнут в неё писать
            user32.PeekMessageW(ctypes.byref(msg), None, WM_USER, WM_USER, PM_NOREMOVE)
            self.initial_error = self._register(self._accelerator)
            self._ready.set()

            while True:
                has = user32.GetMessageW(ctypes.byref(msg), None, 0, 0)
                if has == 0:
                    logger.debug("hotkeys: GetMessage returned 0 -> quitting loop")
                    break
                if has == -1:
                    logger.error("hotkeys: GetMessage error (err=%d)", ctypes.get_last_error())
                    break
                if msg.message == win32con.WM_HOTKEY and int(msg.wParam) == HOTKEY_ID_PASTE:
                    self._handle_hotkey()
                elif msg.message == MSG_REBIND:
                    self._handle_rebind_requests()
                else:
                    user32.TranslateMessage(ctypes.byref(msg))
                    user32.DispatchMessageW(ctypes.byref(msg))
        except Exception:  # noqa
            logger.exception("hotkeys: fatal exception in message loop")
        finally:
            user32.UnregisterHotKey(None, HOTKEY_ID_PASTE)
            self._ready.set()
            # не оставлять ждущих rebind() без ответа
            while not self._requests.empty():
                request = self._requests.get_nowait()
                request.error = "поток горячих клавиш остановлен"
                request.done.set()
            self._thread_id = 0
            logger.info("hotkeys: message loop exiting")
