"""
WinAPI-слой для Paster.

Содержит:
- ctypes-структуры и SendInput (отправка событий клавиатуры)
- низкоуровневый доступ к буферу обмена (OpenClipboard / GlobalLock / ...)
- чтение активного окна (для логов)
- проверку нажатых клавиш и MessageBox
- захват своей комбинации через низкоуровневый хук клавиатуры
"""

import ctypes
import threading
import time
from collections.abc import Sequence
from ctypes import wintypes

import psutil
import win32api
import win32con

from hotkey_config import CAPTURE_MODIFIER_VKS, VK_ESCAPE
from keystrokes import INPUT_KEYBOARD, KeyEvent
from logging_setup import logger

# ---------------- ctypes helpers ----------------
user32 = ctypes.WinDLL("user32", use_last_error=True)
kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)

ULONG_PTR = wintypes.WPARAM  # alias для совместимости


# ---------------- SendInput structures ----------------
class KEYBDINPUT(ctypes.Structure):
    _fields_ = [
        ("wVk", wintypes.WORD),
        ("wScan", wintypes.WORD),
        ("dwFlags", wintypes.DWORD),
        ("time", wintypes.DWORD),
        ("dwExtraInfo", ULONG_PTR),
    ]


class InputUnion(ctypes.Union):
    _fields_ = [("ki", KEYBDINPUT), ("padding", wintypes.ULONG * 8)]


class INPUT(ctypes.Structure):
    _anonymous_ = ("union",)
    _fields_ = [("type", wintypes.DWORD), ("union", InputUnion)]


SendInput = user32.SendInput
SendInput.argtypes = (wintypes.UINT, ctypes.POINTER(INPUT), ctypes.c_int)
SendInput.restype = wintypes.UINT

OpenClipboard = user32.OpenClipboard
OpenClipboard.argtypes = (wintypes.HWND,)
OpenClipboard.restype = wintypes.BOOL

CloseClipboard = user32.CloseClipboard
CloseClipboard.argtypes = ()
CloseClipboard.restype = wintypes.BOOL

GetClipboardData = user32.GetClipboardData
GetClipboardData.argtypes = (wintypes.UINT,)
GetClipboardData.restype = wintypes.HANDLE

GlobalLock = kernel32.GlobalLock
GlobalLock.argtypes = (wintypes.HGLOBAL,)
GlobalLock.restype = wintypes.LPVOID

GlobalUnlock = kernel32.GlobalUnlock
GlobalUnlock.argtypes = (wintypes.HGLOBAL,)
GlobalUnlock.restype = wintypes.BOOL

GetAsyncKeyState = user32.GetAsyncKeyState
GetAsyncKeyState.argtypes = (ctypes.c_int,)
GetAsyncKeyState.restype = ctypes.c_short

NO_ERROR = 0


# ---------------- Отправка нажатий ----------------
def send_key_events(events: Sequence[KeyEvent]) -> int:
    """
    Отправить пакет событий одним вызовом SendInput.
    Вызов best-effort: недоотправку только пишем в лог.
    """
    n = len(events)
    if n == 0:
        return 0
    arr = (INPUT * n)(*(
        INPUT(INPUT_KEYBOARD, InputUnion(ki=KEYBDINPUT(e.vk, e.scan, e.flags, 0, 0)))
        for e in events
    ))
    sent = SendInput(n, arr, ctypes.sizeof(INPUT))
    if sent != n:
        logger.warning("send_key_events: SendInput sent %d of %d events (err=%d)", sent, n, ctypes.get_last_error())
    return sent


# ---------------- Буфер обмена ----------------
class Win32ClipboardApi:
    """Тонкая обёртка над функциями буфера обмена для clipboard.ClipboardSource."""

    def open(self) -> bool:
        ok = bool(OpenClipboard(None))
        if not ok:
            logger.debug("clipboard: OpenClipboard failed (err=%d)", ctypes.get_last_error())
        return ok

    def get_data(self, fmt: int):
        return GetClipboardData(fmt)

    def lock(self, handle):
        ptr = GlobalLock(handle)
        if not ptr:
            return None
        # WCHAR как беззнаковые 16-битные юниты: суррогаты идут по одному
        return ctypes.cast(ptr, ctypes.POINTER(ctypes.c_uint16))

    def unlock(self, handle) -> bool:
        # GlobalUnlock возвращает 0 и при последнем снятии блокировки — смотрим на код ошибки
        ctypes.set_last_error(NO_ERROR)
        if GlobalUnlock(handle):
            return True
        return ctypes.get_last_error() == NO_ERROR

    def close(self) -> bool:
        return bool(CloseClipboard())


# ---------------- Active window info ----------------
def get_active_window_info() -> tuple[str, int, str | None]:
    """
    Вернуть (title, pid, proc_name) активного окна; при ошибке вернуть заглушки.
    """
    try:
        hwnd = user32.GetForegroundWindow()
    except Exception:  # noqa
        return "<unknown>", 0, None

    try:
        length = user32.GetWindowTextLengthW(hwnd)
        buff = ctypes.create_unicode_buffer(length + 1)
        user32.GetWindowTextW(hwnd, buff, length + 1)
        title = buff.value
    except Exception:  # noqa
        title = "<unknown>"

    pid = 0
    proc_name: str | None = None
    try:
        pid_c = ctypes.c_ulong()
        user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid_c))
        pid = int(pid_c.value)
        proc_name = psutil.Process(pid).name()
    except (psutil.Error, OSError, ValueError):
        proc_name = None
    return title, pid, proc_name


# ---------------- Клавиши / диалоги ----------------
def is_key_down(vk: int) -> bool:
    return bool(GetAsyncKeyState(vk) & 0x8000)


def show_message(text: str, title: str) -> None:
    """MessageBox без краха при ошибке."""
    try:
        win32api.MessageBox(0, text, title, win32con.MB_OK | win32con.MB_ICONWARNING)
    except Exception:  # noqa
        logger.debug("MessageBox not available for: %s", text)


def ask_yes_no(text: str, title: str) -> bool:
    try:
        res = win32api.MessageBox(0, text, title, win32con.MB_YESNO | win32con.MB_ICONWARNING)
    except Exception:  # noqa
        logger.debug("MessageBox not available for: %s", text)
        return False
    return res == win32con.IDYES


# ---------------- Захват комбинации (WH_KEYBOARD_LL) ----------------
WH_KEYBOARD_LL = 13
WM_KEYDOWN = 0x0100
WM_SYSKEYDOWN = 0x0104
PM_REMOVE = 0x0001

LRESULT = ctypes.c_longlong if ctypes.sizeof(ctypes.c_void_p) == 8 else ctypes.c_long
HOOKPROC = ctypes.WINFUNCTYPE(LRESULT, ctypes.c_int, wintypes.WPARAM, wintypes.LPARAM)


class KBDLLHOOKSTRUCT(ctypes.Structure):
    _fields_ = [
        ("vkCode", wintypes.DWORD),
        ("scanCode", wintypes.DWORD),
        ("flags", wintypes.DWORD),
        ("time", wintypes.DWORD),
        ("dwExtraInfo", ULONG_PTR),
    ]


user32.SetWindowsHookExW.argtypes = (ctypes.c_int, HOOKPROC, wintypes.HINSTANCE, wintypes.DWORD)
user32.SetWindowsHookExW.restype = wintypes.HHOOK
user32.UnhookWindowsHookEx.argtypes = (wintypes.HHOOK,)
user32.UnhookWindowsHookEx.restype = wintypes.BOOL
user32.CallNextHookEx.argtypes = (wintypes.HHOOK, ctypes.c_int, wintypes.WPARAM, wintypes.LPARAM)
user32.CallNextHookEx.restype = LRESULT
user32.PeekMessageW.argtypes = (ctypes.POINTER(wintypes.MSG), wintypes.HWND, wintypes.UINT, wintypes.UINT, wintypes.UINT)
user32.PeekMessageW.restype = wintypes.BOOL
kernel32.GetModuleHandleW.argtypes = (wintypes.LPCWSTR,)
kernel32.GetModuleHandleW.restype = wintypes.HMODULE


def _held_modifier_vks() -> set[int]:
    """Модификаторы, зажатые прямо сейчас (с учётом стороны)."""
    return {vk for vk in CAPTURE_MODIFIER_VKS if is_key_down(vk)}


def capture_key_combo(timeout: float | None = 15.0) -> tuple[set[int], int] | None:
    """
    Заблокированно дождаться нажатия комбинации через WH_KEYBOARD_LL.

    Возвращает (зажатые модификаторы, vk основной клавиши) или None
    (Esc, таймаут или ошибка установки хука). Пойманное нажатие дальше
    не передаётся, чтобы не сработала старая комбинация.
    Вызывать из отдельного потока: внутри крутится цикл сообщений.
    """
    captured: list[tuple[set[int], int]] = []
    cancelled = threading.Event()
    hook_handle = None

    def _proc(n_code: int, w_param, l_param):
        try:
            if n_code == 0 and w_param in (WM_KEYDOWN, WM_SYSKEYDOWN) and not (captured or cancelled.is_set()):
                vk = int(ctypes.cast(l_param, ctypes.POINTER(KBDLLHOOKSTRUCT)).contents.vkCode)
                if vk == VK_ESCAPE:
                    cancelled.set()
                    return 1
                if vk not in CAPTURE_MODIFIER_VKS:
                    captured.append((_held_modifier_vks(), vk))
                    return 1
        except Exception:  # noqa
            logger.exception("capture_key_combo: hook proc exception")
        return user32.CallNextHookEx(hook_handle, n_code, w_param, l_param)

    # ссылка держит callback живым, пока стоит хук
    hook_proc = HOOKPROC(_proc)
    hook_handle = user32.SetWindowsHookExW(WH_KEYBOARD_LL, hook_proc, kernel32.GetModuleHandleW(None), 0)
    if not hook_handle:
        logger.error("capture_key_combo: SetWindowsHookExW failed (err=%d)", ctypes.get_last_error())
        return None
    logger.debug("capture_key_combo: хук установлен")

    deadline = None if timeout is None else time.monotonic() + timeout
    msg = wintypes.MSG()
    try:
        while not (captured or cancelled.is_set()):
            if deadline is not None and time.monotonic() > deadline:
                logger.info("capture_key_combo: время ожидания истекло")
                return None
            # хук вызывается только пока поток обрабатывает сообщения
            while user32.PeekMessageW(ctypes.byref(msg), None, 0, 0, PM_REMOVE):
                user32.TranslateMessage(ctypes.byref(msg))
                user32.DispatchMessageW(ctypes.byref(msg))
            time.sleep(0.01)
    finally:
        user32.UnhookWindowsHookEx(hook_handle)
        logger.debug("capture_key_combo: хук снят")
    if cancelled.is_set():
        logger.info("capture_key_combo: отменено (Esc)")
        return None
    return captured[0]
