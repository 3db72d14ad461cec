"""
Точка входа приложения Paster.

Оркестрация:
- проверка mutex (один экземпляр)
- загрузка конфигурации и применение autorun
- сборка контроллера вставки (буфер обмена -> SendInput)
- запуск потока глобальной комбинации (RegisterHotKey) и трей-иконки (pystray)
- ожидание завершения через exit_event, перезапуск по запросу
"""

import subprocess
import sys
import threading
import time

import win32api
import win32event

import config
from clipboard import create_clipboard_source
from controller import CountdownSlot, PasteController, PasteState
from errors import PasteError
from hotkeys import HotkeyThread
from keystrokes import KeystrokeSynthesizer
from logging_setup import logger
from tray import tray_worker
from winapi import ask_yes_no, send_key_events, show_message

# Код ошибки, когда mutex уже существует (Windows)
ERROR_ALREADY_EXISTS = 183


def _create_single_instance_mutex():
    """
    Создать глобальный mutex и вернуть handle.
    Если другой экземпляр уже запущен — показать MessageBox и вернуть None.
    """
    try:
        mutex = win32event.CreateMutex(None, False, config.MUTEX_NAME)
    except win32api.error:
        logger.exception("Создание mutex не удалось")
        return None
    if win32api.GetLastError() == ERROR_ALREADY_EXISTS:
        show_message(f"Программа {config.APP_NAME} уже запущена!", config.APP_NAME)
        win32api.CloseHandle(mutex)
        return None
    return mutex


def _release_mutex(mutex_handle) -> None:
    """Освободить mutex (если он есть)."""
    if not mutex_handle:
        return
    try:
        win32api.CloseHandle(mutex_handle)
    except win32api.error:
        logger.exception("Не удалось CloseHandle для mutex_handle")


class PasterApp:
    """Связывает контроллер с хостом: глобальная комбинация, трей, уведомления."""

    def __init__(self):
        self.exit_event = threading.Event()
        self.restart_requested = False
        self.icon = None
        self.countdown = CountdownSlot()
        self.state = PasteState(config.read_hotkey_config())
        self.hotkeys = HotkeyThread(self.state.config.to_accelerator(), self.on_hotkey)
        self.controller = PasteController(
            create_clipboard_source(config.read_clipboard_backend()),
            KeystrokeSynthesizer(send_key_events),
            self.state,
            rebind=self.hotkeys.rebind,
            persist=config.write_hotkey_config,
        )

    # ---------------- Канал запуска ----------------
    def on_hotkey(self) -> None:
        self.start_paste(from_menu=False)

    def start_paste(self, from_menu: bool = False) -> None:
        """
        Запустить вставку в отдельном потоке (hotkey-поток и трей не блокируются).
        Из меню вставка стартует после отсчёта; повторный клик во время отсчёта отменяет его.
        """
        countdown = config.read_countdown_seconds() if from_menu and not self.controller.is_playing else 0
        cancel_event = None
        if countdown:
            cancel_event = self.countdown.begin()
            if cancel_event is None:
                logger.info("paste: отсчёт отменён")
                self.notify("Вставка отменена")
                return
        threading.Thread(
            target=self._paste_worker, args=(countdown, cancel_event), name="PasteWorker", daemon=True
        ).start()

    def _paste_worker(self, countdown: int, cancel_event: threading.Event | None) -> None:
        since_generation = None
        if cancel_event is not None:
            # вставка, начатая во время отсчёта (например, комбинацией), не отменяется им
            since_generation = self.controller.playback_generation
            logger.info("paste: старт через %d c", countdown)
            self.notify(f"Вставка начнётся через {countdown} с — переключитесь в нужное окно")
            cancelled = cancel_event.wait(countdown)
            self.countdown.finish(cancel_event)
            if cancelled or self.exit_event.is_set():
                return
        base_delay_ms, jitter_span_ms = config.read_playback_settings()
        try:
            self.controller.play(base_delay_ms, jitter_span_ms, since_generation=since_generation)
        except PasteError as e:
            logger.info("paste: %s", e)
            self.notify(str(e))
        except Exception:  # noqa
            logger.exception("paste: unexpected exception")

    # ---------------- Уведомления ----------------
    def notify(self, text: str) -> None:
        icon = self.icon
        if icon is None:
            logger.debug("notify (без иконки): %s", text)
            return
        try:
            icon.notify(text, config.APP_NAME)
        except Exception:  # noqa
            logger.debug("notify failed: %s", text)

    def offer_restart(self, text: str) -> None:
        """После неудачной перерегистрации предложить перезапуск."""
        if ask_yes_no(f"{text}\n\nПерезапустить {config.APP_NAME} сейчас?", config.APP_NAME):
            self.restart_requested = True
            self.exit_event.set()
            if self.icon is not None:
                self.icon.stop()


def restart_process() -> None:
    """Запустить новый экземпляр с теми же аргументами."""
    logger.info("%s: перезапуск", config.APP_NAME)
    subprocess.Popen([sys.executable] + sys.argv, close_fds=True)


def main() -> None:
    """Главная функция запуска приложения."""
    logger.info("%s: старт приложения", config.APP_NAME)

    mutex_handle = _create_single_instance_mutex()
    if mutex_handle is None:
        logger.info("%s: обнаружен другой экземпляр -> выход", config.APP_NAME)
        sys.exit(0)

    try:
        config.load_config()
    except Exception:  # noqa
        logger.exception("Ошибка при load_config() — продолжаем попытку запуска")
    try:
        config.sync_autorun()
    except Exception:  # noqa
        logger.exception("sync_autorun failed on startup")

    app = PasterApp()
    if not app.hotkeys.start():
        cfg = app.controller.get_config()
        logger.error("Не удалось зарегистрировать %s: %s", cfg.to_accelerator(), app.hotkeys.initial_error)
        show_message(
            f"Не удалось зарегистрировать комбинацию {cfg.describe()} ({app.hotkeys.initial_error}).\n"
            "Выберите другую в меню трея.",
            config.APP_NAME,
        )
    tray_thread = threading.Thread(target=tray_worker, args=(app,), name="TrayThread", daemon=True)
    tray_thread.start()

    try:
        logger.info("Ожидание события завершения...")
        app.exit_event.wait()
        logger.info("Сигнал выхода получен.")
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt получен, инициирую завершение.")
        app.exit_event.set()
    finally:
        app.countdown.cancel()
        app.controller.cancel()
        if app.icon is not None:
            app.icon.stop()
        app.hotkeys.stop()
        _release_mutex(mutex_handle)
        if app.restart_requested:
            restart_process()
        # небольшая пауза, чтобы потоки успели корректно завершиться
        time.sleep(0.15)
        logger.info("%s: завершение main()", config.APP_NAME)


if __name__ == "__main__":
    main()
