"""
Трэй, иконка и меню для Paster.

Содержит:
- подготовка изображения для иконки (включено / пауза)
- колбэки меню: вставка, пауза, пресеты комбинации и задержек, своя комбинация, логирование, автозапуск
- запуск pystray Icon.run (tray_worker)

Все колбэки получают объект приложения (app.PasterApp) через замыкание.
"""

import os
import threading

from PIL import Image, ImageDraw
from pystray import Icon, Menu, MenuItem

from config import (
    APP_NAME,
    ICON_OFF,
    ICON_ON,
    read_autorun_flag,
    read_file_logging_flag,
    read_playback_settings,
    sync_autorun,
    write_autorun_flag,
    write_file_logging_flag,
    write_playback_settings,
)
from errors import InvalidConfig, PasteError, TriggerRebindFailed
from hotkey_config import DEFAULT_HOTKEY, HotkeyConfig, config_from_capture
from logging_setup import logger
from winapi import capture_key_combo

HOTKEY_PRESETS: list[tuple[str, HotkeyConfig]] = [
    ("Alt+Ctrl+V (по умолчанию)", DEFAULT_HOTKEY),
    ("Ctrl+Shift+V", HotkeyConfig(alt=False, ctrl=True, shift=True, key="V")),
    ("Alt+Левый Ctrl+V", DEFAULT_HOTKEY.with_ctrl_variant("left")),
    ("Alt+Правый Ctrl+V", DEFAULT_HOTKEY.with_ctrl_variant("right")),
    ("Перехватывать Ctrl+V", HotkeyConfig(intercept_system_combo=True)),
]

CAPTURE_TIMEOUT_SECONDS = 15.0

# (base_delay_ms, jitter_span_ms)
DELAY_PRESETS: list[tuple[str, tuple[int, int]]] = [
    ("Быстро (10 ± 5 мс)", (10, 5)),
    ("Обычно (50 ± 30 мс)", (50, 30)),
    ("Медленно (120 ± 80 мс)", (120, 80)),
]


# ---------------- Подготовка иконки ----------------
def prepare_tray_icon_image(paused: bool = False):
    """
    Подготовить PIL.Image для иконки в трее (использовать ICON_ON/ICON_OFF если есть),
    иначе нарисовать простую заглушку.
    """
    path = ICON_OFF if paused else ICON_ON
    if os.path.isfile(path):
        try:
            return Image.open(path)
        except OSError:
            logger.exception("Tray icon: cannot open %s", path)
    size = (64, 64)
    bg = (220, 53, 69, 255) if paused else (76, 175, 80, 255)
    img = Image.new("RGBA", size, bg)
    d = ImageDraw.Draw(img)
    d.rectangle((8, 16, 56, 48), outline=(255, 255, 255), width=2)
    d.text((18, 24), "P", fill=(255, 255, 255))
    return img


# ---------------- Меню: колбэки ----------------
def _make_paste_item(app):
    def _fn(_icon, _item):
        app.start_paste(from_menu=True)

    return _fn


def _make_pause_toggle(app):
    def _fn(_icon, _item):
        try:
            paused = app.controller.toggle_pause()
            if _icon is not None:
                _icon.icon = prepare_tray_icon_image(paused)
        except Exception:  # noqa
            logger.exception("toggle_pause: exception")

    return _fn


def _apply_hotkey(app, cfg: HotkeyConfig) -> None:
    """Передать новую комбинацию контроллеру и сообщить результат."""
    try:
        description = app.controller.update_config(cfg)
        app.notify(f"Комбинация запуска: {description}")
    except TriggerRebindFailed as e:
        logger.warning("Tray: %s", e)
        app.offer_restart(str(e))
    except PasteError as e:
        logger.warning("Tray: комбинация отклонена: %s", e)
        app.notify(str(e))
    except Exception:  # noqa
        logger.exception("hotkey setter exception for %s", cfg)


def _make_hotkey_setter(app, cfg: HotkeyConfig):
    def _fn(_icon, _item):
        _apply_hotkey(app, cfg)

    return _fn


def _capture_and_apply(app) -> None:
    """Дождаться нажатия новой комбинации и применить её (запускать в отдельном потоке)."""
    app.notify("Нажмите новую комбинацию запуска (Esc — отмена)")
    captured = capture_key_combo(timeout=CAPTURE_TIMEOUT_SECONDS)
    if captured is None:
        logger.info("Capture: комбинация не получена")
        app.notify("Комбинация не изменена")
        return
    try:
        cfg = config_from_capture(*captured)
    except InvalidConfig as e:
        logger.info("Capture: %s", e)
        app.notify(str(e))
        return
    _apply_hotkey(app, cfg)


def _make_custom_hotkey_capture(app):
    def _fn(_icon, _item):
        threading.Thread(target=_capture_and_apply, args=(app,), name="HotkeyCapture", daemon=True).start()

    return _fn


def _is_custom_hotkey(app) -> bool:
    current = app.controller.get_config()
    return all(current != cfg for _, cfg in HOTKEY_PRESETS)


def _paste_item_title(app) -> str:
    if app.controller.is_playing:
        return "⏹ Остановить вставку"
    if app.countdown.pending:
        return "✖ Отменить отсчёт"
    return "⌨ Вставить из буфера"


def _make_delay_setter(base_delay_ms: int, jitter_span_ms: int):
    def _fn(_icon, _item):
        if not write_playback_settings(base_delay_ms, jitter_span_ms):
            logger.warning("Tray: не удалось сохранить задержки")

    return _fn


def toggle_file_logging(_icon, _item) -> None:
    """Переключить логирование в файл (чтение/запись в конфиг)."""
    new = not read_file_logging_flag()
    if write_file_logging_flag(new):
        logger.info("Tray: file_logging toggled -> %s", new)
    else:
        logger.warning("Tray: file_logging toggle attempted but write failed")


def toggle_autorun(_icon, _item) -> None:
    """Переключить автозапуск: создать/удалить ярлык и записать в конфиг."""
    new = not read_autorun_flag()
    if write_autorun_flag(new):
        logger.info("Tray: autorun toggled -> %s", new)
        sync_autorun(new)
    else:
        logger.warning("Tray: autorun toggle attempted but write failed")


def _make_exit(app):
    def _fn(_icon, _item):
        logger.info("Выход запрошен (через трей)")
        app.exit_event.set()
        if _icon is not None:
            _icon.stop()

    return _fn


# ---------------- Меню ----------------
def build_menu(app) -> Menu:
    hotkey_items = [
        MenuItem(
            title,
            _make_hotkey_setter(app, cfg),
            checked=lambda item, cfg=cfg: app.controller.get_config() == cfg,
            radio=True,
        )
        for title, cfg in HOTKEY_PRESETS
    ]
    hotkey_items += [
        Menu.SEPARATOR,
        MenuItem(
            "Ввести свою комбинацию...",
            _make_custom_hotkey_capture(app),
            checked=lambda item: _is_custom_hotkey(app),
            radio=True,
        ),
    ]
    delay_items = [
        MenuItem(
            title,
            _make_delay_setter(*params),
            checked=lambda item, params=params: read_playback_settings() == params,
            radio=True,
        )
        for title, params in DELAY_PRESETS
    ]
    settings_menu = Menu(
        MenuItem(lambda item: f"Запуск: {app.controller.get_config().describe()}", None, enabled=False),
        Menu.SEPARATOR,
        MenuItem("Комбинация запуска", Menu(*hotkey_items)),
        MenuItem("Скорость печати", Menu(*delay_items)),
        Menu.SEPARATOR,
        MenuItem("Логирование в файл", toggle_file_logging, checked=lambda item: read_file_logging_flag()),
        MenuItem("Автозапуск при старте Windows", toggle_autorun, checked=lambda item: read_autorun_flag()),
    )
    return Menu(
        MenuItem(lambda item: _paste_item_title(app), _make_paste_item(app), default=True),
        MenuItem(
            lambda item: "▶ Продолжить" if app.controller.is_paused else "⏸ Пауза",
            _make_pause_toggle(app),
        ),
        MenuItem("Настройки", settings_menu),
        MenuItem("Выход", _make_exit(app)),
    )


# ---------------- Tray worker ----------------
def tray_worker(app) -> None:
    """
    Запустить pystray icon + меню.
    Предназначен для запуска как daemon-поток.
    """
    icon = Icon(APP_NAME, prepare_tray_icon_image(app.controller.is_paused), APP_NAME, menu=build_menu(app))
    app.icon = icon
    try:
        logger.debug("tray_worker: запуск иконки")
        icon.run()
    except Exception:  # noqa
        logger.exception("tray_worker: exception while running icon")
    finally:
        app.icon = None
