"""
Конфигурация и постоянное хранилище Paster.

Содержит:
- пути и константы (APP_NAME, BASE_DIR, CONFIG_FILE, ICON_* и т.д.)
- чтение/запись JSON-конфига
- флаг file_logging (с кэшем для фильтра лога), autorun и ярлык в автозагрузке
- чтение/запись комбинации запуска (HotkeyConfig)
- параметры воспроизведения (базовая задержка, разброс, обратный отсчёт)
"""

import json
import logging
import os
import re
import sys

from errors import InvalidConfig
from hotkey_config import DEFAULT_HOTKEY, HotkeyConfig

APP_NAME = "Paster"
MUTEX_NAME = r"Global\PasterMutex"
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
LOG_FILE = os.path.join(BASE_DIR, "paster.log")
ICON_ON = os.path.join(BASE_DIR, "icon_on.ico")
ICON_OFF = os.path.join(BASE_DIR, "icon_off.ico")
CONFIG_FILE = os.path.join(BASE_DIR, "paster.json")

DEFAULT_BASE_DELAY_MS = 10
DEFAULT_JITTER_SPAN_MS = 5
DEFAULT_COUNTDOWN_SECONDS = 3
DEFAULT_CLIPBOARD_BACKEND = "winapi"
CLIPBOARD_BACKENDS = ("winapi", "pyperclip")

# целое 1..999999 без ведущих нулей
_DELAY_RE = re.compile(r"^[1-9]\d{0,5}$")

# handlers настраивает logging_setup.py
logger = logging.getLogger(APP_NAME)


# ---------------- Работа с JSON конфигом ----------------
def read_json_config() -> dict:
    """Прочитать JSON-конфиг и вернуть словарь (или пустой словарь при ошибке/отсутствии)."""
    try:
        if not os.path.isfile(CONFIG_FILE):
            return {}
        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            j = json.load(f)
        return j if isinstance(j, dict) else {}
    except Exception:
        logger.debug("read_json_config: не удалось прочитать конфиг, возвращаю {}")
        return {}


def write_json_config(j: dict) -> bool:
    """Атомарная запись JSON: записать в tmp-файл, затем заменить основной файл."""
    try:
        tmp = CONFIG_FILE + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(j, f, ensure_ascii=False, indent=2)
        os.replace(tmp, CONFIG_FILE)
        return True
    except Exception:
        logger.exception("config: write_json_config failed")
        return False


def _update_json_config(**values) -> bool:
    """Прочитать конфиг, обновить ключи и записать обратно."""
    j = read_json_config()
    j.update(values)
    return write_json_config(j)


# ---------------- file_logging ----------------
# Кэш флага для фильтра файлового лога (см. logging_setup): None — ещё не прочитан.
_file_logging_cached: bool | None = None


def read_file_logging_flag() -> bool:
    """Прочитать флаг с диска и обновить кэш."""
    global _file_logging_cached
    flag = read_json_config().get("file_logging") is True
    _file_logging_cached = flag
    return flag


def file_logging_enabled() -> bool:
    """Флаг из кэша; с диска читается только первый раз."""
    global _file_logging_cached
    if _file_logging_cached is None:
        # пока идёт чтение, записи самого чтения в файл не попадают
        _file_logging_cached = False
        read_file_logging_flag()
    return _file_logging_cached


def write_file_logging_flag(val: bool) -> bool:
    global _file_logging_cached
    ok = _update_json_config(file_logging=bool(val))
    if ok:
        _file_logging_cached = bool(val)
        logger.info("config: записан file_logging=%s", bool(val))
    return ok


# ---------------- autorun (ярлык в папке «Автозагрузка») ----------------
def startup_shortcut_path() -> str:
    appdata = os.environ.get("APPDATA") or os.path.join(os.path.expanduser("~"), "AppData", "Roaming")
    return os.path.join(appdata, "Microsoft", "Windows", "Start Menu", "Programs", "Startup", f"{APP_NAME}.lnk")


def shortcut_command(executable: str, script: str) -> tuple[str, str]:
    """(TargetPath, Arguments) ярлыка: скрипт запускается интерпретатором, собранный exe — сам по себе."""
    if script.lower().endswith((".py", ".pyw")):
        return executable, f'"{os.path.abspath(script)}"'
    return executable, ""


def _save_startup_shortcut(path: str) -> None:
    import win32com.client  # type: ignore  # pywin32 нужен только здесь

    target, arguments = shortcut_command(sys.executable, sys.argv[0] if sys.argv else "")
    link = win32com.client.Dispatch("WScript.Shell").CreateShortcut(path)
    link.TargetPath = target
    link.Arguments = arguments
    link.WorkingDirectory = BASE_DIR
    link.IconLocation = ICON_ON if os.path.isfile(ICON_ON) else target
    link.Save()


def read_autorun_flag() -> bool:
    return read_json_config().get("autorun") is True


def write_autorun_flag(val: bool) -> bool:
    ok = _update_json_config(autorun=bool(val))
    if ok:
        logger.info("config: записан autorun=%s", bool(val))
    return ok


def sync_autorun(enabled: bool | None = None) -> bool:
    """
    Привести ярлык автозагрузки к флагу autorun (или к enabled, если он передан).
    True — ярлык в нужном состоянии.
    """
    if enabled is None:
        enabled = read_autorun_flag()
    path = startup_shortcut_path()
    try:
        if enabled:
            _save_startup_shortcut(path)
            logger.info("autorun: ярлык создан: %s", path)
        elif os.path.isfile(path):
            os.remove(path)
            logger.info("autorun: ярлык удалён: %s", path)
        return True
    except Exception:
        logger.exception("autorun: не удалось %s ярлык %s", "создать" if enabled else "удалить", path)
        return False


# ---------------- Комбинация запуска ----------------
def read_hotkey_config() -> HotkeyConfig:
    """Прочитать комбинацию из конфига; при отсутствии/повреждении вернуть значение по умолчанию."""
    raw = read_json_config().get("hotkey")
    if raw is None:
        return DEFAULT_HOTKEY
    try:
        return HotkeyConfig.from_dict(raw).validate()
    except InvalidConfig as e:
        logger.warning("config: hotkey в конфиге некорректен (%s), использую %s", e, DEFAULT_HOTKEY.describe())
        return DEFAULT_HOTKEY


def write_hotkey_config(cfg: HotkeyConfig) -> bool:
    ok = _update_json_config(hotkey=cfg.to_dict())
    if ok:
        logger.info("config: записан hotkey=%s", cfg.describe())
    return ok


# ---------------- Параметры воспроизведения ----------------
def is_valid_delay(value) -> bool:
    """Задержка в мс: целое 1..999999."""
    if isinstance(value, bool):
        return False
    return _DELAY_RE.match(str(value)) is not None


def _read_delay(name: str, default: int) -> int:
    value = read_json_config().get(name, default)
    if not is_valid_delay(value):
        logger.debug("config: %s=%r некорректно, использую %d", name, value, default)
        return default
    return int(value)


def read_playback_settings() -> tuple[int, int]:
    """Вернуть (base_delay_ms, jitter_span_ms)."""
    return (
        _read_delay("base_delay_ms", DEFAULT_BASE_DELAY_MS),
        _read_delay("jitter_span_ms", DEFAULT_JITTER_SPAN_MS),
    )


def write_playback_settings(base_delay_ms: int, jitter_span_ms: int) -> bool:
    if not (is_valid_delay(base_delay_ms) and is_valid_delay(jitter_span_ms)):
        logger.warning("config: отклонены задержки base=%r jitter=%r", base_delay_ms, jitter_span_ms)
        return False
    ok = _update_json_config(base_delay_ms=int(base_delay_ms), jitter_span_ms=int(jitter_span_ms))
    if ok:
        logger.info("config: записаны задержки base=%s jitter=%s", base_delay_ms, jitter_span_ms)
    return ok


def read_countdown_seconds() -> int:
    value = read_json_config().get("countdown_seconds", DEFAULT_COUNTDOWN_SECONDS)
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 60:
        return DEFAULT_COUNTDOWN_SECONDS
    return value


def read_clipboard_backend() -> str:
    value = read_json_config().get("clipboard_backend", DEFAULT_CLIPBOARD_BACKEND)
    return value if value in CLIPBOARD_BACKENDS else DEFAULT_CLIPBOARD_BACKEND


# ---------------- Загрузка ----------------
def load_config() -> None:
    """Загрузить конфиг и установить дефолты при их отсутствии."""
    j = read_json_config()
    defaults = {
        "hotkey": DEFAULT_HOTKEY.to_dict(),
        "base_delay_ms": DEFAULT_BASE_DELAY_MS,
        "jitter_span_ms": DEFAULT_JITTER_SPAN_MS,
        "countdown_seconds": DEFAULT_COUNTDOWN_SECONDS,
        "clipboard_backend": DEFAULT_CLIPBOARD_BACKEND,
        "file_logging": False,
        "autorun": False,
    }
    missing = {k: v for k, v in defaults.items() if k not in j}
    if missing:
        j.update(missing)
        write_json_config(j)
        logger.debug("config: добавлены значения по умолчанию: %s", sorted(missing))
