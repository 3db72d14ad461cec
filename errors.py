"""
Исключения Paster.

Все ошибки ядра наследуются от PasteError и несут сообщение для пользователя
(его показывает трей). Отмена воспроизведения повторным нажатием — не ошибка.
"""


class PasteError(Exception):
    """Базовая ошибка Paster."""

    message = "Ошибка вставки"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


class Suspended(PasteError):
    message = "Функция приостановлена"


# ---------------- Буфер обмена ----------------
class ClipboardError(PasteError):
    """Чтение буфера обмена не удалось (прерывает только текущую вставку)."""


class ClipboardOpenFailed(ClipboardError):
    message = "Не удалось открыть буфер обмена"


class ClipboardDataUnavailable(ClipboardError):
    message = "В буфере обмена нет текста"


class ClipboardUnlockFailed(ClipboardError):
    message = "Не удалось снять блокировку данных буфера обмена"


class ClipboardCloseFailed(ClipboardError):
    message = "Не удалось закрыть буфер обмена"


# ---------------- Конфигурация ----------------
class InvalidConfig(PasteError):
    message = "Комбинация должна содержать хотя бы один модификатор"


class InvalidPlaybackParams(PasteError):
    message = "Некорректные параметры задержки"


class TriggerRebindFailed(PasteError):
    """
    Конфигурация уже сохранена, но глобальная комбинация не зарегистрирована.
    Вызывающий должен предложить перезапуск или повторную попытку.
    """

    restart_required = True

    def __init__(self, description: str, accelerator: str, reason: str = ""):
        self.description = description
        self.accelerator = accelerator
        self.reason = reason
        text = f"Комбинация {description} сохранена, но не зарегистрирована"
        if reason:
            text += f" ({reason})"
        super().__init__(text + ". Требуется перезапуск.")
