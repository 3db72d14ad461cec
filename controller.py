"""
Контроллер вставки: буфер обмена -> нажатия с «человеческими» паузами.

PasteController — единственная точка входа для хоста (трей, глобальная
комбинация): play(), toggle_pause(), update_config(), get_config().

Состояние:
- PasteState.paused / PasteState.config — под одним общим замком;
- PlaybackFlag — флаг «идёт вставка» со своим коротким замком, чтобы повторный
  play() мог отменить текущую вставку, не дожидаясь общего замка.

Повторный play() во время вставки — это отмена, а не очередь. Пауза не
прерывает уже идущую вставку, она только блокирует следующие.
"""

import random
import threading
from collections.abc import Callable

from errors import InvalidPlaybackParams, PasteError, Suspended, TriggerRebindFailed
from hotkey_config import DEFAULT_HOTKEY, HotkeyConfig
from logging_setup import logger


class PlaybackFlag:
    """
    Флаг «идёт вставка» с атомарным test-and-set.

    Каждый запуск получает номер поколения: отменённый цикл не продолжится,
    даже если флаг успели снова поднять для новой вставки.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._active = False
        self._generation = 0
        self._stopped = threading.Event()
        self._stopped.set()

    def test_and_set(self) -> int | None:
        """
        Если вставка не идёт — поднять флаг и вернуть номер поколения.
        Если идёт — сбросить флаг (отмена) и вернуть None.
        """
        with self._lock:
            if self._active:
                self._active = False
                self._stopped.set()
                return None
            self._active = True
            self._generation += 1
            self._stopped.clear()
            return self._generation

    def set_if_unchanged(self, generation: int) -> int | None:
        """
        Поднять флаг, только если после generation не было ни одной вставки.
        В отличие от test_and_set никогда не отменяет идущую вставку.
        """
        with self._lock:
            if self._active or self._generation != generation:
                return None
            self._active = True
            self._generation += 1
            self._stopped.clear()
            return self._generation

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def clear(self, generation: int | None = None) -> None:
        """Сбросить флаг; с generation — только если он всё ещё принадлежит этому запуску."""
        with self._lock:
            if generation is not None and generation != self._generation:
                return
            self._active = False
            self._stopped.set()

    def is_set(self) -> bool:
        return self._active

    def is_current(self, generation: int) -> bool:
        with self._lock:
            return self._active and self._generation == generation

    def wait_cancelled(self, timeout: float) -> bool:
        """Прерываемая пауза: True, если флаг сброшен раньше таймаута."""
        return self._stopped.wait(timeout)


class CountdownSlot:
    """
    Отсчёт перед вставкой из меню. Одновременно ждёт не больше одного отсчёта:
    повторный клик во время отсчёта отменяет его, а не запускает второй.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._event: threading.Event | None = None

    def begin(self) -> threading.Event | None:
        """Событие отмены нового отсчёта или None, если этот вызов отменил ждущий отсчёт."""
        with self._lock:
            if self._event is not None:
                self._event.set()
                self._event = None
                return None
            self._event = threading.Event()
            return self._event

    def finish(self, event: threading.Event) -> None:
        with self._lock:
            if self._event is event:
                self._event = None

    def cancel(self) -> bool:
        with self._lock:
            event, self._event = self._event, None
        if event is None:
            return False
        event.set()
        return True

    @property
    def pending(self) -> bool:
        return self._event is not None


class PasteState:
    """Общее состояние процесса (один экземпляр)."""

    def __init__(self, config: HotkeyConfig = DEFAULT_HOTKEY, paused: bool = False):
        self.lock = threading.Lock()
        self.paused = paused
        self.config = config
        self.in_progress = PlaybackFlag()


def compute_delay_ms(base_delay_ms: int, jitter_span_ms: int, rng: random.Random) -> int:
    """base + (случайное 32-битное mod span) — всегда в [base, base + span - 1]."""
    return base_delay_ms + rng.getrandbits(32) % jitter_span_ms


def _check_playback_params(base_delay_ms: int, jitter_span_ms: int) -> None:
    for name, value in (("base_delay_ms", base_delay_ms), ("jitter_span_ms", jitter_span_ms)):
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0xFFFFFFFF:
            raise InvalidPlaybackParams(f"Некорректное значение {name}: {value!r}")
    if jitter_span_ms == 0:
        raise InvalidPlaybackParams("Разброс задержки должен быть больше нуля")


class PasteController:
    def __init__(
        self,
        clipboard,
        synthesizer,
        state: PasteState | None = None,
        rebind: Callable[[str], None] | None = None,
        persist: Callable[[HotkeyConfig], object] | None = None,
        sleep: Callable[[float], object] | None = None,
        rng: random.Random | None = None,
    ):
        """
        clipboard — объект с read() -> list[int];
        synthesizer — объект с emit(unit);
        rebind(accelerator) — перерегистрация глобальной комбинации, при ошибке бросает исключение;
        persist(config) — запись комбинации в хранилище;
        sleep(seconds) — пауза между символами (по умолчанию прерываемая отменой).
        """
        self._clipboard = clipboard
        self._synthesizer = synthesizer
        self._state = state or PasteState()
        self._rebind = rebind
        self._persist = persist
        self._sleep = sleep or self._state.in_progress.wait_cancelled
        self._rng = rng or random.SystemRandom()

    # ---------------- Состояние ----------------
    @property
    def is_paused(self) -> bool:
        with self._state.lock:
            return self._state.paused

    @property
    def is_playing(self) -> bool:
        return self._state.in_progress.is_set()

    def get_config(self) -> HotkeyConfig:
        with self._state.lock:
            return self._state.config

    def toggle_pause(self) -> bool:
        """Переключить паузу и вернуть новое значение. Идущую вставку не трогает."""
        with self._state.lock:
            self._state.paused = not self._state.paused
            paused = self._state.paused
        logger.info("controller: paused -> %s", paused)
        return paused

    def cancel(self) -> bool:
        """Отменить идущую вставку. True, если было что отменять."""
        flag = self._state.in_progress
        if not flag.is_set():
            return False
        flag.clear()
        logger.info("controller: вставка отменена")
        return True

    # ---------------- Вставка ----------------
    @property
    def playback_generation(self) -> int:
        """Номер последней начатой вставки (для play(since_generation=...))."""
        return self._state.in_progress.generation

    def play(self, base_delay_ms: int, jitter_span_ms: int, since_generation: int | None = None) -> None:
        """
        Напечатать текст из буфера обмена в активное окно.

        Повторный вызов во время вставки отменяет её и сразу возвращается.
        С since_generation (отложенный старт после отсчёта) вызов ничего не
        отменяет: если за это время началась другая вставка, он просто пропускается.
        Ошибки: Suspended, ClipboardError, InvalidPlaybackParams.
        """
        with self._state.lock:
            paused = self._state.paused
        if paused:
            raise Suspended()
        _check_playback_params(base_delay_ms, jitter_span_ms)

        flag = self._state.in_progress
        if since_generation is None:
            generation = flag.test_and_set()
            if generation is None:
                logger.info("controller: повторный запуск во время вставки -> отмена")
                return
        else:
            generation = flag.set_if_unchanged(since_generation)
            if generation is None:
                logger.info("controller: за время отсчёта началась другая вставка -> пропуск")
                return

        try:
            units = self._clipboard.read()
        except PasteError as e:
            flag.clear(generation)
            logger.warning("controller: чтение буфера не удалось: %s", e)
            raise
        except BaseException:
            flag.clear(generation)
            raise

        logger.info("controller: старт вставки (%d символов)", len(units))
        sent = 0
        try:
            for unit in units:
                if not flag.is_current(generation):
                    logger.info("controller: вставка прервана после %d из %d символов", sent, len(units))
                    return
                self._synthesizer.emit(unit)
                sent += 1
                delay_ms = compute_delay_ms(base_delay_ms, jitter_span_ms, self._rng)
                self._sleep(delay_ms / 1000.0)
        finally:
            flag.clear(generation)
        logger.info("controller: вставка завершена (%d символов)", sent)

    # ---------------- Комбинация ----------------
    def update_config(self, new_config: HotkeyConfig) -> str:
        """
        Заменить комбинацию целиком и перерегистрировать её.

        InvalidConfig — ничего не меняется.
        TriggerRebindFailed — конфигурация уже заменена и сохранена, но
        комбинация не работает до перезапуска/повтора.
        """
        new_config.validate()
        with self._state.lock:
            self._state.config = new_config
        description = new_config.describe()
        logger.info("controller: комбинация -> %s", description)

        if self._persist is not None:
            if self._persist(new_config) is False:
                logger.warning("controller: не удалось сохранить комбинацию %s", description)

        if self._rebind is not None:
            accelerator = new_config.to_accelerator()
            try:
                self._rebind(accelerator)
            except Exception as e:
                logger.error("controller: перерегистрация %s не удалась: %s", accelerator, e)
                raise TriggerRebindFailed(description, accelerator, str(e)) from e
        return description
