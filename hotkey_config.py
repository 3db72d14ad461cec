"""
Модель комбинации запуска вставки.

HotkeyConfig — неизменяемое значение: обновление всегда заменяет его целиком.
Здесь только чистая логика (без WinAPI): строка-акселератор для регистрации,
читабельное описание для трея и проверка корректности.
"""

from dataclasses import asdict, dataclass, replace

from errors import InvalidConfig

ACCELERATOR_SEPARATOR = "+"
INTERCEPT_ACCELERATOR = "Control+V"
INTERCEPT_DESCRIPTION = "Ctrl+V (перехват системной вставки)"

# токены акселератора: Alt, затем вариант Ctrl, затем Shift
TOKEN_ALT = "Alt"
TOKEN_CONTROL = "Control"
TOKEN_LEFT_CONTROL = "LeftControl"
TOKEN_RIGHT_CONTROL = "RightControl"
TOKEN_SHIFT = "Shift"

MODIFIER_TOKENS = (TOKEN_ALT, TOKEN_CONTROL, TOKEN_LEFT_CONTROL, TOKEN_RIGHT_CONTROL, TOKEN_SHIFT)

_DESCRIPTION_NAMES = {
    TOKEN_ALT: "Alt",
    TOKEN_CONTROL: "Ctrl",
    TOKEN_LEFT_CONTROL: "Левый Ctrl",
    TOKEN_RIGHT_CONTROL: "Правый Ctrl",
    TOKEN_SHIFT: "Shift",
}


@dataclass(frozen=True)
class HotkeyConfig:
    alt: bool = True
    ctrl: bool = True
    shift: bool = False
    left_ctrl: bool = False
    right_ctrl: bool = False
    key: str = "V"
    intercept_system_combo: bool = False

    def __post_init__(self):
        # "v" и " V " — та же клавиша, что "V"
        if isinstance(self.key, str):
            object.__setattr__(self, "key", self.key.strip().upper())

    def _modifier_tokens(self) -> list[str]:
        tokens = []
        if self.alt:
            tokens.append(TOKEN_ALT)
        # первый подходящий вариант Ctrl
        if self.ctrl:
            tokens.append(TOKEN_CONTROL)
        elif self.left_ctrl:
            tokens.append(TOKEN_LEFT_CONTROL)
        elif self.right_ctrl:
            tokens.append(TOKEN_RIGHT_CONTROL)
        if self.shift:
            tokens.append(TOKEN_SHIFT)
        return tokens

    def has_modifier(self) -> bool:
        return bool(self._modifier_tokens())

    def to_accelerator(self) -> str:
        """Строка для регистрации глобальной комбинации, например "Alt+Control+V"."""
        if self.intercept_system_combo:
            return INTERCEPT_ACCELERATOR
        return ACCELERATOR_SEPARATOR.join(self._modifier_tokens() + [self.key])

    def describe(self) -> str:
        """Читабельное описание комбинации для трея, например "Alt+Ctrl+V"."""
        if self.intercept_system_combo:
            return INTERCEPT_DESCRIPTION
        names = [_DESCRIPTION_NAMES[t] for t in self._modifier_tokens()]
        return "+".join(names + [self.key])

    def validate(self) -> "HotkeyConfig":
        """Вернуть self или поднять InvalidConfig."""
        if self.intercept_system_combo:
            return self
        if not self.has_modifier():
            raise InvalidConfig()
        if not isinstance(self.key, str) or len(self.key.strip()) == 0:
            raise InvalidConfig("Не задана клавиша комбинации")
        key_name_to_vk(self.key)
        return self

    def with_ctrl_variant(self, variant: str | None) -> "HotkeyConfig":
        """
        Новое значение с выбранным вариантом Ctrl ("ctrl", "left", "right" или None).
        Варианты взаимоисключающие: выбор одного сбрасывает остальные.
        """
        return replace(
            self,
            ctrl=variant == "ctrl",
            left_ctrl=variant == "left",
            right_ctrl=variant == "right",
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "HotkeyConfig":
        """
        Собрать значение из словаря конфига; неизвестные ключи игнорируются,
        отсутствующие берутся по умолчанию. Флаг не-bool (например, строка "false") — InvalidConfig.
        """
        if not isinstance(d, dict):
            raise InvalidConfig("Комбинация в конфиге повреждена")
        flags = {}
        for name in _FLAG_FIELDS:
            if name not in d:
                continue
            if not isinstance(d[name], bool):
                raise InvalidConfig(f"Поле {name} в конфиге должно быть true/false, а не {d[name]!r}")
            flags[name] = d[name]
        key = d.get("key", cls.key)
        if not isinstance(key, str) or not key.strip():
            raise InvalidConfig("Не задана клавиша комбинации")
        return cls(key=key, **flags)


_FLAG_FIELDS = ("alt", "ctrl", "shift", "left_ctrl", "right_ctrl", "intercept_system_combo")


DEFAULT_HOTKEY = HotkeyConfig()


def parse_accelerator(accelerator: str) -> tuple[list[str], str]:
    """Разобрать акселератор в (модификаторы, клавиша). Неизвестный модификатор — InvalidConfig."""
    parts = [p.strip() for p in (accelerator or "").split(ACCELERATOR_SEPARATOR) if p.strip()]
    if not parts:
        raise InvalidConfig("Пустая комбинация")
    *mods, key = parts
    for m in mods:
        if m not in MODIFIER_TOKENS:
            raise InvalidConfig(f"Неизвестный модификатор: {m}")
    return mods, key


# ---------------- Регистрация (RegisterHotKey) ----------------
MOD_ALT = 0x0001
MOD_CONTROL = 0x0002
MOD_SHIFT = 0x0004
MOD_NOREPEAT = 0x4000

VK_LCONTROL = 0xA2
VK_RCONTROL = 0xA3

_TOKEN_MASKS = {
    TOKEN_ALT: MOD_ALT,
    TOKEN_CONTROL: MOD_CONTROL,
    TOKEN_LEFT_CONTROL: MOD_CONTROL,
    TOKEN_RIGHT_CONTROL: MOD_CONTROL,
    TOKEN_SHIFT: MOD_SHIFT,
}
_SIDE_VKS = {TOKEN_LEFT_CONTROL: VK_LCONTROL, TOKEN_RIGHT_CONTROL: VK_RCONTROL}

VK_MAP = {
    "F1": 0x70, "F2": 0x71, "F3": 0x72, "F4": 0x73, "F5": 0x74, "F6": 0x75,
    "F7": 0x76, "F8": 0x77, "F9": 0x78, "F10": 0x79, "F11": 0x7A, "F12": 0x7B,
    "ESC": 0x1B, "TAB": 0x09, "ENTER": 0x0D, "RETURN": 0x0D, "SPACE": 0x20,
    "INSERT": 0x2D, "DELETE": 0x2E, "HOME": 0x24, "END": 0x23, "PGUP": 0x21, "PGDN": 0x22,
    "LEFT": 0x25, "UP": 0x26, "RIGHT": 0x27, "DOWN": 0x28,
}


def key_name_to_vk(name: str) -> int:
    """Преобразовать читабельное имя клавиши в VK; неизвестное имя — InvalidConfig."""
    n = (name or "").upper()
    if n in VK_MAP:
        return VK_MAP[n]
    if len(n) == 1 and ("A" <= n <= "Z" or "0" <= n <= "9"):
        return ord(n)
    raise InvalidConfig(f"Неизвестная клавиша: {name}")


def registration_for_accelerator(accelerator: str) -> tuple[int, int, int | None]:
    """
    Вернуть (mask, vk, side_vk) для RegisterHotKey.

    RegisterHotKey не различает левый и правый Ctrl: side_vk — клавиша,
    которую обработчик WM_HOTKEY проверяет дополнительно (или None).
    """
    mods, key = parse_accelerator(accelerator)
    mask = MOD_NOREPEAT
    side_vk = None
    for m in mods:
        mask |= _TOKEN_MASKS[m]
        side_vk = _SIDE_VKS.get(m, side_vk)
    return mask, key_name_to_vk(key), side_vk


# ---------------- Захват своей комбинации ----------------
VK_SHIFT = 0x10
VK_CONTROL = 0x11
VK_MENU = 0x12
VK_LSHIFT = 0xA0
VK_RSHIFT = 0xA1
VK_LMENU = 0xA4
VK_RMENU = 0xA5
VK_LWIN = 0x5B
VK_RWIN = 0x5C
VK_ESCAPE = 0x1B

_CAPTURE_CTRL = {VK_CONTROL, VK_LCONTROL, VK_RCONTROL}
_CAPTURE_ALT = {VK_MENU, VK_LMENU, VK_RMENU}
_CAPTURE_SHIFT = {VK_SHIFT, VK_LSHIFT, VK_RSHIFT}
_CAPTURE_WIN = {VK_LWIN, VK_RWIN}
CAPTURE_MODIFIER_VKS = frozenset(_CAPTURE_CTRL | _CAPTURE_ALT | _CAPTURE_SHIFT | _CAPTURE_WIN)


def vk_to_key_name(vk: int) -> str | None:
    """Имя клавиши для VK (как в VK_MAP), None — клавишу нельзя назначить."""
    for name, code in VK_MAP.items():
        if code == vk:
            return name
    if 0x41 <= vk <= 0x5A or 0x30 <= vk <= 0x39:
        return chr(vk)
    return None


def config_from_capture(held_vks, vk: int) -> HotkeyConfig:
    """
    Собрать новую комбинацию из перехваченного нажатия.

    held_vks — модификаторы, зажатые в момент нажатия (любые VK_*CONTROL/MENU/SHIFT/WIN),
    vk — основная клавиша. Левый и правый Ctrl дают обычный Ctrl: сторону
    можно выбрать отдельными пунктами меню.
    Результат уже проверен (validate); Win и неизвестные клавиши — InvalidConfig.
    """
    held = set(held_vks)
    if held & _CAPTURE_WIN:
        raise InvalidConfig("Клавиша Win в комбинации не поддерживается")
    if vk in CAPTURE_MODIFIER_VKS:
        raise InvalidConfig("Нужна основная клавиша, а не только модификаторы")
    key = vk_to_key_name(vk)
    if key is None:
        raise InvalidConfig(f"Клавиша VK_{vk:02X} не поддерживается")
    cfg = HotkeyConfig(
        alt=bool(held & _CAPTURE_ALT),
        ctrl=bool(held & _CAPTURE_CTRL),
        shift=bool(held & _CAPTURE_SHIFT),
        key=key,
    )
    return cfg.validate()
