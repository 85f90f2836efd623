"""
Preferences Context

Theme and currency are passed explicitly to whatever renders amounts,
instead of living in module-level state. There is a single update entry
point; listeners are told after every change.

Theme is device-local: ThemeStore keeps it in a small JSON file under
the `preferredTheme` key. Currency comes from the account's settings row.
"""

import json
from decimal import Decimal
from pathlib import Path
from typing import Callable, Optional, Union

import structlog

from pocketledger.models.ledger import Theme, UserSettings


logger = structlog.get_logger(__name__)

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CAD": "C$",
    "AUD": "A$",
    "INR": "₹",
}

ZERO_DECIMAL_CURRENCIES = {"JPY"}


class ThemeStore:
    """Device-local theme preference in a JSON file."""

    KEY = "preferredTheme"

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("preferences_unreadable", path=str(self._path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def load(self) -> Optional[Theme]:
        value = self._read().get(self.KEY)
        if value is None:
            return None
        try:
            return Theme(value)
        except ValueError:
            logger.warning("preferred_theme_invalid", value=value)
            return None

    def save(self, theme: Theme) -> None:
        data = self._read()
        data[self.KEY] = theme.value
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError as e:
            logger.error("preferences_write_failed", path=str(self._path), error=str(e))


Listener = Callable[["PreferencesContext"], None]


class PreferencesContext:
    """
    Explicit display preferences.

    Usage:
        prefs = PreferencesContext.from_store(ThemeStore(path))
        prefs.apply_settings(settings)
        prefs.format_currency(Decimal("12.5"))   # "$12.50"
    """

    def __init__(
        self,
        theme: Theme = Theme.LIGHT,
        currency: str = "USD",
        store: Optional[ThemeStore] = None,
    ):
        self._theme = theme
        self._currency = currency.upper()
        self._store = store
        self._listeners: list[Listener] = []

    @classmethod
    def from_store(cls, store: ThemeStore, currency: str = "USD") -> "PreferencesContext":
        """Start with the theme the device last used."""
        return cls(theme=store.load() or Theme.LIGHT, currency=currency, store=store)

    @property
    def theme(self) -> Theme:
        return self._theme

    @property
    def currency(self) -> str:
        return self._currency

    @property
    def currency_symbol(self) -> str:
        return CURRENCY_SYMBOLS.get(self._currency, "$")

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; the returned callable removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(
        self,
        *,
        theme: Optional[Theme] = None,
        currency: Optional[str] = None,
    ) -> bool:
        """Apply changes, persist a new theme, notify listeners. Returns whether anything changed."""
        changed = False
        if theme is not None and theme is not self._theme:
            self._theme = theme
            if self._store is not None:
                self._store.save(theme)
            changed = True
        if currency is not None and currency.upper() != self._currency:
            self._currency = currency.upper()
            changed = True

        if changed:
            logger.debug("preferences_updated", theme=self._theme.value, currency=self._currency)
            for listener in list(self._listeners):
                listener(self)
        return changed

    def toggle_theme(self) -> Theme:
        self.update(theme=self._theme.toggled())
        return self._theme

    def apply_settings(self, settings: UserSettings) -> None:
        self.update(currency=settings.currency)

    def format_currency(self, amount: Decimal) -> str:
        places = 0 if self._currency in ZERO_DECIMAL_CURRENCIES else 2
        symbol = CURRENCY_SYMBOLS.get(self._currency)
        prefix = symbol if symbol is not None else f"{self._currency} "
        sign = "-" if amount < 0 else ""
        return f"{sign}{prefix}{abs(Decimal(amount)):,.{places}f}"
