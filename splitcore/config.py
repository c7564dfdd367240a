import os
from decimal import Decimal, InvalidOperation
from pathlib import Path

from dotenv import load_dotenv


_PACKAGE_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _PACKAGE_DIR.parent

# Root .env is canonical; splitcore/.env remains a fallback.
load_dotenv(_PROJECT_ROOT / ".env")
load_dotenv(_PACKAGE_DIR / ".env")


def _first_non_empty_env(*names: str, default: str) -> str:
    """Returns the first non-empty env var value from `names`, else `default`."""
    for name in names:
        value = os.getenv(name)
        if value is not None and value != "":
            return value
    return default


def _parse_int_env(*names: str, default: int) -> int:
    """Parses the first non-empty env var in `names` as int, else returns `default`."""
    raw = _first_non_empty_env(*names, default=str(default))
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _parse_decimal_env(*names: str, default: str) -> Decimal:
    """
    Parses the first non-empty env var in `names` as Decimal.

    Tolerances are monetary values, so they are read as Decimal strings and
    never passed through float.
    """
    raw = _first_non_empty_env(*names, default=default)
    try:
        return Decimal(raw)
    except (InvalidOperation, TypeError, ValueError):
        return Decimal(default)


class BaseConfig:

    # Currency used when an expense or balance does not name one.
    DEFAULT_CURRENCY: str = _first_non_empty_env(
        "SPLITCORE_DEFAULT_CURRENCY",
        default="INR",
    )

    # Display precision per currency. Unknown currencies use 2 places.
    CURRENCY_PLACES: dict[str, int] = {
        "INR": 2,
        "USD": 2,
        "EUR": 2,
        "GBP": 2,
        "JPY": 0,
    }

    # Significant digits for all Money arithmetic. Fixed: not env-tunable.
    MONEY_PRECISION: int = 20

    # Accepted drift when checking a sum against its expected value
    # (percentages against 100, custom amounts against the total).
    SUM_TOLERANCE: Decimal = _parse_decimal_env(
        "SPLITCORE_SUM_TOLERANCE",
        default="0.01",
    )

    # A balance whose magnitude is below this is considered settled.
    SETTLEMENT_TOLERANCE: Decimal = _parse_decimal_env(
        "SPLITCORE_SETTLEMENT_TOLERANCE",
        default="0.01",
    )

    # Number of calculation audits retained per session (FIFO).
    AUDIT_HISTORY_CAPACITY: int = _parse_int_env(
        "SPLITCORE_AUDIT_CAPACITY",
        default=5,
    )

    # Progressivity constant for the income-progressive method.
    PROGRESSIVE_EXPONENT: Decimal = Decimal("1.3")

    MIN_AMOUNT: Decimal = Decimal("0.01")
    MAX_AMOUNT: Decimal = Decimal("10000000")      # 1 crore
    LARGE_EXPENSE_THRESHOLD: Decimal = Decimal("100000")
    SMALL_EXPENSE_THRESHOLD: Decimal = Decimal("10")

    MIN_TITLE_LENGTH: int = 2
    MAX_TITLE_LENGTH: int = 100

    # Selections above this many members get a LARGE_GROUP warning.
    LARGE_GROUP_SIZE: int = 20

    LOG_LEVEL: str = _first_non_empty_env("SPLITCORE_LOG_LEVEL", default="INFO")


class DevelopmentConfig(BaseConfig):
    DEBUG:   bool = True
    TESTING: bool = False

    LOG_LEVEL: str = _first_non_empty_env("SPLITCORE_LOG_LEVEL", default="DEBUG")


class TestingConfig(BaseConfig):

    DEBUG:   bool = True
    TESTING: bool = True

    # Tests assert on eviction order, so the capacity is pinned.
    AUDIT_HISTORY_CAPACITY: int = 5
    LOG_LEVEL: str = "WARNING"


class ProductionConfig(BaseConfig):

    DEBUG:   bool = False
    TESTING: bool = False


def validate_production_config(config: type[BaseConfig]) -> None:
    """
    Fail-fast guard for production configuration.

    Called by the session factory immediately after resolving ProductionConfig:

        config = config_by_name["production"]
        validate_production_config(config)   # raises ValueError if misconfigured

    Raises ValueError if any value would make the engine silently misbehave
    (an audit buffer that holds nothing, or a tolerance that accepts any sum).
    """
    if config.AUDIT_HISTORY_CAPACITY <= 0:
        raise ValueError(
            "SPLITCORE_AUDIT_CAPACITY must be a positive integer in production."
        )
    if config.SUM_TOLERANCE < 0 or config.SUM_TOLERANCE >= 1:
        raise ValueError(
            "SPLITCORE_SUM_TOLERANCE must be in the range [0, 1)."
        )
    if config.SETTLEMENT_TOLERANCE < 0 or config.SETTLEMENT_TOLERANCE >= 1:
        raise ValueError(
            "SPLITCORE_SETTLEMENT_TOLERANCE must be in the range [0, 1)."
        )


# ── Config selector ────────────────────────────────────────────────────────
#
# Used by the session factory:
#   from splitcore.config import config_by_name
#   config = config_by_name[env_name]
# ──────────────────────────────────────────────────────────────────────────

config_by_name: dict[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing":     TestingConfig,
    "production":  ProductionConfig,
}

# Convenience alias: resolves the active config class from SPLITCORE_ENV.
# Defaults to development if the variable is not set.
ActiveConfig: type[BaseConfig] = config_by_name.get(
    os.getenv("SPLITCORE_ENV", "development"),
    DevelopmentConfig,
)
