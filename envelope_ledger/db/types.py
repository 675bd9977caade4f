"""
Module: envelope_ledger.db.types
Responsibility: Money helpers shared by models, domain and services.
    Centralizes precision, rounding, and currency validation so every
    layer uses identical definitions.
Architecture position: Ledger > DB.  MUST NOT import from models/, domain/,
    services/, or selectors/.

Invariants enforced:
    - No floats anywhere in the ledger.  parse_amount() rejects float input.
    - Input amounts carry at most AMOUNT_DECIMAL_PLACES fractional digits.
    - Input amounts never exceed MAX_AMOUNT, which keeps every budget total
      far inside the 28-digit decimal context.
    - round_money() is the ONLY sanctioned rounding function.
    - validate_currency() is the canonical ISO 4217 check.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from envelope_ledger.exceptions import InvalidAmountError, InvalidCurrencyError

AMOUNT_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")
MAX_AMOUNT = Decimal("999999999999.99")


def round_money(
    value: Decimal,
    decimal_places: int = AMOUNT_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Preconditions: value is a Decimal.
    Postconditions: Returns value quantized with the given rounding mode.

    Raises:
        InvalidAmountError: value has too many digits to quantize.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    try:
        return value.quantize(Decimal(quantize_str), rounding=rounding)
    except InvalidOperation:
        raise InvalidAmountError(value, "too many digits") from None


def parse_amount(
    value: Decimal | int | str,
    *,
    field: str = "amount",
    allow_zero: bool = False,
) -> Decimal:
    """
    Validate and normalise a caller-supplied monetary amount.

    Accepts Decimal, int, or a numeric string.  Floats are rejected outright
    because their binary representation cannot carry exact cents.

    Raises:
        InvalidAmountError: on float input, non-numeric strings, non-finite
            values, negative amounts, zero (unless allow_zero), amounts above
            MAX_AMOUNT, or more than AMOUNT_DECIMAL_PLACES fractional digits.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(value, "floats are not accepted for money", field)
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, str)):
        try:
            amount = Decimal(value)
        except InvalidOperation:
            raise InvalidAmountError(value, "not a number", field) from None
    else:
        raise InvalidAmountError(value, f"unsupported type {type(value).__name__}", field)

    if not amount.is_finite():
        raise InvalidAmountError(value, "must be finite", field)
    if amount < ZERO:
        raise InvalidAmountError(value, "must not be negative", field)
    if amount == ZERO and not allow_zero:
        raise InvalidAmountError(value, "must be positive", field)
    if amount > MAX_AMOUNT:
        raise InvalidAmountError(value, f"must not exceed {MAX_AMOUNT}", field)
    if amount != round_money(amount):
        raise InvalidAmountError(
            value, f"at most {AMOUNT_DECIMAL_PLACES} decimal places allowed", field
        )
    return round_money(amount)


def normalize_money(value: Decimal | None) -> Decimal:
    """Normalise a stored money value to cent precision."""
    if value is None:
        return round_money(ZERO)
    return round_money(Decimal(value))


ISO_4217_CURRENCIES: frozenset[str] = frozenset({
    "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD",
    "AED", "ARS", "BGN", "BRL", "CLP", "CNY", "COP", "CZK",
    "DKK", "EGP", "HKD", "HUF", "IDR", "ILS", "INR", "ISK",
    "KES", "KRW", "MAD", "MXN", "MYR", "NGN", "NOK", "PEN",
    "PHP", "PKR", "PLN", "QAR", "RON", "RSD", "RUB", "SAR",
    "SEK", "SGD", "THB", "TRY", "TWD", "UAH", "UYU", "VND",
    "ZAR",
})


def validate_currency(currency: str) -> str:
    """
    Validate that a currency code is a recognized ISO 4217 code.

    Returns:
        The validated currency code (uppercase, trimmed).

    Raises:
        InvalidCurrencyError: If the currency code is not recognized.
    """
    if not isinstance(currency, str):
        raise InvalidCurrencyError(str(currency))
    normalized = currency.strip().upper()
    if normalized not in ISO_4217_CURRENCIES:
        raise InvalidCurrencyError(currency)
    return normalized
