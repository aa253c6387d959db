"""Currency rate, option and conversion endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, Query, status

from finwise.auth import RateLimitedUser
from finwise.models import ConversionResponse, CurrencyOption, CurrencyRatesResponse
from finwise.services.currency import (
    BASE_CURRENCY,
    InvalidCurrencyError,
    format_currency,
    get_currency_options,
    get_currency_service,
    is_valid_currency,
)

router = APIRouter(prefix="/currency", tags=["currency"])


def parse_currency_list(raw: str | None) -> list[str]:
    """Split a comma-separated code list, dropping blanks."""
    if not raw:
        return []
    return [code.strip().upper() for code in raw.split(",") if code.strip()]


@router.get(
    "/rates",
    response_model=CurrencyRatesResponse,
    summary="Exchange rates",
    description="Rates relative to `base`, optionally limited to `currencies`.",
)
async def get_rates(
    user: RateLimitedUser,
    base: str = Query(BASE_CURRENCY, min_length=3, max_length=3),
    currencies: str | None = Query(
        None, description="Comma-separated target codes, e.g. EUR,GBP"
    ),
) -> CurrencyRatesResponse:
    base = base.upper()
    if not is_valid_currency(base):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported base currency: {base}",
        )

    service = get_currency_service()
    rates = await service.rates_relative_to(base, parse_currency_list(currencies))

    return CurrencyRatesResponse(
        base=base,
        rates=rates,
        fetched_at=service.table.fetched_at,
        timestamp=datetime.now(UTC),
    )


@router.get(
    "/options",
    response_model=list[CurrencyOption],
    summary="Supported currencies",
)
async def list_options() -> list[CurrencyOption]:
    return [CurrencyOption(**option) for option in get_currency_options()]


@router.get(
    "/convert",
    response_model=ConversionResponse,
    summary="Convert an amount",
)
async def convert(
    user: RateLimitedUser,
    amount: float = Query(...),
    from_currency: str = Query(..., alias="from", min_length=3, max_length=3),
    to_currency: str = Query(..., alias="to", min_length=3, max_length=3),
    locale: str = Query("en-US", max_length=35),
) -> ConversionResponse:
    from_currency = from_currency.upper()
    to_currency = to_currency.upper()

    service = get_currency_service()
    try:
        rate = await service.get_exchange_rate(from_currency, to_currency)
        result = await service.convert(amount, from_currency, to_currency)
    except InvalidCurrencyError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e

    return ConversionResponse(
        amount=amount,
        from_currency=from_currency,
        to_currency=to_currency,
        rate=rate,
        result=result,
        formatted=format_currency(result, to_currency, locale),
    )
