from decimal import Decimal
from typing import List, Optional

from fastapi import FastAPI
from pydantic import BaseModel

app = FastAPI(title="Mock Conversion Server", version="1.0.0")

# Units per 1 USD
RATES = {
    "USD": Decimal("1"),
    "EUR": Decimal("0.92"),
    "GBP": Decimal("0.79"),
    "JPY": Decimal("147.50"),
    "CAD": Decimal("1.34"),
    "AUD": Decimal("1.52"),
    "CHF": Decimal("0.88"),
    "SEK": Decimal("10.45"),
}


class Item(BaseModel):
    amount: float
    currency: str


class BulkRequest(BaseModel):
    p_items: List[Item]
    p_to_currency: str


def convert(amount: float, from_currency: str, to_currency: str) -> Optional[float]:
    source, target = RATES.get(from_currency.upper()), RATES.get(to_currency.upper())
    if source is None or target is None:
        return None
    return float(Decimal(str(amount)) / source * target)


@app.get("/health")
def health(): return {"status": "ok"}

@app.post("/rpc/convert_amount_bulk")
def convert_amount_bulk(body: BulkRequest):
    # One entry per item, same order; unknown currencies convert to null
    return [{"converted_amount": convert(i.amount, i.currency, body.p_to_currency)} for i in body.p_items]
