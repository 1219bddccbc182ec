"""
Pydantic schemas for servicing commands
"""

from decimal import Decimal, InvalidOperation
from datetime import date
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from .config import get_config
from .currency import Money, Currency


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field(default_factory=lambda: get_config().default_currency,
                          validate_default=True,
                          description="Currency code (INR, USD, etc.)")

    @field_validator('amount')
    @classmethod
    def amount_is_decimal(cls, value: str) -> str:
        try:
            Decimal(value)
        except InvalidOperation:
            raise ValueError(f"'{value}' is not a decimal amount")
        return value

    @field_validator('currency')
    @classmethod
    def currency_is_known(cls, value: str) -> str:
        if value.upper() not in Currency.__members__:
            raise ValueError(f"Unsupported currency '{value}'")
        return value.upper()

    def to_money(self) -> Money:
        return Money(Decimal(self.amount), Currency[self.currency])

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)


class RecordPaymentCommand(BaseModel):
    """A payment received against one installment"""
    loan_id: str
    installment_sequence: int = Field(..., ge=1)
    amount: MoneyModel
    payment_date: date
    payment_method: str = "cash"
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    recorded_by: Optional[str] = None


class PrincipalPaymentCommand(BaseModel):
    """A lump-sum principal payment on an interest-only loan"""
    loan_id: str
    amount: MoneyModel
    payment_date: date
    payment_method: str = "cash"
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    recorded_by: Optional[str] = None


class InstallmentOverrideCommand(BaseModel):
    """Operator-fixed installment amount for a new loan"""
    loan_id: str
    installment_amount: MoneyModel
