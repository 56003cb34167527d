"""
Boundary model for AI invoice extraction.

The extraction service is external. Whatever it returns is parsed into
EnhancedInvoiceData and then treated exactly like manual form input: the
posting code re-checks every amount before booking anything.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from core.utils import quantize_money


class EnhancedInvoiceData(BaseModel):
    """
    Structured invoice data as proposed by the extraction service.

    Attributes:
        supplier_name: Name printed on the invoice.
        invoice_number: Supplier's invoice number.
        invoice_date: Invoice date.
        due_date: Payment due date, when printed.
        net_amount / vat_amount / total_amount: Amounts in the invoice currency.
        vat_percentage: Dominant VAT rate (0, 9 or 21 for Dutch invoices).
        suggested_account_id/code/name: Ledger account the service proposes.
        reasoning: Free-text explanation for the suggestion.
        confidence: 0.0 - 1.0 self-reported confidence.
    """

    supplier_name: Optional[str] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    net_amount: Decimal = Decimal("0.00")
    vat_amount: Decimal = Decimal("0.00")
    total_amount: Decimal = Decimal("0.00")
    vat_percentage: Optional[Decimal] = None
    suggested_account_id: Optional[int] = None
    suggested_account_code: Optional[str] = None
    suggested_account_name: Optional[str] = None
    description: Optional[str] = None
    reasoning: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    processing_notes: list[str] = Field(default_factory=list)

    @field_validator("net_amount", "vat_amount", "total_amount", mode="before")
    @classmethod
    def _empty_amount_is_zero(cls, value):
        if value in (None, ""):
            return Decimal("0.00")
        return value

    @field_validator("supplier_name", "invoice_number", "description", mode="before")
    @classmethod
    def _strip_text(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    def is_consistent(self) -> bool:
        """net + VAT == total, to the cent."""
        return quantize_money(self.net_amount) + quantize_money(self.vat_amount) == quantize_money(
            self.total_amount
        )

    def effective_vat_rate(self) -> Decimal:
        if self.vat_percentage is not None:
            return Decimal(self.vat_percentage)
        net = quantize_money(self.net_amount)
        if net == 0:
            return Decimal("0")
        return (quantize_money(self.vat_amount) * Decimal("100") / net).quantize(Decimal("0.01"))
