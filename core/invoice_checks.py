"""Checks shared by every invoice posting path (forms, API and AI extraction)."""

from decimal import Decimal

from django.core.exceptions import ValidationError

from core.utils import quantize_money


def validate_invoice_amounts(invoice, lines) -> None:
    """subtotal + VAT must equal total, and the lines must add up to both."""
    subtotal = quantize_money(invoice.subtotal)
    vat = quantize_money(invoice.vat_amount)
    total = quantize_money(invoice.total_amount)
    if not invoice.is_vat_consistent:
        raise ValidationError(
            f"Invoice {invoice.invoice_number}: subtotal {subtotal} + VAT {vat} "
            f"does not equal total {total}."
        )
    if total <= Decimal("0.00"):
        raise ValidationError(f"Invoice {invoice.invoice_number} has no value.")
    line_net = sum((quantize_money(line.amount) for line in lines), Decimal("0.00"))
    line_vat = sum((quantize_money(line.vat_amount) for line in lines), Decimal("0.00"))
    if line_net != subtotal or line_vat != vat:
        raise ValidationError(
            f"Invoice {invoice.invoice_number}: lines add up to {line_net} + {line_vat} VAT, "
            f"invoice says {subtotal} + {vat}."
        )


def require_invoice_fields(invoice, lines) -> None:
    missing = []
    if not invoice.invoice_number:
        missing.append("invoice number")
    if not invoice.invoice_date:
        missing.append("invoice date")
    if invoice.contact_id is None:
        missing.append("contact")
    if not lines:
        missing.append("lines")
    if missing:
        raise ValidationError(f"Invoice is missing required fields: {', '.join(missing)}.")

