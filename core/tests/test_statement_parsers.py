"""
Tests for the bank statement readers (MT940, CAMT.053, CSV, PDF text).

No database needed: readers only turn bytes into canonical transactions.
"""
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from django.test import SimpleTestCase, override_settings
from PyPDF2.errors import PdfReadError

from core.exceptions import EmptyResultError, ParseError, UnsupportedFormatError
from core.services.statement_parsers import (
    decode_text,
    detect_format,
    parse_amount,
    parse_date,
    parse_pdf_text,
    parse_statement,
)
from core.services.statement_parsers.camt053 import parse_camt053
from core.services.statement_parsers.csv_statement import detect_delimiter, map_columns, parse_csv
from core.services.statement_parsers.mt940 import parse_information, parse_mt940
from core.services.statement_parsers.pdf_text import extract_pdf_text


MT940_SAMPLE = """\
:20:STARTUMS
:25:NL91ABNA0417164300
:28C:00001
:60F:C240301EUR1000,00
:61:2403150315D12,50NTRFNONREF//B4C15
:86:/TRTP/SEPA OVERBOEKING/IBAN/NL20INGB0001234567/BIC/INGBNL2A/NAME/Albert Heijn/REMI/USTD//Boodschappen week 11/EREF/NOTPROVIDED
:61:240316C250,00NTRFINV-2024-001//B4C16
:86:NAME: Klant BV IBAN: NL02RABO0123456789 Betaling factuur 2024-001
:61:240317D0,00NTRFNONREF
:86:Nul
:62F:C240317EUR1237,50
-
"""

CAMT_SAMPLE = """\
<?xml version="1.0" encoding="UTF-8"?>
<Document xmlns="urn:iso:std:iso:20022:tech:xsd:camt.053.001.02">
  <BkToCstmrStmt>
    <Stmt>
      <Ntry>
        <Amt Ccy="EUR">45.99</Amt>
        <CdtDbtInd>DBIT</CdtDbtInd>
        <BookgDt><Dt>2024-03-15</Dt></BookgDt>
        <ValDt><Dt>2024-03-15</Dt></ValDt>
        <NtryDtls>
          <TxDtls>
            <Refs><EndToEndId>E2E-001</EndToEndId></Refs>
            <RltdPties>
              <Dbtr><Nm>Mijn Bedrijf</Nm></Dbtr>
              <Cdtr><Nm>KPN B.V.</Nm></Cdtr>
              <CdtrAcct><Id><IBAN>NL12KPNB0000000001</IBAN></Id></CdtrAcct>
            </RltdPties>
            <RmtInf><Ustrd>Abonnement maart</Ustrd></RmtInf>
          </TxDtls>
        </NtryDtls>
      </Ntry>
      <Ntry>
        <Amt Ccy="EUR">1500.00</Amt>
        <CdtDbtInd>CRDT</CdtDbtInd>
        <BookgDt><DtTm>2024-03-16T09:30:00</DtTm></BookgDt>
        <AcctSvcrRef>ASR-2</AcctSvcrRef>
        <NtryDtls>
          <TxDtls>
            <Refs><EndToEndId>NOTPROVIDED</EndToEndId></Refs>
            <RltdPties>
              <Dbtr><Nm>Klant BV</Nm></Dbtr>
              <DbtrAcct><Id><IBAN>NL02RABO0123456789</IBAN></Id></DbtrAcct>
            </RltdPties>
          </TxDtls>
        </NtryDtls>
        <AddtlNtryInf>Factuur 2024-002</AddtlNtryInf>
      </Ntry>
      <Ntry>
        <Amt Ccy="EUR">10.00</Amt>
        <CdtDbtInd>DBIT</CdtDbtInd>
      </Ntry>
      <Ntry>
        <Amt Ccy="EUR">20.00</Amt>
        <CdtDbtInd>CRDT</CdtDbtInd>
        <RvslInd>true</RvslInd>
        <ValDt><Dt>2024-03-18</Dt></ValDt>
      </Ntry>
    </Stmt>
  </BkToCstmrStmt>
</Document>
"""

ING_CSV_SAMPLE = (
    '"Datum";"Naam / Omschrijving";"Rekening";"Tegenrekening";"Code";"Af Bij";"Bedrag (EUR)";"Mutatiesoort";"Mededelingen"\n'
    '"20240315";"Albert Heijn 1234";"NL91INGB0001234567";"";"BA";"Af";"12,50";"Betaalautomaat";"Pasvolgnr:001"\n'
    '"20240316";"Klant BV";"NL91INGB0001234567";"NL02RABO0123456789";"OV";"Bij";"1.250,00";"Overschrijving";"Factuur 2024-001"\n'
    '"";"Ontbrekende datum";"NL91INGB0001234567";"";"BA";"Af";"5,00";"Betaalautomaat";""\n'
    '"20240317";"Nul";"NL91INGB0001234567";"";"BA";"Af";"0,00";"Betaalautomaat";"Niets"\n'
)

DEBIT_CREDIT_CSV_SAMPLE = (
    "Date,Description,Debit,Credit,Balance\n"
    '2024-03-15,Coffee,3.50,,100.00\n'
    '2024-03-16,Salary,,"2,500.00",2600.00\n'
    "\n"
    "Closing balance,,,,2600.00\n"
)

PDF_TEXT_SAMPLE = """\
Rekeningafschrift maart 2024
15-03-2024 Albert Heijn Amsterdam 12,50 Af
16-03-2024 Klant BV factuur 1.250,00 Bij
17-03-2024 Eindsaldo 1.237,50
Pagina 1 van 1
"""


class TestParseAmount:
    """Money strings in the notations Dutch and international banks export."""

    def test_european_notation(self):
        assert parse_amount("1.234,56") == Decimal("1234.56")

    def test_us_notation(self):
        assert parse_amount("1,234.56") == Decimal("1234.56")

    def test_currency_symbols_and_spaces(self):
        assert parse_amount("€ 12,50") == Decimal("12.50")
        assert parse_amount("EUR 1.234,56") == Decimal("1234.56")

    def test_negative_forms(self):
        assert parse_amount("(45.00)") == Decimal("-45.00")
        assert parse_amount("12,50-") == Decimal("-12.50")
        assert parse_amount("-1.000") == Decimal("-1000")

    def test_thousands_only(self):
        assert parse_amount("1,000") == Decimal("1000")
        assert parse_amount("1.000.000") == Decimal("1000000")

    def test_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_amount("abc")
        with pytest.raises(ValueError):
            parse_amount("")


class TestParseDate:
    def test_supported_formats(self):
        expected = date(2024, 3, 15)
        for raw in ("2024-03-15", "15-03-2024", "15/03/2024", "15.03.2024", "20240315", "2024-03-15T10:00:00"):
            assert parse_date(raw) == expected, raw

    def test_invalid_date(self):
        with pytest.raises(ValueError):
            parse_date("31-02-2024")


class MT940ParserTests(SimpleTestCase):
    def test_reads_transactions_and_skips_zero_amount(self):
        result = parse_mt940(MT940_SAMPLE)

        self.assertEqual(result.format, "MT940")
        self.assertEqual(len(result.transactions), 2)
        self.assertEqual(result.skipped, 3)  # opening balance, zero amount, closing balance

        groceries, payment = result.transactions
        self.assertEqual(groceries.transaction_date, date(2024, 3, 15))
        self.assertEqual(groceries.amount, Decimal("-12.50"))
        self.assertEqual(groceries.description, "Boodschappen week 11")
        self.assertEqual(groceries.contra_name, "Albert Heijn")
        self.assertEqual(groceries.contra_account, "NL20INGB0001234567")
        self.assertEqual(groceries.reference, "")

        self.assertEqual(payment.amount, Decimal("250.00"))
        self.assertEqual(payment.contra_name, "Klant BV")
        self.assertEqual(payment.contra_account, "NL02RABO0123456789")
        self.assertEqual(payment.reference, "INV-2024-001")

    def test_invalid_statement_line_is_skipped(self):
        text = ":20:X\n:61:garbage\n:86:ignored\n:61:240316C1,00NTRFNONREF\n:86:ok\n"
        result = parse_mt940(text)
        self.assertEqual(result.skipped, 1)
        self.assertEqual(len(result.transactions), 1)
        self.assertEqual(result.transactions[0].description, "ok")

    def test_continuation_lines_join_description(self):
        text = ":61:240316C1,00NTRFNONREF\n:86:Eerste regel\ntweede regel\n:62F:C240316EUR1,00\n"
        result = parse_mt940(text)
        self.assertEqual(result.transactions[0].description, "Eerste regel tweede regel")

    def test_balance_lines_count_as_skipped(self):
        text = ":20:X\n:60F:C240301EUR100,00\n:61:240316C1,00NTRFNONREF\n:86:ok\n:62F:C240316EUR101,00\n"
        result = parse_mt940(text)
        self.assertEqual(len(result.transactions), 1)
        self.assertEqual(result.skipped, 2)
        self.assertEqual(result.problems, ["Balance line :60F:", "Balance line :62F:"])

    def test_intermediate_balances_count_as_skipped(self):
        text = (
            ":60M:C240301EUR100,00\n:61:240316C1,00NTRFNONREF\n:86:een\n"
            ":62M:C240316EUR101,00\n:60M:C240316EUR101,00\n:61:240317C2,00NTRFNONREF\n:86:twee\n"
            ":62F:C240317EUR103,00\n"
        )
        result = parse_mt940(text)
        self.assertEqual([t.description for t in result.transactions], ["een", "twee"])
        self.assertEqual(result.skipped, 4)

    def test_unstructured_information(self):

        info = parse_information("NAME: Jansen IBAN: NL91ABNA0417164300 huur april")
        self.assertEqual(info["contra_name"], "Jansen")
        self.assertEqual(info["contra_account"], "NL91ABNA0417164300")


class CAMT053ParserTests(SimpleTestCase):
    def test_reads_entries(self):
        result = parse_camt053(CAMT_SAMPLE.encode("utf-8"))

        self.assertEqual(result.format, "CAMT053")
        self.assertEqual(len(result.transactions), 3)
        self.assertEqual(result.skipped, 1)

        subscription, invoice_payment, reversal = result.transactions
        self.assertEqual(subscription.amount, Decimal("-45.99"))
        self.assertEqual(subscription.description, "Abonnement maart")
        self.assertEqual(subscription.contra_name, "KPN B.V.")
        self.assertEqual(subscription.contra_account, "NL12KPNB0000000001")
        self.assertEqual(subscription.reference, "E2E-001")

        self.assertEqual(invoice_payment.transaction_date, date(2024, 3, 16))
        self.assertEqual(invoice_payment.amount, Decimal("1500.00"))
        self.assertEqual(invoice_payment.description, "Factuur 2024-002")
        self.assertEqual(invoice_payment.contra_name, "Klant BV")
        self.assertEqual(invoice_payment.reference, "ASR-2")

        self.assertEqual(reversal.transaction_date, date(2024, 3, 18))
        self.assertEqual(reversal.amount, Decimal("-20.00"))
        self.assertEqual(reversal.description, "Bank transaction")

    def test_balances_count_as_skipped(self):
        text = """\
<Document xmlns="urn:iso:std:iso:20022:tech:xsd:camt.053.001.08">
  <BkToCstmrStmt>
    <Stmt>
      <Bal><Tp><CdOrPrtry><Cd>OPBD</Cd></CdOrPrtry></Tp><Amt Ccy="EUR">100.00</Amt></Bal>
      <Bal><Tp><CdOrPrtry><Cd>CLBD</Cd></CdOrPrtry></Tp><Amt Ccy="EUR">90.00</Amt></Bal>
      <Ntry>
        <Amt Ccy="EUR">10.00</Amt>
        <CdtDbtInd>DBIT</CdtDbtInd>
        <BookgDt><Dt>2024-03-15</Dt></BookgDt>
        <AddtlNtryInf>Parkeren</AddtlNtryInf>
      </Ntry>
    </Stmt>
  </BkToCstmrStmt>
</Document>
"""
        result = parse_camt053(text)
        self.assertEqual(len(result.transactions), 1)
        self.assertEqual(result.transactions[0].amount, Decimal("-10.00"))
        self.assertEqual(result.skipped, 2)

    def test_malformed_xml(self):

        with self.assertRaises(ParseError):
            parse_camt053("<Document><Stmt>")


class CSVParserTests(SimpleTestCase):
    def test_ing_export_with_indicator_column(self):
        result = parse_csv(ING_CSV_SAMPLE)

        self.assertEqual(len(result.transactions), 2)
        self.assertEqual(result.skipped, 2)

        card, transfer = result.transactions
        self.assertEqual(card.transaction_date, date(2024, 3, 15))
        self.assertEqual(card.amount, Decimal("-12.50"))
        self.assertEqual(card.contra_name, "Albert Heijn 1234")
        self.assertEqual(transfer.amount, Decimal("1250.00"))
        self.assertEqual(transfer.contra_account, "NL02RABO0123456789")
        self.assertEqual(transfer.description, "Factuur 2024-001")

    def test_debit_and_credit_columns(self):
        result = parse_csv(DEBIT_CREDIT_CSV_SAMPLE)

        self.assertEqual([t.amount for t in result.transactions], [Decimal("-3.50"), Decimal("2500.00")])
        self.assertEqual(result.transactions[1].description, "Salary")
        self.assertEqual(result.skipped, 1)

    def test_delimiter_detection(self):
        self.assertEqual(detect_delimiter("a;b;c\n1;2;3"), ";")
        self.assertEqual(detect_delimiter("a\tb\tc"), "\t")
        self.assertEqual(detect_delimiter("a,b"), ",")

    def test_header_synonyms(self):
        mapping = map_columns(["Boekdatum", "Omschrijving", "Bedrag", "Tegenrekening IBAN"])
        self.assertEqual(mapping["date"], [0])
        self.assertEqual(mapping["description"], [1])
        self.assertEqual(mapping["amount"], [2])
        self.assertEqual(mapping["contra_account"], [3])

    def test_unrecognised_header(self):
        with self.assertRaises(ParseError):
            parse_csv("foo;bar\n1;2\n")


class PDFTextParserTests(SimpleTestCase):
    def test_reads_dated_lines_with_amounts(self):
        result = parse_pdf_text(PDF_TEXT_SAMPLE)

        self.assertEqual(len(result.transactions), 2)
        self.assertEqual(result.skipped, 1)
        groceries, payment = result.transactions
        self.assertEqual(groceries.description, "Albert Heijn Amsterdam")
        self.assertEqual(groceries.amount, Decimal("-12.50"))
        self.assertEqual(payment.amount, Decimal("1250.00"))

    def test_amounts_without_thousands_separator(self):
        text = "15-03-2024 Huur kantoor 1250,00 Af\n16-03-2024 Omzet 12500.00 Bij\n"
        result = parse_pdf_text(text)
        self.assertEqual([t.amount for t in result.transactions], [Decimal("-1250.00"), Decimal("12500.00")])
        self.assertEqual(result.transactions[0].description, "Huur kantoor")
        self.assertEqual(result.skipped, 0)

    def test_dated_line_without_amount_is_skipped(self):
        text = "15-03-2024 Huur kantoor 1250,00 Af\n16-03-2024 Storting zie bijlage\nPagina 1 van 1\n"
        result = parse_pdf_text(text)
        self.assertEqual(len(result.transactions), 1)
        self.assertEqual(result.skipped, 1)
        self.assertEqual(result.problems, ["Line 2: no amount"])

    def test_unreadable_pdf(self):

        with patch(
            "core.services.statement_parsers.pdf_text.PyPDF2.PdfReader",
            side_effect=PdfReadError("EOF marker not found"),
        ):
            with self.assertRaises(ParseError):
                extract_pdf_text(b"%PDF-1.4 broken")

    def test_text_is_joined_across_pages(self):
        page_one, page_two = MagicMock(), MagicMock()
        page_one.extract_text.return_value = "15-03-2024 Huur 800,00 Af"
        page_two.extract_text.return_value = "16-03-2024 Rente 1,25 Bij"
        reader = MagicMock(pages=[page_one, page_two])
        with patch("core.services.statement_parsers.pdf_text.PyPDF2.PdfReader", return_value=reader):
            result = parse_statement(b"%PDF-1.4 fake", "afschrift.pdf")

        self.assertEqual(result.format, "PDF")
        self.assertEqual([t.amount for t in result.transactions], [Decimal("-800.00"), Decimal("1.25")])


class ParseStatementTests(SimpleTestCase):
    def test_detect_format(self):
        self.assertEqual(detect_format(b"%PDF-1.7 ..."), "PDF")
        self.assertEqual(detect_format(CAMT_SAMPLE.encode("utf-8")), "CAMT053")
        self.assertEqual(detect_format(MT940_SAMPLE.encode("utf-8")), "MT940")
        self.assertEqual(detect_format(b"Datum;Bedrag\n", "export.csv"), "CSV")
        self.assertEqual(detect_format(b"whatever", "statement.STA"), "MT940")
        with self.assertRaises(UnsupportedFormatError):
            detect_format(b"hello", "notes.doc")

    def test_dispatch_by_content(self):
        result = parse_statement(MT940_SAMPLE.encode("latin-1"), "upload.bin")
        self.assertEqual(result.format, "MT940")
        self.assertEqual(len(result.transactions), 2)

    def test_declared_format_wins(self):
        result = parse_statement(ING_CSV_SAMPLE.encode("utf-8"), "export.txt", declared_format="csv")
        self.assertEqual(result.format, "CSV")

    def test_latin1_fallback(self):
        data = "Datum;Omschrijving;Bedrag\n15-03-2024;Café de Zwaan;-8,50\n".encode("latin-1")
        with self.assertRaises(UnicodeDecodeError):
            data.decode("utf-8")

        result = parse_statement(data, "kas.csv")

        self.assertEqual(result.transactions[0].description, "Café de Zwaan")
        self.assertEqual(decode_text(b"Caf\xe9"), "Café")

    def test_empty_file(self):

        with self.assertRaises(EmptyResultError):
            parse_statement(b"  \n", "empty.csv")

    def test_no_valid_rows_reports_skipped(self):
        data = "Datum;Omschrijving;Bedrag\n;geen datum;5,00\n20240301;nul;0,00\n".encode("utf-8")
        with self.assertRaises(EmptyResultError) as ctx:
            parse_statement(data, "leeg.csv")
        self.assertEqual(ctx.exception.skipped, 2)

    @override_settings(BANK_IMPORT_MAX_FILE_BYTES=32)
    def test_file_size_limit(self):
        with self.assertRaises(ParseError):
            parse_statement(ING_CSV_SAMPLE.encode("utf-8"), "big.csv")
