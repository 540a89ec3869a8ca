"""
Generate sample vault PDFs (passport copy, rental contract, insurance policy) with a real
text layer, for manual uploads against a local server.
Run: python -m scripts.generate_sample_documents [output_dir]
"""

import io
import sys
from pathlib import Path

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

WIDTH, HEIGHT = A4

styles = getSampleStyleSheet()

STYLE_TITLE = ParagraphStyle("CustomTitle", parent=styles["Title"], fontSize=20, spaceAfter=12, textColor=colors.HexColor("#1a1a2e"))
STYLE_H2 = ParagraphStyle("H2", parent=styles["Heading2"], fontSize=13, spaceAfter=6, textColor=colors.HexColor("#0f3460"))
STYLE_BODY = ParagraphStyle("Body", parent=styles["Normal"], fontSize=10, leading=14, spaceAfter=6)

TABLE_STYLE = TableStyle([
    ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
    ("FONTSIZE", (0, 0), (-1, -1), 10),
    ("GRID", (0, 0), (-1, -1), 0.5, colors.lightgrey),
    ("BACKGROUND", (0, 0), (0, -1), colors.HexColor("#f0f0f5")),
    ("VALIGN", (0, 0), (-1, -1), "TOP"),
])


def _footer(canvas, doc):
    canvas.saveState()
    canvas.setFont("Helvetica", 7)
    canvas.setFillColor(colors.grey)
    canvas.drawCentredString(WIDTH / 2, 1 * cm, "SAMPLE DOCUMENT - NOT VALID")
    canvas.restoreState()


def _build_pdf(story: list) -> bytes:
    buf = io.BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=A4, topMargin=2 * cm, bottomMargin=2 * cm, leftMargin=2.5 * cm, rightMargin=2.5 * cm)
    doc.build(story, onFirstPage=_footer, onLaterPages=_footer)
    return buf.getvalue()


def _fields_table(rows: list[tuple[str, str]]) -> Table:
    table = Table([list(r) for r in rows], colWidths=[6 * cm, 10 * cm])
    table.setStyle(TABLE_STYLE)
    return table


def generate_passport() -> bytes:
    story = [
        Paragraph("Passport / Reisepass / Passeport", STYLE_TITLE),
        Spacer(1, 0.5 * cm),
        _fields_table([
            ("Surname", "DEMO"),
            ("Given names", "ALEX"),
            ("Nationality", "Swiss Confederation"),
            ("Date of birth", "14.02.1988"),
            ("Passport No", "X1234567"),
            ("Date of expiry", "31.03.2027"),
        ]),
        Spacer(1, 1 * cm),
        Paragraph("P&lt;CHEDEMO&lt;&lt;ALEX&lt;&lt;&lt;&lt;&lt;&lt;&lt;&lt;&lt;&lt;&lt;&lt;&lt;&lt;&lt;&lt;&lt;&lt;", STYLE_BODY),
    ]
    return _build_pdf(story)


def generate_rental_contract(monthly_rent: str = "CHF 2'450.00") -> bytes:
    story = [
        Paragraph("Mietvertrag für Wohnräume", STYLE_TITLE),
        Paragraph("Rental contract for residential premises", STYLE_H2),
        Spacer(1, 0.5 * cm),
        _fields_table([
            ("Vermieter / Landlord", "Immobilien Seeblick AG, Zürich"),
            ("Mieter / Tenant", "Alex Demo"),
            ("Objekt", "3.5-Zimmer-Wohnung, Seestrasse 12, 8002 Zürich"),
            ("Mietbeginn", "01.04.2025"),
            ("End date", "31.03.2028"),
            ("Cancellation deadline", "31.12.2027"),
            ("Nettomiete", monthly_rent),
        ]),
        Spacer(1, 0.8 * cm),
        Paragraph(
            "Der Mieter verpflichtet sich, die Wohnung sorgfältig zu gebrauchen. Die Kündigungsfrist "
            "beträgt drei Monate auf Ende eines Quartals.",
            STYLE_BODY,
        ),
    ]
    return _build_pdf(story)


def generate_insurance_policy() -> bytes:
    story = [
        Paragraph("Krankenversicherung - Police 2026", STYLE_TITLE),
        Spacer(1, 0.5 * cm),
        _fields_table([
            ("Versicherte Person", "Alex Demo"),
            ("Policy number", "KV-2026-000123"),
            ("Grundversicherung", "KVG, Franchise CHF 300"),
            ("Renewal date", "31.12.2026"),
        ]),
    ]
    return _build_pdf(story)


def main():
    out_dir = Path(sys.argv[1] if len(sys.argv) > 1 else "sample_documents")
    out_dir.mkdir(parents=True, exist_ok=True)

    files = {
        "passport_scan.pdf": generate_passport(),
        "mietvertrag.pdf": generate_rental_contract(),
        # same name, different bytes: uploading it after mietvertrag.pdf creates version 2
        "mietvertrag_v2/mietvertrag.pdf": generate_rental_contract("CHF 2'520.00"),
        "krankenkasse_police.pdf": generate_insurance_policy(),
    }

    print(f"Generating sample documents in {out_dir}/\n")
    for name, pdf in files.items():
        path = out_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(pdf)
        print(f"  {path} ({len(pdf):,} bytes)")

    print("\nDone!")


if __name__ == "__main__":
    main()
