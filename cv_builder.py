import re
from datetime import datetime
from io import BytesIO

import pytz
from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Pt, RGBColor
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from xml.sax.saxutils import escape

INSTITUTION_NAME = "The Maharaja Sayajirao University of Baroda"
IST = pytz.timezone("Asia/Kolkata")

CV_TEMPLATES = ["academic", "professional", "modern", "classic"]
CV_FORMATS = ["word", "pdf"]

TEMPLATE_STYLES = {
    "academic": {"font": "Times New Roman", "rgb": (0x1E, 0x3A, 0x8A), "pdf_font": "Times-Roman", "pdf_bold": "Times-Bold",
                 "header_fill": "#F3F4F6"},
    "professional": {"font": "Calibri", "rgb": (0x1D, 0x4E, 0xD8), "pdf_font": "Helvetica", "pdf_bold": "Helvetica-Bold",
                     "header_fill": "#EFF6FF"},
    "modern": {"font": "Calibri", "rgb": (0x1D, 0x4E, 0xD8), "pdf_font": "Helvetica", "pdf_bold": "Helvetica-Bold",
               "header_fill": "#DBEAFE"},
    "classic": {"font": "Georgia", "rgb": (0x11, 0x18, 0x27), "pdf_font": "Times-Roman", "pdf_bold": "Times-Bold",
                "header_fill": "#E5E7EB"},
}


def format_date(value):
    """YYYY-MM-DD (or datetime) -> dd/mm/yyyy. Anything else passes through."""
    if not value:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y")
    match = re.match(r"^(\d{4})-(\d{2})-(\d{2})", str(value))
    if match:
        return f"{match.group(3)}/{match.group(2)}/{match.group(1)}"
    return str(value)


def format_year(value):
    if not value:
        return ""
    match = re.search(r"(\d{4})", str(value))
    return match.group(1) if match else str(value)


def _yes_no(value):
    return "Yes" if value else "No"


def _present(value):
    return format_date(value) if value else "Present"


def _text(value):
    if value is None:
        return ""
    return str(value)


# section key -> (title, [(column header, record field, formatter)], numbered)
CV_SECTIONS = {
    "education": ("Education", [
        ("Degree Level", "degree_type_name", _text), ("Institution/University", "university_name", _text),
        ("Year", "year_of_passing", format_year), ("Subject", "subject", _text), ("State", "state", _text),
        ("QS Ranking", "QS_Ranking", _text)], False),
    "postdoc": ("Post Doctoral Research Experience", [
        ("Institute", "Institute", _text), ("Start Date", "Start_Date", format_date),
        ("End Date", "End_Date", _present), ("Sponsored By", "SponsoredBy", _text)], False),
    "experience": ("Experience", [
        ("Designation", "desig", _text), ("Employer/Institution", "Employeer", _text),
        ("Start Date", "Start_Date", format_date), ("End Date", "End_Date", format_date),
        ("Nature", "Nature", _text), ("Currently Working", "currente", _yes_no)], False),
    "research": ("Research Projects", [
        ("Title", "title", _text), ("Funding Agency", "funding_agency_name", _text),
        ("Project Nature", "proj_nature_name", _text), ("Duration (Months)", "duration", _text),
        ("Status", "status_name", _text), ("Start Date", "start_date", format_date)], False),
    "patents": ("Patents", [
        ("Title", "title", _text), ("Level", "level_name", _text), ("Status", "status_name", _text),
        ("Tech License", "Tech_Licence", _text), ("Date", "date", format_date)], False),
    "econtent": ("E-Content", [
        ("Title", "title", _text), ("Brief Details", "Brief_Details", _text), ("Link", "link", _text),
        ("Content Type", "type_econtent_name", _text), ("Platform", "e_content_type_name", _text)], False),
    "consultancy": ("Consultancy", [
        ("Name", "name", _text), ("Collaborating Institution", "collaborating_inst", _text),
        ("Address", "address", _text), ("Duration", "duration", _text), ("Amount", "amount", _text),
        ("Start Date", "Start_Date", format_date), ("Outcome", "outcome", _text)], False),
    "collaborations": ("Collaborations", [
        ("Collaboration Name", "collab_name", _text), ("Collaborating Institution", "collaborating_inst", _text),
        ("Category", "category", _text), ("Level", "level_name", _text), ("Outcome", "collab_outcome_name", _text),
        ("Starting Date", "starting_date", format_date), ("Duration", "duration", _text),
        ("Status", "collab_status", _text)], False),
    "phdguidance": ("Ph.D. Guidance", [
        ("Student Name", "name", _text), ("Registration No", "regno", _text), ("Topic", "topic", _text),
        ("Status", "status_name", _text), ("Date Registered", "start_date", format_date),
        ("Year of Completion", "year_of_completion", _text)], False),
    "books": ("Books Published", [
        ("Authors", "authors", _text), ("Title", "title", _text), ("Publisher", "publisher_name", _text),
        ("Place", "place", _text), ("Book Type", "book_type_name", _text), ("Author Type", "author_type_name", _text),
        ("Level", "publishing_level_name", _text), ("Year", "submit_date", format_year), ("ISBN", "isbn", _text)], True),
    "papers": ("Papers Presented", [
        ("Authors", "authors", _text), ("Title of Paper", "title_of_paper", _text), ("Theme", "theme", _text),
        ("Level", "level_name", _text), ("Organising Body", "organising_body", _text), ("Place", "place", _text),
        ("Year", "date", format_year)], True),
    "articles": ("Published Articles/Journals", [
        ("Authors", "authors", _text), ("Title", "title", _text), ("Journal Name", "journal_name", _text),
        ("Volume No", "volume_num", _text), ("Page No", "page_num", _text), ("ISSN", "issn", _text),
        ("Level", "level_name", _text), ("Year", "month_year", format_year)], True),
    "awards": ("Awards and Fellowships", [
        ("Name", "name", _text), ("Organization", "organization", _text), ("Level", "level_name", _text),
        ("Date of Award", "date_of_award", format_date), ("Details", "details", _text),
        ("Address", "address", _text)], False),
    "talks": ("Talks of Academic/Research Nature", [
        ("Title/Name", "title", _text), ("Programme", "programme_name", _text), ("Place", "place", _text),
        ("Participated As", "participated_as_name", _text), ("Date", "date", format_date)], False),
    "academic_contribution": ("Contribution in Organising Academic Programmes", [
        ("Name", "name", _text), ("Programme", "programme_name", _text),
        ("Participated As", "participated_as_name", _text), ("Place", "place", _text),
        ("Date", "date", format_date), ("Year", "year_name", _text)], False),
    "academic_participation": ("Participation in Academic Bodies", [
        ("Name", "name", _text), ("Academic Body", "acad_body", _text), ("Participated As", "participated_as", _text),
        ("Place", "place", _text), ("Submit Date", "submit_date", format_date), ("Year", "year_name", _text)], False),
    "committees": ("Participation in University Committees", [
        ("Name", "name", _text), ("Committee Name", "committee_name", _text), ("Level", "level_name", _text),
        ("Participated As", "participated_as", _text), ("Submit Date", "submit_date", format_date),
        ("Year", "year_name", _text)], False),
    "performance": ("Performance by Individual/Group", [
        ("Name", "name", _text), ("Place", "place", _text), ("Date", "date", format_date),
        ("Nature", "perf_nature", _text)], False),
    "extension": ("Extension Activities", [
        ("Name of Activity", "name_of_activity", _text), ("Place", "place", _text), ("Level", "level_name", _text),
        ("Sponsored By", "sponsered_name", _text), ("Date", "date", format_date)], False),
    "orientation": ("Refresher/Orientation Courses", [
        ("Name", "name", _text), ("Course Type", "refresher_type_name", _text), ("Institute", "institute", _text),
        ("University", "university", _text), ("Department", "department", _text), ("Centre", "centre", _text),
        ("Start Date", "startdate", format_date), ("End Date", "enddate", format_date)], False),
}

EMPTY_SECTION_TEXT = "No data available for this section."


def section_rows(section_key, records):
    """Header row plus one formatted row per record."""
    _, columns, numbered = CV_SECTIONS[section_key]
    header = (["S.No"] if numbered else []) + [c[0] for c in columns]
    rows = [header]
    for index, record in enumerate(records, start=1):
        row = [str(index)] if numbered else []
        for _, field, fmt in columns:
            row.append(fmt(record.get(field)))
        rows.append(row)
    return rows


def personal_rows(personal):
    return [
        ["Name", _text(personal.get("name"))],
        ["Designation", _text(personal.get("designation"))],
        ["Department", _text(personal.get("department"))],
        ["Faculty", _text(personal.get("faculty"))],
        ["Institution", personal.get("institution") or INSTITUTION_NAME],
        ["Email", _text(personal.get("email"))],
        ["Phone", _text(personal.get("phone"))],
        ["Date of Birth", format_date(personal.get("dateOfBirth"))],
        ["ORCID", _text(personal.get("orcid"))],
    ]


def cv_filename(name, template, extension, today=None):
    today = today or datetime.now(IST).date()
    safe_name = re.sub(r"\s+", "_", (name or "Teacher").strip())
    return f"CV_{safe_name}_{template}_{today.isoformat()}.{extension}"


def add_hyperlink(paragraph, url, text, color="0000FF", underline=True):
    """Append a clickable hyperlink run to a python-docx paragraph."""
    part = paragraph.part
    r_id = part.relate_to(url, "http://schemas.openxmlformats.org/officeDocument/2006/relationships/hyperlink", is_external=True)

    hyperlink = OxmlElement("w:hyperlink")
    hyperlink.set(qn("r:id"), r_id)

    new_run = OxmlElement("w:r")
    rPr = OxmlElement("w:rPr")
    if color:
        c = OxmlElement("w:color")
        c.set(qn("w:val"), color)
        rPr.append(c)
    if underline:
        u = OxmlElement("w:u")
        u.set(qn("w:val"), "single")
        rPr.append(u)

    new_run.append(rPr)
    t = OxmlElement("w:t")
    t.text = text
    new_run.append(t)
    hyperlink.append(new_run)
    paragraph._p.append(hyperlink)
    return hyperlink


def _shade_cell(cell, hex_fill):
    tc_pr = cell._tc.get_or_add_tcPr()
    shading = OxmlElement("w:shd")
    shading.set(qn("w:val"), "clear")
    shading.set(qn("w:color"), "auto")
    shading.set(qn("w:fill"), hex_fill.lstrip("#"))
    tc_pr.append(shading)


def _docx_table(doc, rows, style, header=True):
    table = doc.add_table(rows=0, cols=len(rows[0]))
    table.style = "Table Grid"
    for row_index, values in enumerate(rows):
        cells = table.add_row().cells
        for i, value in enumerate(values):
            cells[i].text = value
            if header and row_index == 0:
                for run in cells[i].paragraphs[0].runs:
                    run.bold = True
                _shade_cell(cells[i], style["header_fill"])
    return table


def build_cv_docx(cv_data, template, sections):
    """Render the CV as a Word document. Returns a BytesIO positioned at 0."""
    style = TEMPLATE_STYLES[template]
    heading_color = RGBColor(*style["rgb"])
    personal = cv_data.get("personal") or {}

    doc = Document()
    normal = doc.styles["Normal"]
    normal.font.name = style["font"]
    normal.font.size = Pt(11)

    h2 = doc.styles["Heading 2"]
    h2.font.name = style["font"]
    h2.font.size = Pt(14)
    h2.font.bold = True
    h2.font.color.rgb = heading_color
    h2.paragraph_format.space_before = Pt(16)
    h2.paragraph_format.space_after = Pt(8)

    p = doc.add_paragraph()
    p.alignment = WD_ALIGN_PARAGRAPH.CENTER
    run = p.add_run(personal.get("name", ""))
    run.bold = True
    run.font.size = Pt(22)
    run.font.color.rgb = heading_color

    subtitle = ", ".join(x for x in [personal.get("designation"), personal.get("department")] if x)
    if subtitle:
        p = doc.add_paragraph(subtitle)
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER
    p = doc.add_paragraph(personal.get("institution") or INSTITUTION_NAME)
    p.alignment = WD_ALIGN_PARAGRAPH.CENTER

    contact = " | ".join(x for x in [personal.get("email"), personal.get("phone")] if x)
    if contact:
        p = doc.add_paragraph(contact)
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER

    links = [(label, personal.get(key)) for label, key in (("Google Scholar", "scholarLink"), ("Scopus", "scopusLink"))]
    links = [(label, url) for label, url in links if url and str(url).lower().startswith(("http://", "https://"))]
    if links:
        p = doc.add_paragraph()
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER
        for i, (label, url) in enumerate(links):
            if i:
                p.add_run("  |  ")
            add_hyperlink(p, url, label)

    doc.add_paragraph("Personal Information", style="Heading 2")
    _docx_table(doc, personal_rows(personal), style, header=False)

    for key in sections:
        if key not in CV_SECTIONS:
            continue
        doc.add_paragraph(CV_SECTIONS[key][0], style="Heading 2")
        records = cv_data.get(key) or []
        if not records:
            doc.add_paragraph(EMPTY_SECTION_TEXT).runs[0].italic = True
            continue
        _docx_table(doc, section_rows(key, records), style)

    output = BytesIO()
    doc.save(output)
    output.seek(0)
    return output


def _pdf_styles(style):
    styles = getSampleStyleSheet()
    color = colors.Color(*(c / 255.0 for c in style["rgb"]))
    return {
        "name": ParagraphStyle("CVName", parent=styles["Title"], fontName=style["pdf_bold"], fontSize=20,
                               textColor=color, spaceAfter=6),
        "center": ParagraphStyle("CVCenter", parent=styles["Normal"], fontName=style["pdf_font"], fontSize=10,
                                 alignment=1),
        "heading": ParagraphStyle("CVHeading", parent=styles["Heading2"], fontName=style["pdf_bold"], fontSize=12,
                                  textColor=color, spaceBefore=12, spaceAfter=6),
        "cell": ParagraphStyle("CVCell", parent=styles["Normal"], fontName=style["pdf_font"], fontSize=8, leading=10),
        "cell_bold": ParagraphStyle("CVCellBold", parent=styles["Normal"], fontName=style["pdf_bold"], fontSize=8,
                                    leading=10),
        "empty": ParagraphStyle("CVEmpty", parent=styles["Italic"], fontSize=9),
    }


def _pdf_table(rows, pdf_styles, fill, width, header=True):
    data = []
    for row_index, values in enumerate(rows):
        cell_style = pdf_styles["cell_bold"] if header and row_index == 0 else pdf_styles["cell"]
        data.append([Paragraph(escape(v), cell_style) for v in values])
    col_width = width / len(rows[0])
    table = Table(data, colWidths=[col_width] * len(rows[0]), repeatRows=1 if header else 0)
    commands = [
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#D1D5DB")),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]
    if header:
        commands.append(("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(fill)))
    table.setStyle(TableStyle(commands))
    return table


def build_cv_pdf(cv_data, template, sections):
    """Render the CV as a PDF. Returns a BytesIO positioned at 0."""
    style = TEMPLATE_STYLES[template]
    personal = cv_data.get("personal") or {}
    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, leftMargin=0.7 * inch, rightMargin=0.7 * inch,
                            topMargin=0.7 * inch, bottomMargin=0.7 * inch,
                            title=f"CV - {personal.get('name', '')}")
    width = A4[0] - 1.4 * inch
    s = _pdf_styles(style)

    elements = [Paragraph(escape(personal.get("name", "")), s["name"])]
    subtitle = ", ".join(x for x in [personal.get("designation"), personal.get("department")] if x)
    if subtitle:
        elements.append(Paragraph(escape(subtitle), s["center"]))
    elements.append(Paragraph(escape(personal.get("institution") or INSTITUTION_NAME), s["center"]))
    contact = " | ".join(x for x in [personal.get("email"), personal.get("phone")] if x)
    if contact:
        elements.append(Paragraph(escape(contact), s["center"]))
    elements.append(Spacer(1, 10))

    elements.append(Paragraph("Personal Information", s["heading"]))
    elements.append(_pdf_table(personal_rows(personal), s, style["header_fill"], width, header=False))

    for key in sections:
        if key not in CV_SECTIONS:
            continue
        elements.append(Paragraph(escape(CV_SECTIONS[key][0]), s["heading"]))
        records = cv_data.get(key) or []
        if not records:
            elements.append(Paragraph(EMPTY_SECTION_TEXT, s["empty"]))
            continue
        elements.append(_pdf_table(section_rows(key, records), s, style["header_fill"], width))

    doc.build(elements)
    buffer.seek(0)
    return buffer


def build_publication_certificate(teacher_info, articles, papers, user_name):
    """PDF certificate listing a teacher's selected journal articles and papers."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, leftMargin=0.8 * inch, rightMargin=0.8 * inch,
                            topMargin=0.8 * inch, bottomMargin=0.8 * inch, title="Publication Certificate")
    width = A4[0] - 1.6 * inch
    s = _pdf_styles(TEMPLATE_STYLES["academic"])
    body = ParagraphStyle("CertBody", parent=getSampleStyleSheet()["Normal"], fontSize=11, leading=15)

    name = teacher_info.get("name", "")
    designation = teacher_info.get("designation", "")
    department = teacher_info.get("department", "")

    elements = [
        Paragraph(escape(INSTITUTION_NAME), s["name"]),
        Paragraph("Certificate of Publications", s["heading"]),
        Spacer(1, 8),
        Paragraph(
            escape(f"This is to certify that {name}" + (f", {designation}" if designation else "")
                   + (f", Department of {department}" if department else "")
                   + " has the following publications on record with the university."),
            body),
        Spacer(1, 10),
    ]

    if articles:
        elements.append(Paragraph("Journal Articles", s["heading"]))
        rows = [["S.No", "Title", "Authors", "Journal", "Year", "DOI"]]
        for i, a in enumerate(articles, start=1):
            rows.append([str(i), _text(a.get("title")), _text(a.get("authors")), _text(a.get("journal_name")),
                         format_year(a.get("month_year")), _text(a.get("DOI"))])
        elements.append(_pdf_table(rows, s, "#F3F4F6", width))

    if papers:
        elements.append(Paragraph("Papers Presented", s["heading"]))
        rows = [["S.No", "Title of Paper", "Authors", "Organising Body", "Place", "Date"]]
        for i, p in enumerate(papers, start=1):
            rows.append([str(i), _text(p.get("title_of_paper")), _text(p.get("authors")),
                         _text(p.get("organising_body")), _text(p.get("place")), format_date(p.get("date"))])
        elements.append(_pdf_table(rows, s, "#F3F4F6", width))

    generated_on = datetime.now(IST).strftime("%d/%m/%Y")
    elements.append(Spacer(1, 24))
    elements.append(Paragraph(escape(f"Generated on {generated_on} by {user_name}"), body))

    doc.build(elements)
    buffer.seek(0)
    return buffer
