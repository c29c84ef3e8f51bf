import re
from datetime import date

from record_specs import TEACHER_RECORDS

# Category -> subcategory -> form type, as returned by the extraction service.
CATEGORY_FORM_TYPE_MAP = {
    "Books/Papers": {
        "Published Articles/Papers in Journals/Edited Volumes": "journal-articles",
        "Books/Books Chapter(s) Published": "books",
        "Papers Presented": "papers",
    },
    "Research & Consultancy": {
        "Research Projects": "research",
        "Patents": "patents",
        "Policy Document Developed": "policy",
        "E Content": "econtent",
        "Details of Consultancy Undertaken": "consultancy",
        "Collaborations/MOUs/Linkages Signed": "collaborations",
        "Academic/Research Visit": "visits",
        "Financial Support/Aid Received For Academic/Research Activities": "financial",
        "Details Of JRF/SRF Working With You": "jrf-srf",
        "PhD Guidance Details": "phd",
        "Copyrights": "copyrights",
    },
    "Academic Programs": {
        "Refresher/Orientantion Course": "refresher",
        "Contribution in Organising Academic Programs": "academic-programs",
        "Participation in Academic Bodies of other Universities": "academic-bodies",
        "Participation in Committees of University": "committees",
    },
    "Awards/Performance": {
        "Performance by Individual/Group": "performance",
        "Awards/Fellowship/Recognition": "awards",
        "Extension": "extension",
    },
    "Talks": {
        "Talks of Academic/Research Nature": "talks",
    },
    "Academic Recommendation": {
        "Articles/Journals/Edited Volumes": "articles",
        "Books": "academic-books",
        "Magazines": "magazines",
        "Technical Report and Other(s)": "technical",
    },
}

# Form type -> record kind path under /api/teacher/
FORM_TYPE_RECORD_KIND = {
    "journal-articles": "publication/journals",
    "books": "publication/books",
    "papers": "publication/papers",
    "research": "research",
    "patents": "research-contributions/patents",
    "policy": "research-contributions/policy",
    "econtent": "research-contributions/e-content",
    "consultancy": "research-contributions/consultancy",
    "collaborations": "research-contributions/collaborations",
    "visits": "research-contributions/visits",
    "financial": "research-contributions/financial-support",
    "jrf-srf": "research-contributions/jrf-srf",
    "phd": "research-contributions/phd-guidance",
    "copyrights": "research-contributions/copyrights",
    "refresher": "talks-events/refresher-details",
    "academic-programs": "talks-events/academic-contri",
    "academic-bodies": "talks-events/acad-bodies-parti",
    "committees": "talks-events/parti-university-committes",
    "performance": "awards-recognition/performance-teacher",
    "awards": "awards-recognition/awards-fellow",
    "extension": "awards-recognition/extensions",
    "talks": "talks-events/teacher-talks",
    "articles": "academic-recommendations/journal-articles",
    "academic-books": "academic-recommendations/books",
    "magazines": "academic-recommendations/magazines",
    "technical": "academic-recommendations/tech-reports",
}

# Extracted field label -> record field, per form type
FIELD_NAME_MAPPINGS = {
    "papers": {
        "Presentation Level": "level",
        "Mode of Participation": "mode",
        "Theme Of Conference/Seminar/Symposia": "theme",
        "Organizing Body": "organising_body",
        "Organising Body": "organising_body",
        "Place": "place",
        "Date of Presentation/Seminar": "date",
        "Date": "date",
        "Title of Paper": "title_of_paper",
        "Title": "title_of_paper",
        "Author(s)": "authors",
    },
    "journal-articles": {
        "Author(s)": "authors",
        "No. of Authors": "author_num",
        "Author Type": "author_type",
        "Title": "title",
        "Type": "type",
        "ISSN (Without - )": "issn",
        "ISBN (Without - )": "isbn",
        "Journal/Book Name": "journal_name",
        "Volume No.": "volume_num",
        "Page No. (Range)": "page_num",
        "Date": "month_year",
        "Level": "level",
        "Peer Reviewed?": "peer_reviewed",
        "H Index": "h_index",
        "Impact Factor": "impact_factor",
        "DOI": "DOI",
        "In Scopus?": "in_scopus",
        "In UGC CARE?": "in_ugc",
        "In CLARIVATE?": "in_clarivate",
        "In Old UGC List?": "in_oldUGCList",
        "Charges Paid?": "paid",
    },
    "books": {
        "Authors": "authors",
        "Title": "title",
        "ISBN (Without - )": "isbn",
        "Publisher Name": "publisher_name",
        "Publishing Date": "submit_date",
        "Publishing Place": "place",
        "Charges Paid": "paid",
        "Edited": "edited",
        "Chapter Count": "chap_count",
        "Publishing Level": "publishing_level",
        "Book Type": "book_type",
        "Author Type": "author_type",
    },
    "research": {
        "Title": "title",
        "Funding Agency": "funding_agency",
        "Total Grant Sanctioned": "grant_sanctioned",
        "Total Grant Received": "grant_received",
        "Project Nature Level": "proj_level",
        "Project Nature": "proj_nature",
        "Duration": "duration",
        "Status": "status",
        "Start Date": "start_date",
        "Seed Grant Year": "grant_year",
    },
    "patents": {
        "Title": "title",
        "Level": "level",
        "Status": "status",
        "Date": "date",
        "Transfer of Technology with Licence": "Tech_Licence",
        "Earning Generated (Rupees)": "Earnings_Generate",
        "Patent Application/Publication/Grant No.": "PatentApplicationNo",
    },
    "policy": {
        "Title": "title",
        "Level": "level",
        "Organisation": "organisation",
        "Date": "date",
    },
    "econtent": {
        "Title": "title",
        "Type of E-Content Platform": "e_content_type",
        "Type of E Content": "type_econtent",
        "Brief Details": "Brief_Details",
        "Quadrant": "Quadrant",
        "Publishing Date": "Publishing_date",
        "Publishing Authorities": "Publishing_Authorities",
        "Link": "link",
    },
    "consultancy": {
        "Title": "name",
        "Collaborating Institute / Industry": "collaborating_inst",
        "Address": "address",
        "Start Date": "Start_Date",
        "Duration(in Months)": "duration",
        "Amount(Rs.)": "amount",
        "Details / Outcome": "outcome",
    },
    "collaborations": {
        "Category": "category",
        "Collaborating Institute": "collaborating_inst",
        "Name of Collaborator(At other institute)": "collab_name",
        "QS/THE World University Ranking of Institute": "collab_rank",
        "Address": "address",
        "Details": "details",
        "Collaboration Outcome": "collab_outcome",
        "Status": "collab_status",
        "Starting Date": "starting_date",
        "Duration(months)": "duration",
        "Level": "level",
        "No. of Beneficiary": "beneficiary_num",
        "Signing Date": "signing_date",
    },
    "visits": {
        "Institute/Industry Visited": "Institute_visited",
        "Duration of Visit(days)": "duration",
        "Role": "role",
        "Sponsored By": "Sponsored_by",
        "Remarks": "remarks",
        "Date": "date",
    },
    "financial": {
        "Name Of Support": "name",
        "Type": "type",
        "Supporting Agency": "support",
        "Grant Received": "grant_received",
        "Details Of Event": "details",
        "Purpose Of Grant": "purpose",
        "Date": "date",
    },
    "jrf-srf": {
        "Name Of Fellow": "name",
        "Type": "type",
        "Project Title": "title",
        "Duration [in months]": "duration",
        "Monthly Stipend": "monthly_allowance",
    },
    "phd": {
        "Reg No": "regno",
        "Name of Student": "name",
        "Date of Registration": "start_date",
        "Topic": "topic",
        "Status": "status",
        "Year of Completion": "year_of_completion",
    },
    "copyrights": {
        "Title": "Title",
        "Reference No.": "RefNo",
        "Publication Date": "PublicationDate",
        "Link": "Link",
    },
    "refresher": {
        "Name": "name",
        "Course Type": "refresher_type",
        "Start Date": "startdate",
        "End Date": "enddate",
        "Orgnizing University": "university",
        "Orgnizing Institute": "institute",
        "Orgnizing Department": "department",
        "Centre": "centre",
    },
    "academic-programs": {
        "Name": "name",
        "Programme": "programme",
        "Place": "place",
        "Date": "date",
        "Year": "year_name",
        "Participated As": "participated_as",
    },
    "academic-bodies": {
        "Course Title": "name",
        "Academic Body": "acad_body",
        "Place": "place",
        "Participated As": "participated_as",
        "Year": "year_name",
    },
    "committees": {
        "Name": "name",
        "Committee Name": "committee_name",
        "Level": "level",
        "Participated As": "participated_as",
        "Year": "year_name",
    },
    "performance": {
        "Title of Performance": "name",
        "Place": "place",
        "Performance Date": "date",
        "Nature of Performance": "perf_nature",
    },
    "awards": {
        "Name of Award / Fellowship": "name",
        "Details": "details",
        "Name of Awarding Agency": "organization",
        "Adress of Awarding Agency": "address",
        "Date of Award": "date_of_award",
        "Level": "level",
    },
    "extension": {
        "Name of Activity": "name_of_activity",
        "Nature of Activity": "names",
        "Level": "level",
        "Sponsered By": "sponsered",
        "Place": "place",
        "Date": "date",
    },
    "talks": {
        "Name": "name",
        "Programme": "programme",
        "Place": "place",
        "Date": "date",
        "Title of Event/Talk": "title",
        "Participated As": "participated_as",
    },
    "articles": {
        "Title": "title",
        "ISSN (Without - )": "issn",
        "E-ISSN (Without - )": "eISSN",
        "Volume No.": "volume_num",
        "Publisher Name": "publisherName",
        "Type": "type",
        "Level": "level",
        "Peer Reviewed?": "peer_reviewed",
        "H Index": "h_index",
        "Impact Factor": "impact_factor",
        "In Scopus?": "in_scopus",
        "In UGC CARE?": "in_ugc",
        "In CLARIVATE?": "in_clarivate",
        "In Old UGC List?": "in_oldUGCList",
        "Approx. Price": "price",
        "Currency": "currency",
    },
    "academic-books": {
        "Title": "title",
        "Author(s)": "authors",
        "ISBN (Without - )": "isbn",
        "Publisher Name": "publisher_name",
        "Publishing Level": "publishing_level",
        "Book Type": "book_type",
        "Edition": "edition",
        "Volume No.": "volume",
        "Publication Date": "publication_date",
        "EBook": "ebook",
        "Digital Media(If any provided like Pendrive,CD/DVD)": "digital_media",
        "Approx. Price": "approx_price",
        "Currency": "currency",
    },
    "magazines": {
        "Title": "title",
        "Mode": "mode",
        "Publishing Agency": "publishing_agency",
        "Volume No.": "volume",
        "Publication Date": "publication_date",
        "Is Additional Attachment(USB/CD/DVD)?": "is_additional_attachment",
        "AdditionalAttachment": "additional_attachment",
        "No. of Issues per Year": "no_of_issue_per_yr",
        "Approx. Price": "price",
        "Currency": "currency",
    },
    "technical": {
        "Title": "title",
        "Subject": "subject",
        "Publisher's Name": "publisher_name",
        "Publication Date": "publication_date",
        "No. of Issues per Year": "no_of_issue_per_yr",
        "Approx. Price": "price",
        "Currency": "currency",
    },
}

LEVEL_SYNONYMS = {
    "international": ["international", "global", "world", "abroad"],
    "national": ["national", "nation", "country", "india"],
    "state": ["state", "provincial", "regional"],
    "university": ["university", "institutional", "institute"],
    "college": ["college", "department", "departmental"],
    "local": ["local", "district", "city"],
}

MODE_KEYWORDS = [
    ("hybrid", "Hybrid"),
    ("physical", "Physical"),
    ("offline", "Physical"),
    ("virtual", "Virtual"),
    ("online", "Virtual"),
]

TRUE_KEYWORDS = ["yes", "true", "1", "y", "paid", "reviewed", "included", "indexed"]
FALSE_KEYWORDS = ["no", "false", "0", "n", "unpaid", "not", "none", "nil"]

MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6, "july": 7,
    "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "jun": 6, "jul": 7, "aug": 8, "sep": 9,
    "sept": 9, "oct": 10, "nov": 11, "dec": 12,
}


def normalize_value(value):
    text = str(value).lower()
    text = re.sub(r"[^a-z0-9\s]", "", text)
    return re.sub(r"\s+", " ", text).strip()


def normalize_field_name(name):
    # underscores become spaces before punctuation is stripped
    return normalize_value(str(name).replace("_", " "))


def get_form_type(category, sub_category):
    """Resolve the form type for an extraction category/subcategory pair."""
    category_map = CATEGORY_FORM_TYPE_MAP.get(category)
    if not category_map:
        return None
    if sub_category in category_map:
        return category_map[sub_category]
    wanted = normalize_value(sub_category or "")
    for key, form_type in category_map.items():
        if normalize_value(key) == wanted:
            return form_type
    return None


def get_mapped_field_name(extracted_name, form_type):
    """Map an extracted field label onto a record field.

    Tries an exact key, then a normalised key, then partial containment in
    either direction. Record field names themselves are accepted as-is.
    """
    mappings = FIELD_NAME_MAPPINGS.get(form_type)
    if not mappings or not extracted_name:
        return None
    if extracted_name in mappings:
        return mappings[extracted_name]

    normalized = normalize_field_name(extracted_name)
    if not normalized:
        return None
    for key, field in mappings.items():
        if normalize_field_name(key) == normalized or normalize_field_name(field) == normalized:
            return field

    for key, field in mappings.items():
        key_normalized = normalize_field_name(key)
        if normalized in key_normalized or key_normalized in normalized:
            return field
    return None


def _match_level(value, options):
    normalized = normalize_value(value)
    words = normalized.split()
    for level, variations in LEVEL_SYNONYMS.items():
        if any(v in words or v == normalized for v in variations):
            for opt in options:
                if normalize_value(opt["name"]) == level:
                    return opt["id"]
            for opt in options:
                if level in normalize_value(opt["name"]).split():
                    return opt["id"]
    return None


def find_dropdown_option(value, options, field_name=None):
    """Return the id of the dropdown option best matching `value`, or None."""
    if value is None or not options:
        return None
    normalized = normalize_value(value)
    if not normalized:
        return None

    for opt in options:
        if normalize_value(opt["name"]) == normalized:
            return opt["id"]

    for opt in options:
        opt_normalized = normalize_value(opt["name"])
        if opt_normalized and (opt_normalized in normalized or normalized in opt_normalized):
            return opt["id"]

    if field_name and "level" in field_name.lower():
        return _match_level(value, options)
    return None


def normalize_mode(value):
    normalized = normalize_value(value or "")
    for keyword, mode in MODE_KEYWORDS:
        if keyword in normalized:
            return mode
    return None


def normalize_boolean(value):
    if isinstance(value, bool):
        return value
    words = normalize_value(value if value is not None else "").split()
    if not words:
        return None
    # negations win over positive words ("not reviewed")
    if any(w in FALSE_KEYWORDS for w in words):
        return False
    if any(w in TRUE_KEYWORDS for w in words):
        return True
    return None


def _valid_ymd(year, month, day):
    if not 1900 <= year <= 2100:
        return None
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_date_string(value):
    """Parse a free-text date into YYYY-MM-DD.

    Handles "28th January, 2025", "January 28, 2025", ISO dates and the
    numeric DD/MM/YYYY, DD-MM-YYYY and DD.MM.YYYY forms (day first, then
    month first when day-first is impossible).
    """
    if not value:
        return None
    cleaned = re.sub(r"(\d+)(st|nd|rd|th)\b", r"\1", str(value), flags=re.IGNORECASE).strip()

    iso = re.match(r"^(\d{4})-(\d{1,2})-(\d{1,2})", cleaned)
    if iso:
        return _valid_ymd(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))

    lowered = cleaned.lower()
    day_first = re.search(r"(\d{1,2})\s+([a-z]+)[,\s]+(\d{4})", lowered)
    if day_first and day_first.group(2) in MONTHS:
        return _valid_ymd(int(day_first.group(3)), MONTHS[day_first.group(2)], int(day_first.group(1)))

    month_first = re.search(r"([a-z]+)\s+(\d{1,2}),?\s+(\d{4})", lowered)
    if month_first and month_first.group(1) in MONTHS:
        return _valid_ymd(int(month_first.group(3)), MONTHS[month_first.group(1)], int(month_first.group(2)))

    numeric = re.search(r"(\d{1,2})([/.\-])(\d{1,2})\2(\d{4})", cleaned)
    if numeric:
        first, second, year = int(numeric.group(1)), int(numeric.group(3)), int(numeric.group(4))
        return _valid_ymd(year, second, first) or _valid_ymd(year, first, second)

    return None


def map_extracted_fields(form_type, extracted, dropdowns=None):
    """Turn extraction output into form values for one record kind.

    `extracted` is a dict of label -> value. `dropdowns` maps lookup
    category -> list of {id, name}. Returns (values, unmapped_labels).
    """
    kind = TEACHER_RECORDS.get(FORM_TYPE_RECORD_KIND.get(form_type, ""))
    if kind is None:
        return {}, list(extracted or {})

    dropdowns = dropdowns or {}
    lookups = kind.get("lookups", {})
    booleans = set(kind.get("boolean", []))
    dates = set(kind.get("dates", []))

    values = {}
    unmapped = []
    for label, raw in (extracted or {}).items():
        field = get_mapped_field_name(label, form_type)
        if not field:
            unmapped.append(label)
            continue
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            continue

        if field in lookups:
            option_id = find_dropdown_option(raw, dropdowns.get(lookups[field], []), field)
            if option_id is not None:
                values[field] = option_id
        elif field in booleans:
            flag = normalize_boolean(raw)
            if flag is not None:
                values[field] = flag
        elif field in dates:
            parsed = parse_date_string(raw)
            if parsed:
                values[field] = parsed
        elif field == "mode":
            values[field] = normalize_mode(raw) or str(raw).strip()
        else:
            values[field] = raw.strip() if isinstance(raw, str) else raw
    return values, unmapped
