from io import BytesIO

import pytest
import requests

import app as portal
import autofill

LEVELS = [{"id": 1, "name": "International"}, {"id": 2, "name": "National"}, {"id": 3, "name": "State"},
          {"id": 4, "name": "University"}, {"id": 5, "name": "College"}, {"id": 6, "name": "Local"}]


def test_form_type_lookup():
    assert autofill.get_form_type("Books/Papers", "Papers Presented") == "papers"
    assert autofill.get_form_type("Research & Consultancy", "patents") == "patents"
    assert autofill.get_form_type("Academic Recommendation", "Books") == "academic-books"
    assert autofill.get_form_type("Nope", "Papers Presented") is None


@pytest.mark.parametrize("label,field", [
    ("Title of Paper", "title_of_paper"),
    ("title of paper", "title_of_paper"),
    ("organising_body", "organising_body"),
    ("Theme Of Conference", "theme"),
    ("Colour of the sky", None),
])
def test_field_name_matching(label, field):
    assert autofill.get_mapped_field_name(label, "papers") == field


def test_dropdown_matching():
    assert autofill.find_dropdown_option("national", LEVELS) == 2
    assert autofill.find_dropdown_option("State Level", LEVELS) == 3
    assert autofill.find_dropdown_option("Global conference", LEVELS, "level") == 1
    assert autofill.find_dropdown_option("Global conference", LEVELS) is None
    assert autofill.find_dropdown_option("", LEVELS) is None


def test_mode_and_boolean():
    assert autofill.normalize_mode("Online (Zoom)") == "Virtual"
    assert autofill.normalize_mode("offline") == "Physical"
    assert autofill.normalize_mode("hybrid mode") == "Hybrid"
    assert autofill.normalize_mode("unknown") is None
    assert autofill.normalize_boolean("Yes") is True
    assert autofill.normalize_boolean("Not reviewed") is False
    assert autofill.normalize_boolean("maybe") is None


@pytest.mark.parametrize("raw,expected", [
    ("28th January, 2025", "2025-01-28"),
    ("January 28, 2025", "2025-01-28"),
    ("2025-01-28", "2025-01-28"),
    ("28/01/2025", "2025-01-28"),
    ("01/28/2025", "2025-01-28"),
    ("28.01.2025", "2025-01-28"),
    ("31/02/2025", None),
    ("12/12/1850", None),
    ("sometime", None),
])
def test_parse_date_string(raw, expected):
    assert autofill.parse_date_string(raw) == expected


def test_map_extracted_fields():
    values, unmapped = autofill.map_extracted_fields("papers", {
        "Title of Paper": "Thin films",
        "Presentation Level": "National level",
        "Mode of Participation": "Online",
        "Date of Presentation/Seminar": "3rd March, 2024",
        "Favourite colour": "Blue",
    }, {"resPubLevels": LEVELS})
    assert values == {"title_of_paper": "Thin films", "level": 2, "mode": "Virtual", "date": "2024-03-03"}
    assert unmapped == ["Favourite colour"]


def test_map_fields_endpoint(teacher_client):
    resp = teacher_client.post("/api/llm/map-fields", json={
        "formType": "journal-articles",
        "fields": {"Title": "Thin films", "Level": "International", "Peer Reviewed?": "yes"},
    })
    assert resp.status_code == 200
    assert resp.get_json()["fields"] == {"title": "Thin films", "level": 1, "peer_reviewed": True}

    assert teacher_client.post("/api/llm/map-fields", json={"formType": "nope", "fields": {}}).status_code == 400


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        return None

    def json(self):
        return self.payload


def test_categorize_document(teacher_client, monkeypatch):
    calls = []

    def fake_post(url, **kwargs):
        calls.append(url)
        return FakeResponse({"category": "Books/Papers", "subCategory": "Papers Presented"})

    monkeypatch.setattr(portal.requests, "post", fake_post)
    resp = teacher_client.post("/api/llm/categorize-document", data={
        "file": (BytesIO(b"%PDF-1.4"), "paper.pdf", "application/pdf"),
    }, content_type="multipart/form-data")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["formType"] == "papers"
    assert body["recordKind"] == "publication/papers"
    assert calls == [portal.EXTRACTION_API_URL]


def test_get_form_fields(teacher_client, monkeypatch):
    def fake_post(url, **kwargs):
        assert url.endswith("/targeted")
        assert kwargs["data"] == {"type": "papers"}
        return FakeResponse({"data": {"Title of Paper": "Thin films", "Presentation Level": "State"}})

    monkeypatch.setattr(portal.requests, "post", fake_post)
    resp = teacher_client.post("/api/llm/get-formfields", data={
        "file": (BytesIO(b"%PDF-1.4"), "paper.pdf", "application/pdf"),
        "type": "papers",
    }, content_type="multipart/form-data")
    assert resp.status_code == 200
    assert resp.get_json()["fields"] == {"title_of_paper": "Thin films", "level": 3}


def test_extraction_service_down(teacher_client, monkeypatch):
    def fake_post(url, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(portal.requests, "post", fake_post)
    resp = teacher_client.post("/api/llm/categorize-document", data={
        "file": (BytesIO(b"%PDF-1.4"), "paper.pdf", "application/pdf"),
    }, content_type="multipart/form-data")
    assert resp.status_code == 502
