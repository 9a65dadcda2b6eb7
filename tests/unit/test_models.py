"""Test the content model, validation and the shared outline."""

import pytest

from deck_export.errors import ContentValidationError, UnsupportedFormatError
from deck_export.models import Content, ExportFormat, OutputType, Presentation, Section, Template
from deck_export.outline import build_outline, check_template_fit, order_sections


def test_content_from_dict(q1_data):
    content = Content.from_dict(q1_data)
    assert content.title == "Q1 Review"
    assert [s.id for s in content.sections] == ["s1", "s2"]
    assert content.sections[0].bullets == ["Up 10%", "Up 12% YoY"]
    assert content.sections[1].content == "Macro headwinds"
    assert content.to_dict()["sections"][0]["order"] == 1


@pytest.mark.parametrize("title", ["", "   ", None])
def test_title_is_required(title):
    with pytest.raises(ContentValidationError) as excinfo:
        Content.from_dict({"title": title, "sections": []})
    assert "title" in str(excinfo.value)
    assert excinfo.value.kind == "content"


def test_heading_is_required():
    with pytest.raises(ContentValidationError):
        Content.from_dict({"title": "T", "sections": [{"id": "a", "heading": ""}]})


def test_duplicate_section_ids_are_rejected():
    data = {"title": "T", "sections": [
        {"id": "dup", "heading": "One"},
        {"id": "dup", "heading": "Two"},
    ]}
    with pytest.raises(ContentValidationError) as excinfo:
        Content.from_dict(data)
    assert "duplicate section id 'dup'" in excinfo.value.problems


def test_bullets_must_be_a_list():
    with pytest.raises(ContentValidationError):
        Content.from_dict({"title": "T", "sections": [{"id": "a", "heading": "A", "bullets": "nope"}]})


def test_order_must_be_numeric():
    with pytest.raises(ContentValidationError):
        Section.from_dict({"id": "a", "heading": "A", "order": "first"})


def test_template_from_dict_accepts_camel_case():
    template = Template.from_dict({
        "id": "tpl",
        "version": 3,
        "outputType": "one_pager",
        "markup": "<p>{{ title }}</p>",
        "requiredFields": ["title"],
        "allowedSectionIds": ["s1"],
    })
    assert template.output_type is OutputType.ONE_PAGER
    assert template.cache_key == ("tpl", 3)
    assert template.required_fields == {"title"}
    assert template.allowed_section_ids == {"s1"}


def test_unknown_output_type():
    with pytest.raises(ContentValidationError):
        Template.from_dict({"id": "tpl", "outputType": "poster"})


def test_presentation_from_dict(q1_data):
    presentation = Presentation.from_dict({
        "id": "p1", "content": q1_data, "templateId": "tpl", "export_urls": {"slides": "u"}, "version": 4,
    })
    assert presentation.template_id == "tpl"
    assert presentation.export_references == {"slides": "u"}
    assert presentation.version == 4


def test_export_format_parse():
    assert ExportFormat.parse("paginated") is ExportFormat.PAGINATED
    assert ExportFormat.parse(ExportFormat.SLIDES) is ExportFormat.SLIDES
    assert ExportFormat.SLIDES.extension == "pptx"
    assert ExportFormat.PAGINATED.content_type == "application/pdf"
    with pytest.raises(UnsupportedFormatError) as excinfo:
        ExportFormat.parse("docx")
    assert excinfo.value.kind == "request"


def test_order_sections_is_stable_and_missing_order_sorts_as_zero():
    sections = [
        Section(id="a", heading="A"),
        Section(id="b", heading="B", order=-1),
        Section(id="c", heading="C", order=0),
        Section(id="d", heading="D", order=2),
        Section(id="e", heading="E", order=2),
    ]
    assert [s.id for s in order_sections(sections)] == ["b", "a", "c", "d", "e"]


def test_build_outline_resolves_bullets_or_text():
    content = Content(title="T", sections=[
        Section(id="both", heading="Both", bullets=["x"], content="ignored", order=1),
        Section(id="text", heading="Text", content="para", order=2),
        Section(id="empty", heading="Empty", bullets=[], order=3),
        Section(id="none", heading="None", order=4),
    ])
    outline = build_outline(content)

    assert [e.id for e in outline] == ["both", "text", "empty", "none"]
    assert outline[0].bullets == ["x"] and outline[0].text is None
    assert outline[1].bullets is None and outline[1].text == "para"
    assert outline[2].bullets is None and outline[2].text is None
    assert outline[0].is_first and outline[-1].is_last
    assert outline[0].to_context()["content"] is None


def test_check_template_fit():
    template = Template(id="tpl", required_fields={"subtitle", "sections"}, allowed_section_ids={"s1"})
    content = Content(title="T", sections=[Section(id="s1", heading="A"), Section(id="s9", heading="B")])

    problems = check_template_fit(template, content)
    assert "template requires 'subtitle'" in problems
    assert "section 's9' is not allowed by template 'tpl'" in problems
    assert len(problems) == 2


def test_check_template_fit_passes(q1_content):
    assert check_template_fit(Template(id="tpl", required_fields={"title", "sections"}), q1_content) == []


@pytest.mark.parametrize("builder, data", [
    (Template.from_dict, {"markup": "<p></p>"}),
    (Template.from_dict, ["not", "a", "mapping"]),
    (Presentation.from_dict, {"content": {"title": "T"}}),
    (Presentation.from_dict, {"id": "p1", "templateId": "tpl"}),
])
def test_records_missing_required_keys(builder, data):
    with pytest.raises(ContentValidationError) as excinfo:
        builder(data)
    assert excinfo.value.kind == "content"
