# =============================================================================
# Unit Tests — KeyValue Extractor
# =============================================================================

from docquery.services.keyvalue import (
    DEFAULT_SECTION,
    extract_amounts,
    extract_dates,
    extract_document_fields,
    extract_lists,
    lookup_fields,
    normalize_field_name,
)

LETTER = "Dear customer,\nPolicy No: AB12345\nThank you."

SCHEDULE = (
    "POLICY DETAILS\n"
    "Policy No: AB12345\n"
    "Premium  ₹12,500\n"
    "Status Active\n"
    "NOMINEE\n"
    "Ravi Kumar (Son), 50% share\n"
)


# ---------------------------------------------------------------------------
# Test: Field names
# ---------------------------------------------------------------------------


class TestNormalizeFieldName:
    """Tests for label canonicalisation."""

    def test_number_abbreviations(self):
        assert normalize_field_name("Policy No") == "Policy Number"
        assert normalize_field_name("Policy No.") == "Policy Number"
        assert normalize_field_name("Policy#") == "Policy Number"

    def test_leading_article_and_colon(self):
        assert normalize_field_name("The Insured Name:") == "Insured Name"

    def test_words_starting_with_no_are_kept(self):
        assert normalize_field_name("Nominee") == "Nominee"


# ---------------------------------------------------------------------------
# Test: Extraction
# ---------------------------------------------------------------------------


class TestExtractDocumentFields:
    """Tests for extract_document_fields()."""

    def test_colon_line_in_letter(self):
        doc = extract_document_fields(LETTER, "letter.txt")
        assert doc.fields["Policy Number"].value == "AB12345"
        assert doc.fields["Policy Number"].section == DEFAULT_SECTION
        assert not doc.is_empty

    def test_known_label_without_colon(self):
        doc = extract_document_fields(SCHEDULE, "schedule.txt")
        assert doc.fields["Premium"].value == "₹12,500"

    def test_inline_premium_amount(self):
        doc = extract_document_fields(SCHEDULE, "schedule.txt")
        assert doc.fields["Premium Amount"].value == "12500"
        assert doc.fields["Premium Amount"].section is None

    def test_heading_line_can_also_be_a_field(self):
        doc = extract_document_fields(SCHEDULE, "schedule.txt")
        assert doc.fields["Status"].value == "Active"

    def test_sections(self):
        doc = extract_document_fields(SCHEDULE, "schedule.txt")
        assert doc.sections["NOMINEE"] == "Ravi Kumar (Son), 50% share"
        assert doc.fields["Policy Number"].section == "POLICY DETAILS"

    def test_inline_policy_number(self):
        doc = extract_document_fields("Your policy number AB-99812 is active.", "note.txt")
        assert doc.fields["Policy Number"].value == "AB-99812"

    def test_labelled_value_wins_over_inline(self):
        text = "Policy Number: ZZ-10001\nSee policy no XY-20002 for the old plan."
        doc = extract_document_fields(text, "note.txt")
        assert doc.fields["Policy Number"].value == "ZZ-10001"

    def test_nothing_found(self):
        doc = extract_document_fields("just some words, nothing labelled.", "x.txt")
        assert doc.fields == {}


class TestListsDatesAmounts:
    """Tests for the auxiliary extractors."""

    def test_lists_are_split_by_plain_lines(self):
        text = "- one\n- two\nplain\n1. a\n2. b"
        assert extract_lists(text) == [["one", "two"], ["a", "b"]]

    def test_dates_in_several_formats(self):
        text = "Start 01/04/2024, matures 2nd Feb 2026, renewed 2024-03-31"
        assert extract_dates(text) == ["01/04/2024", "2024-03-31", "2nd Feb 2026"]

    def test_amounts(self):
        assert extract_amounts("Fee $1,500 and tax $20.50") == [1500.0, 20.5]
        assert extract_amounts("Rs. 2,000 paid") == [2000.0]


# ---------------------------------------------------------------------------
# Test: Lookup
# ---------------------------------------------------------------------------


class TestLookupFields:
    """Tests for lookup_fields()."""

    def test_field_named_in_question(self):
        docs = [extract_document_fields(LETTER, "letter.txt")]
        matches = lookup_fields("what is the policy number", docs)
        assert len(matches) == 1
        assert matches[0].field == "Policy Number"
        assert matches[0].value == "AB12345"
        assert matches[0].source == "letter.txt"
        assert matches[0].match_type == "field"

    def test_longer_field_first(self):
        docs = [extract_document_fields(SCHEDULE, "schedule.txt")]
        matches = lookup_fields("what is the premium amount", docs)
        assert [m.field for m in matches] == ["Premium Amount", "Premium"]

    def test_section_match(self):
        docs = [extract_document_fields(SCHEDULE, "schedule.txt")]
        matches = lookup_fields("who is the nominee", docs)
        assert len(matches) == 1
        assert matches[0].match_type == "section"
        assert matches[0].value == "Ravi Kumar (Son), 50% share"

    def test_question_words_inside_field_name(self):
        docs = [extract_document_fields(LETTER, "letter.txt")]
        matches = lookup_fields("policy?", docs)
        assert [m.field for m in matches] == ["Policy Number"]

    def test_contraction_does_not_hide_field(self):
        docs = [extract_document_fields(SCHEDULE, "schedule.txt")]
        matches = lookup_fields("What's the premium?", docs)
        assert [m.field for m in matches] == ["Premium Amount", "Premium"]

    def test_extra_words_do_not_hide_field(self):
        docs = [extract_document_fields(SCHEDULE, "schedule.txt")]
        matches = lookup_fields("premium for john", docs)
        assert [m.field for m in matches] == ["Premium Amount", "Premium"]
        assert matches[0].value == "12500"

    def test_short_question_words_are_ignored(self):
        docs = [extract_document_fields(SCHEDULE, "schedule.txt")]
        assert lookup_fields("is it on?", docs) == []

    def test_no_match(self):
        docs = [extract_document_fields(LETTER, "letter.txt")]
        assert lookup_fields("what is the weather", docs) == []

    def test_matches_across_documents(self):
        docs = [
            extract_document_fields(LETTER, "a.txt"),
            extract_document_fields("Policy No: CD67890", "b.txt"),
        ]
        matches = lookup_fields("policy number", docs)
        assert [(m.value, m.source) for m in matches] == [
            ("AB12345", "a.txt"), ("CD67890", "b.txt"),
        ]
