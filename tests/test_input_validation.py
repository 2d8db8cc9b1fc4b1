import pytest

from src.shared.contact.input_validation import (
    is_valid_email,
    sanitize_block_text,
    sanitize_input,
    sanitize_log_text,
    validate_form_data,
)

VALID = {
    "name": "Jane Doe",
    "email": "jane@example.com",
    "subject": "Hello",
    "message": "A message long enough.",
}


def errors_for(**overrides):
    fields = dict(VALID)
    fields.update(overrides)
    return validate_form_data(fields["name"], fields["email"], fields["subject"], fields["message"])


def test_sanitize_trims_and_escapes_html():
    assert sanitize_input("  <b>Tom & \"Jerry\"</b>  ") == "&lt;b&gt;Tom &amp; &quot;Jerry&quot;&lt;/b&gt;"
    assert sanitize_input("it's") == "it&#x27;s"


def test_sanitize_removes_backslash_escaping():
    assert sanitize_input(r"O\'Neil") == "O&#x27;Neil"
    assert sanitize_input("a\\\\b") == "a\\b"
    assert sanitize_input("trailing\\") == "trailing"


def test_sanitize_missing_input_is_empty():
    assert sanitize_input(None) == ""
    assert sanitize_input("") == ""
    assert sanitize_input("   ") == ""


def test_log_text_strips_line_breaks_and_collapses_whitespace():
    assert sanitize_log_text("evil\r\n[SUCCESS] IP: 1.1.1.1") == "evil [SUCCESS] IP: 1.1.1.1"
    assert sanitize_log_text("a\t\tb\x00c") == "a b c"
    assert sanitize_log_text("abcdef", max_length=3) == "abc"
    assert sanitize_log_text(None) == ""


def test_block_text_keeps_newlines_only():
    assert sanitize_block_text("line one\r\nline\x07 two\n") == "line one\nline  two"


def test_valid_form_has_no_errors():
    assert errors_for() == []


@pytest.mark.parametrize("length,ok", [(1, False), (2, True), (100, True), (101, False)])
def test_name_length_boundaries(length, ok):
    errors = errors_for(name="a" * length)
    if ok:
        assert errors == []
    else:
        assert errors == ["Name must be between 2 and 100 characters."]


def test_name_allows_umlauts_apostrophe_and_hyphen():
    assert errors_for(name=sanitize_input("Jörg O'Brien-Strauß")) == []


def test_name_rejects_digits_and_markup():
    assert errors_for(name="R2D2") == ["Name contains invalid characters."]
    assert errors_for(name=sanitize_input("<script>")) == ["Name contains invalid characters."]


def test_email_format():
    assert is_valid_email("a@b.com")
    assert not is_valid_email("not-an-email")
    assert errors_for(email="not-an-email") == ["Invalid email format."]


def test_email_length_limit():
    long_email = "a" * 60 + "@" + "b" * 36 + ".com"  # 101 characters
    assert len(long_email) == 101
    assert errors_for(email=long_email) == ["Email must not exceed 100 characters."]


@pytest.mark.parametrize("length,ok", [(2, False), (3, True), (200, True), (201, False)])
def test_subject_length_boundaries(length, ok):
    errors = errors_for(subject="s" * length)
    assert (errors == []) is ok


@pytest.mark.parametrize("length,expected", [
    (9, ["Message must be at least 10 characters."]),
    (10, []),
    (5000, []),
    (5001, ["Message must not exceed 5000 characters."]),
])
def test_message_length_boundaries(length, expected):
    assert errors_for(message="m" * length) == expected


def test_required_fields_reported_in_field_order():
    assert validate_form_data("", "", "", "") == [
        "Name is required.",
        "Email is required.",
        "Subject is required.",
        "Message is required.",
    ]


def test_only_first_violation_per_field_is_reported():
    # Too short and also invalid characters: only the length rule is reported
    assert errors_for(name="1") == ["Name must be between 2 and 100 characters."]
