from roster_app.importer.contracts import (
    NAME_MAX_LENGTH,
    get_roster_alias_map,
    get_roster_field_spec,
    get_roster_required_headers,
    normalize_header,
)


def test_normalize_header_variants():
    assert normalize_header("First Name") == "first_name"
    assert normalize_header("firstName") == "first_name"
    assert normalize_header("\ufeffBarangay-Name ") == "barangay_name"
    assert normalize_header("personal.email") == "personal_email"


def test_alias_map_covers_spreadsheet_headers():
    alias_map = get_roster_alias_map()

    assert alias_map["personal_email"] == "email"
    assert alias_map["barangay_name"] == "unit"
    assert alias_map["barangay_id"] == "unit"
    assert alias_map["surname"] == "last_name"


def test_required_headers_follow_email_policy():
    assert get_roster_required_headers() == ("first_name", "last_name", "position", "unit", "email")
    assert "email" not in get_roster_required_headers(require_email=False)


def test_name_fields_are_length_limited():
    assert get_roster_field_spec("first_name").max_length == NAME_MAX_LENGTH
    assert get_roster_field_spec("suffix").max_length == NAME_MAX_LENGTH
    assert get_roster_field_spec("position").max_length is None
