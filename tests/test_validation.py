from conftest import make_lead_payload

from buyer_leads.services.validation import (
    BUDGET_MAX,
    Violation,
    normalize_candidate,
    validate_candidate,
)


def _fields(result):
    return [v.field for v in result.violations]


def test_valid_candidate_has_no_violations():
    result = validate_candidate(make_lead_payload())
    assert result.is_valid
    assert result.data["fullName"] == "Asha Verma"
    assert result.data["tags"] == ["hot", "loan"]


def test_missing_required_fields_are_all_reported():
    result = validate_candidate({})
    assert not result.is_valid
    assert _fields(result) == ["fullName", "phone", "city", "propertyType", "purpose", "timeline", "source"]


def test_violations_accumulate_across_rules():
    result = validate_candidate(
        make_lead_payload(fullName="A", email="not-an-email", phone="12345", city="Delhi")
    )
    assert _fields(result) == ["fullName", "email", "phone", "city"]


def test_strings_are_trimmed_and_blanks_become_none():
    data = normalize_candidate({"fullName": "  Asha  ", "email": "   ", "notes": "", "bhk": 3, "tags": None})
    assert data == {"fullName": "Asha", "email": None, "notes": None, "bhk": "3", "tags": []}


def test_blank_status_is_dropped():
    assert "status" not in normalize_candidate({"status": ""})
    assert "status" not in normalize_candidate({"status": None})


def test_unknown_fields_are_ignored():
    data = normalize_candidate({"fullName": "Asha", "ownerId": "x", "updatedAt": "y"})
    assert data == {"fullName": "Asha"}


def test_phone_must_be_digits_only():
    result = validate_candidate(make_lead_payload(phone="98765-43210"))
    assert result.violations == [Violation("phone", "Phone must be 10-15 digits")]

    assert validate_candidate(make_lead_payload(phone="987654321012345")).is_valid
    assert not validate_candidate(make_lead_payload(phone="9876543210123456")).is_valid


def test_full_name_length_bounds():
    assert validate_candidate(make_lead_payload(fullName="Al")).is_valid
    assert validate_candidate(make_lead_payload(fullName="x" * 80)).is_valid
    assert _fields(validate_candidate(make_lead_payload(fullName="x" * 81))) == ["fullName"]


def test_notes_length_limit():
    assert validate_candidate(make_lead_payload(notes="n" * 1000)).is_valid
    assert _fields(validate_candidate(make_lead_payload(notes="n" * 1001))) == ["notes"]


def test_bhk_required_for_residential_types():
    for property_type in ("Apartment", "Villa"):
        result = validate_candidate(make_lead_payload(propertyType=property_type, bhk=None))
        assert _fields(result) == ["bhk"]


def test_bhk_must_be_absent_for_non_residential_types():
    for property_type in ("Plot", "Office", "Retail"):
        result = validate_candidate(make_lead_payload(propertyType=property_type, bhk="2"))
        assert _fields(result) == ["bhk"]
        assert validate_candidate(make_lead_payload(propertyType=property_type, bhk=None)).is_valid


def test_budget_max_below_min_is_reported_on_budget_max():
    result = validate_candidate(make_lead_payload(budgetMin=5000000, budgetMax=4000000))
    assert _fields(result) == ["budgetMax"]


def test_equal_budgets_are_allowed():
    assert validate_candidate(make_lead_payload(budgetMin=5000000, budgetMax=5000000)).is_valid


def test_only_one_budget_is_allowed():
    assert validate_candidate(make_lead_payload(budgetMin=None)).is_valid
    assert validate_candidate(make_lead_payload(budgetMax=None)).is_valid


def test_negative_budget_is_rejected():
    assert _fields(validate_candidate(make_lead_payload(budgetMin=-1, budgetMax=None))) == ["budgetMin"]


def test_enum_values_are_checked():
    result = validate_candidate(make_lead_payload(timeline="soon", source="Billboard", status="Closed"))
    assert _fields(result) == ["timeline", "source", "status"]


def test_empty_tag_is_reported_with_index():
    result = validate_candidate(make_lead_payload(tags=["hot", "  "]))
    assert _fields(result) == ["tags.1"]


def test_update_merges_over_current_values():
    current = make_lead_payload(propertyType="Plot", bhk=None)
    result = validate_candidate({"propertyType": "Apartment"}, current=current)
    assert _fields(result) == ["bhk"]

    result = validate_candidate({"propertyType": "Apartment", "bhk": "Studio"}, current=current)
    assert result.is_valid
    assert result.data == {"propertyType": "Apartment", "bhk": "Studio"}


def test_partial_update_checks_budget_against_stored_value():
    current = make_lead_payload(budgetMin=5000000, budgetMax=6000000)
    result = validate_candidate({"budgetMax": 1000000}, current=current)
    assert _fields(result) == ["budgetMax"]


def test_budget_above_column_range_is_rejected():
    result = validate_candidate(make_lead_payload(budgetMin=1, budgetMax=10**20))
    assert _fields(result) == ["budgetMax"]
    assert result.violations[0].message == f"Budget must be at most {BUDGET_MAX}"


def test_budget_at_column_limit_is_allowed():
    assert validate_candidate(make_lead_payload(budgetMin=0, budgetMax=BUDGET_MAX)).is_valid


def test_email_longer_than_column_is_rejected():
    email = "a" * 250 + "@example.com"
    assert _fields(validate_candidate(make_lead_payload(email=email))) == ["email"]
