"""
Unit tests for user data validation.
"""

import pytest

from quote_engine.errors import UserDataValidationError
from quote_engine.models.user_data import validate_user_data


class TestValidateUserData:
    """Test request body validation."""

    def test_valid_payload(self, user_payload):
        user_data = validate_user_data(user_payload)
        assert user_data.first_name == "Crystal"
        assert user_data.employment_status == "EMPLOYED"

    def test_snake_case_accepted(self, user_payload):
        payload = dict(user_payload)
        payload["first_name"] = payload.pop("firstName")
        assert validate_user_data(payload).first_name == "Crystal"

    @pytest.mark.parametrize("field,value", [
        ("phone", "555"),
        ("vin", "TOOSHORT"),
        ("employmentStatus", "ASTRONAUT"),
        ("educationLevel", "KINDERGARTEN"),
        ("policyStartDate", "09/25/2025"),
        ("mailingAddress", ""),
        ("email", "not-an-email"),
    ])
    def test_invalid_field(self, user_payload, field, value):
        payload = dict(user_payload, **{field: value})
        with pytest.raises(UserDataValidationError) as exc_info:
            validate_user_data(payload)
        assert any(error.startswith(field) for error in exc_info.value.errors)

    def test_missing_required_fields(self):
        with pytest.raises(UserDataValidationError) as exc_info:
            validate_user_data({})
        fields = {error.split(":")[0] for error in exc_info.value.errors}
        assert {"phone", "vin", "employmentStatus", "educationLevel", "policyStartDate",
                "mailingAddress", "isMailingSameAsGaraging"} <= fields

    def test_optional_fields_can_be_omitted(self, user_payload):
        payload = {k: v for k, v in user_payload.items() if k in (
            "phone", "vin", "employmentStatus", "educationLevel",
            "policyStartDate", "mailingAddress", "isMailingSameAsGaraging",
        )}
        user_data = validate_user_data(payload)
        assert user_data.first_name is None


class TestTemplateVariables:
    """Test the values exposed to goal templates."""

    def test_camel_case_keys(self, user_data):
        variables = user_data.template_variables()
        assert variables["firstName"] == "Crystal"
        assert variables["zipcode"] == "76011"
        assert variables["employmentStatus"] == "EMPLOYED"
        assert variables["licenseNumber"] is None

    def test_garaging_address_follows_mailing(self, user_payload):
        user_data = validate_user_data(dict(user_payload, garagingAddress="Elsewhere"))
        assert user_data.template_variables()["garagingAddress"] == "1304 E Copeland Rd"

    def test_separate_garaging_address(self, user_payload):
        payload = dict(user_payload, isMailingSameAsGaraging=False, garagingAddress="42 Garage Way")
        assert validate_user_data(payload).template_variables()["garagingAddress"] == "42 Garage Way"
