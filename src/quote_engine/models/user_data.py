"""
Driver, vehicle and policy data submitted for a quote run.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import Field, ValidationError, field_validator

from ..errors import UserDataValidationError
from .base import CamelModel


class EmploymentStatus(str, Enum):
    """Employment status options."""
    EMPLOYED = "EMPLOYED"
    UNEMPLOYED = "UNEMPLOYED"
    SELF_EMPLOYED = "SELF_EMPLOYED"
    RETIRED = "RETIRED"
    STUDENT = "STUDENT"


class EducationLevel(str, Enum):
    """Highest education level options."""
    HIGH_SCHOOL = "HIGH_SCHOOL"
    SOME_COLLEGE = "SOME_COLLEGE"
    BACHELORS = "BACHELORS"
    MASTERS = "MASTERS"
    DOCTORATE = "DOCTORATE"


class UserData(CamelModel):
    """Quote request data, rendered into every step's goal text."""

    # Driver
    first_name: Optional[str] = Field(default=None, min_length=1)
    last_name: Optional[str] = Field(default=None, min_length=1)
    date_of_birth: Optional[str] = Field(default=None, description="MM/DD/YYYY or YYYY-MM-DD")
    gender: Optional[Union[str, int]] = None
    marital_status: Optional[Union[str, int]] = None
    email: Optional[str] = None
    phone: str = Field(..., min_length=10, description="Phone must be at least 10 digits")

    # License
    license_number: Optional[str] = None
    license_state: Optional[str] = None

    # Vehicle
    vin: str = Field(..., min_length=17, max_length=17, description="17 character VIN")
    year: Optional[int] = None
    make: Optional[str] = None
    model: Optional[str] = None

    # Employment & education
    employment_status: EmploymentStatus
    education_level: EducationLevel

    # Policy
    policy_start_date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")

    # Address
    mailing_address: str = Field(..., min_length=1)
    city: Optional[str] = None
    state: Optional[str] = None
    zipcode: Optional[str] = None
    is_mailing_same_as_garaging: bool
    garaging_address: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and ("@" not in value or value.startswith("@") or value.endswith("@")):
            raise ValueError("Invalid email address")
        return value

    def template_variables(self) -> Dict[str, Any]:
        """Template variables keyed by camelCase field name. Unset fields render as empty text."""
        variables = self.model_dump(mode="json", by_alias=True)
        if self.is_mailing_same_as_garaging:
            variables["garagingAddress"] = self.mailing_address
        else:
            variables["garagingAddress"] = self.garaging_address or self.mailing_address
        return variables


def validate_user_data(data: Any) -> UserData:
    """
    Validate and parse raw user data.

    Raises:
        UserDataValidationError: with one "field: message" entry per problem
    """
    try:
        return UserData.model_validate(data)
    except ValidationError as e:
        errors: List[str] = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise UserDataValidationError("Invalid user data", errors=errors) from e
