from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


class _ExtractedModel(BaseModel):
    """Extractor output: unknown keys ignored, blank strings treated as absent."""

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _blank_to_none(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: (None if isinstance(v, str) and not v.strip() else v) for k, v in data.items()}
        return data


class OwnerAddress(_ExtractedModel):
    address_line1: Optional[str] = Field(None, max_length=128)
    address_line2: Optional[str] = Field(None, max_length=128)
    city: Optional[str] = Field(None, max_length=64)
    state: Optional[str] = Field(None, max_length=32)
    zip: Optional[str] = Field(None, max_length=16)

    def formatted(self) -> str:
        """`line1 line2, city, state zip`, skipping blank parts."""

        street = " ".join(p for p in (self.address_line1, self.address_line2) if p)
        region = " ".join(p for p in (self.state, self.zip) if p)
        return ", ".join(p for p in (street, self.city, region) if p)


class ApplicationCompany(_ExtractedModel):
    legal_name: str = Field(..., min_length=1, max_length=255)
    dba_name: Optional[str] = Field(None, max_length=255)
    ein: Optional[str] = Field(None, max_length=20)
    industry: Optional[str] = Field(None, max_length=128)
    address_line1: Optional[str] = Field(None, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=128)
    state: Optional[str] = Field(None, max_length=32)
    zip: Optional[str] = Field(None, max_length=16)
    phone: Optional[str] = Field(None, max_length=32)
    email: Optional[EmailStr] = None
    website: Optional[str] = Field(None, max_length=255)


class ApplicationDetails(_ExtractedModel):
    business_structure: Optional[str] = Field(None, max_length=64)
    years_in_business: Optional[float] = None
    number_of_employees: Optional[int] = None
    annual_revenue: Optional[float] = None
    amount_requested: Optional[float] = None
    loan_purpose: Optional[str] = Field(None, max_length=255)

    owner_1_first_name: str = Field(..., min_length=1, max_length=80)
    owner_1_middle_name: Optional[str] = Field(None, max_length=80)
    owner_1_last_name: str = Field(..., min_length=1, max_length=80)
    owner_1_ssn: Optional[str] = None
    owner_1_ownership_pct: Optional[float] = None
    owner_1_address: Optional[OwnerAddress] = None
    owner_1_cell_phone: Optional[str] = Field(None, max_length=32)
    owner_1_home_phone: Optional[str] = Field(None, max_length=32)
    owner_1_email: Optional[EmailStr] = None

    owner_2_first_name: Optional[str] = Field(None, max_length=80)
    owner_2_middle_name: Optional[str] = Field(None, max_length=80)
    owner_2_last_name: Optional[str] = Field(None, max_length=80)
    owner_2_ssn: Optional[str] = None
    owner_2_ownership_pct: Optional[float] = None
    owner_2_address: Optional[OwnerAddress] = None
    owner_2_cell_phone: Optional[str] = Field(None, max_length=32)
    owner_2_home_phone: Optional[str] = Field(None, max_length=32)
    owner_2_email: Optional[EmailStr] = None


class ApplicationIntakeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    org_id: str = Field(..., min_length=1)
    company: ApplicationCompany
    application: ApplicationDetails
    confidence_score: Optional[float] = None
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)


class ApplicationIntakeData(BaseModel):
    application_id: str
    company_id: str
    submission_id: str


class ApplicationIntakeResponse(BaseModel):
    meta: dict[str, Any] = Field(default_factory=lambda: {"status": "success"})
    success: bool = True
    data: ApplicationIntakeData
    message: str = "Application intake successful"
