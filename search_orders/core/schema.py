from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ProviderRecord(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class BankruptcyDebtor(ProviderRecord):
    surname: str | None = None
    given_names: str | None = Field(default=None, alias="givenNames")
    date_of_birth: str | None = Field(default=None, alias="dateOfBirth")
    alias_indicator: bool | None = Field(default=None, alias="aliasIndicator")
    address_suburb: str | None = Field(default=None, alias="addressSuburb")
    occupation: str | None = None


class BankruptcyRecord(ProviderRecord):
    extract_id: str | None = Field(default=None, alias="extractId")
    debtor: BankruptcyDebtor = Field(default_factory=BankruptcyDebtor)
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")


class RelatedRecord(ProviderRecord):
    person_id: str | None = None
    search_id: str | None = None
    name: str = ""
    dob: str | None = None
    state: str | None = None
    suburb: str | None = None


class CourtRecord(ProviderRecord):
    fullname: str | None = None
    given_name: str | None = None
    surname: str | None = None
    state: str | None = None
    court_type: str | None = Field(default=None, alias="courtType")
    source: str | None = None
    case_number: str | None = Field(default=None, alias="caseNumber")


class OrgSuggestion(ProviderRecord):
    abn: str = Field(alias="Abn")
    name: str = Field(default="Unknown", alias="Name")
    abn_status: str = Field(default="Active", alias="AbnStatus")
    score: float = Field(default=0, alias="Score")


class TitleReference(ProviderRecord):
    title_reference: str = Field(alias="titleReference")
    jurisdiction: str | None = None
    historical: bool = False


class LandTitleCounts(ProviderRecord):
    success: bool = True
    current: int | None = None
    historical: int | None = None
    title_references: list[TitleReference] = Field(default_factory=list, alias="titleReferences")


class DataAvailability(ProviderRecord):
    available: bool = False
    data: dict | None = None


class OfficerRecord(ProviderRecord):
    name: str = ""
    dob: str | None = None
    status: str | None = None
