"""Carrier catalog: which trailer types each hiring company operates."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Company:
    id: str
    name: str
    country_code: str
    has_flatbed: bool
    has_dry_van: bool


COMPANIES: dict[str, Company] = {
    c.id: c
    for c in (
        Company("ssp-ca", "SSP Truckline Inc", "CA", has_flatbed=True, has_dry_van=True),
        Company("ssp-us", "SSP Trucklines Inc", "US", has_flatbed=True, has_dry_van=True),
        Company("fellowtrans", "FellowsTrans Inc", "CA", has_flatbed=True, has_dry_van=False),
        Company("webfreight", "Web Freight Inc", "CA", has_flatbed=True, has_dry_van=False),
        Company("nesh", "New England Steel Haulers Inc", "CA", has_flatbed=True, has_dry_van=False),
    )
}


def get_company(company_id: str | None) -> Company | None:
    return COMPANIES.get(company_id or "")


def can_have_flatbed_training(company_id: str | None, application_type: str | None) -> bool:
    """
    Flatbed training is possible only at a company that runs flatbeds, and
    never for a DRY_VAN application at a company that also runs dry vans.
    """
    company = get_company(company_id)
    if company is None or not company.has_flatbed:
        return False
    if application_type == "DRY_VAN" and company.has_dry_van:
        return False
    return True
