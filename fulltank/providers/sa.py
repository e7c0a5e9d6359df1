"""SA Fuel Pricing Information Scheme (SAFPIS)."""

from __future__ import annotations

from .qld import FuelPricesDirectAdapter


class SaSafpisAdapter(FuelPricesDirectAdapter):
    """SAFPIS runs on the same platform as Queensland with its own token."""

    name = "sa"
    source = "SA_SAFPIS"
    state = "SA"
    state_region_id = 4
    timezone = "Australia/Adelaide"
    default_location = "Adelaide"
    base_url = "https://fppdirectapi-prod.safuelpricinginformation.com.au"
