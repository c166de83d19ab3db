# -*- coding: utf-8 -*-
"""
Geographic Resolver - EcoTrace Carbon Calculation Pipeline

Maps a location (postal code, region, coordinates, country) or a cloud
provider region to a canonical grid zone identifier such as ``US-CA``,
``CA-QC`` or ``DE``. Resolution is a pure table lookup with a fixed
fallback order::

    postal code -> region -> coordinates -> country -> default zone

The resolver never raises. Input that cannot be placed maps to the
configured default zone and is logged at WARNING level so the data-quality
issue is traceable.

Example:
    >>> from ecotrace.carbon_calculation.geographic_resolver import GeographicResolver
    >>> from ecotrace.carbon_calculation.models import Location
    >>> GeographicResolver().resolve(Location(country="US", postal_code="94105"))
    'US-CA'

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import math
import re
from typing import Dict, List, Optional, Tuple

from ecotrace.carbon_calculation.config import CarbonCalculationConfig, get_config
from ecotrace.carbon_calculation.models import Location

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Lookup tables
# ---------------------------------------------------------------------------

# Three-digit US ZIP prefix ranges (inclusive) -> state
US_POSTAL_PREFIX_RANGES: List[Tuple[int, int, str]] = [
    (10, 27, "MA"), (28, 29, "RI"), (30, 38, "NH"), (39, 49, "ME"),
    (50, 59, "VT"), (60, 69, "CT"), (70, 89, "NJ"), (100, 149, "NY"),
    (150, 196, "PA"), (197, 199, "DE"), (200, 205, "DC"), (206, 219, "MD"),
    (220, 246, "VA"), (247, 268, "WV"), (270, 289, "NC"), (290, 299, "SC"),
    (300, 319, "GA"), (320, 349, "FL"), (350, 369, "AL"), (370, 385, "TN"),
    (386, 397, "MS"), (400, 427, "KY"), (430, 458, "OH"), (460, 479, "IN"),
    (480, 499, "MI"), (500, 528, "IA"), (530, 549, "WI"), (550, 567, "MN"),
    (570, 577, "SD"), (580, 588, "ND"), (590, 599, "MT"), (600, 629, "IL"),
    (630, 658, "MO"), (660, 679, "KS"), (680, 693, "NE"), (700, 714, "LA"),
    (716, 729, "AR"), (730, 749, "OK"), (750, 799, "TX"), (800, 816, "CO"),
    (820, 831, "WY"), (832, 838, "ID"), (840, 847, "UT"), (850, 865, "AZ"),
    (870, 884, "NM"), (885, 885, "TX"), (889, 898, "NV"), (900, 961, "CA"),
    (967, 968, "HI"), (970, 979, "OR"), (980, 994, "WA"), (995, 999, "AK"),
]

US_STATES = frozenset(state for _, _, state in US_POSTAL_PREFIX_RANGES)

US_STATE_NAMES: Dict[str, str] = {
    "CALIFORNIA": "CA", "TEXAS": "TX", "NEW YORK": "NY", "FLORIDA": "FL",
    "WASHINGTON": "WA", "OREGON": "OR", "NEVADA": "NV", "ARIZONA": "AZ",
    "ILLINOIS": "IL", "PENNSYLVANIA": "PA", "OHIO": "OH", "VIRGINIA": "VA",
    "GEORGIA": "GA", "MASSACHUSETTS": "MA", "COLORADO": "CO", "IOWA": "IA",
    "NORTH CAROLINA": "NC", "SOUTH CAROLINA": "SC", "NEW JERSEY": "NJ",
    "MICHIGAN": "MI", "MINNESOTA": "MN", "UTAH": "UT", "OKLAHOMA": "OK",
}

# Sub-national zones outside the US
REGION_ZONES = frozenset({
    "CA-ON", "CA-QC", "CA-BC", "CA-AB",
    "AU-NSW", "AU-VIC", "AU-QLD", "AU-SA", "AU-WA", "AU-TAS",
})

# Countries with their own zone
COUNTRY_ZONES = frozenset({
    "US", "CA", "GB", "FR", "DE", "JP", "AU", "CN", "IN", "BR",
    "IE", "NL", "BE", "SE", "NO", "FI", "ES", "IT", "KR", "SG", "ZA", "MX",
})

# Zone centroids for coordinate lookup (lat, lon); boxes extend +/-5 degrees
ZONE_CENTROIDS: Dict[str, Tuple[float, float]] = {
    "US-CA": (36.7783, -119.4179),
    "US-TX": (31.9686, -99.9018),
    "US-NY": (42.1657, -74.9481),
    "US-FL": (27.6648, -81.5158),
    "US-WA": (47.7511, -120.7401),
    "GB": (55.3781, -3.4360),
    "DE": (51.1657, 10.4515),
    "FR": (46.2276, 2.2137),
    "JP": (36.2048, 138.2529),
    "AU": (-25.2744, 133.7751),
    "CN": (35.8617, 104.1954),
    "IN": (20.5937, 78.9629),
}

_BOX_DEGREES = 5.0

# Cloud provider region -> zone
CLOUD_REGION_ZONES: Dict[str, Dict[str, str]] = {
    "aws": {
        "us-east-1": "US-VA", "us-east-2": "US-OH", "us-west-1": "US-CA",
        "us-west-2": "US-OR", "ca-central-1": "CA-QC", "eu-west-1": "IE",
        "eu-west-2": "GB", "eu-west-3": "FR", "eu-central-1": "DE",
        "eu-north-1": "SE", "ap-northeast-1": "JP", "ap-northeast-2": "KR",
        "ap-southeast-1": "SG", "ap-southeast-2": "AU-NSW", "ap-south-1": "IN",
        "sa-east-1": "BR",
    },
    "gcp": {
        "us-central1": "US-IA", "us-east1": "US-SC", "us-east4": "US-VA",
        "us-west1": "US-OR", "us-west2": "US-CA", "europe-west1": "BE",
        "europe-west2": "GB", "europe-west3": "DE", "europe-west4": "NL",
        "europe-north1": "FI", "asia-northeast1": "JP", "asia-south1": "IN",
        "australia-southeast1": "AU-NSW", "southamerica-east1": "BR",
    },
    "azure": {
        "eastus": "US-VA", "eastus2": "US-VA", "westus": "US-CA",
        "westus2": "US-WA", "centralus": "US-IA", "northeurope": "IE",
        "westeurope": "NL", "uksouth": "GB", "francecentral": "FR",
        "germanywestcentral": "DE", "japaneast": "JP",
        "australiaeast": "AU-NSW", "centralindia": "IN",
        "brazilsouth": "BR", "canadacentral": "CA-ON",
    },
}

_POSTAL_NEAREST_MAX_DISTANCE = 100


# ---------------------------------------------------------------------------
# GeographicResolver
# ---------------------------------------------------------------------------


class GeographicResolver:
    """Pure lookup from locations and cloud regions to grid zones.

    Attributes:
        default_zone: Zone returned when nothing else matches.
    """

    def __init__(self, config: Optional[CarbonCalculationConfig] = None) -> None:
        self.config = config or get_config()
        self.default_zone = self.config.default_zone

    def resolve(self, location: Optional[Location]) -> str:
        """Resolve a location to a zone id.

        Args:
            location: Location with at least a country, or None.

        Returns:
            Zone identifier; the default zone when unresolvable.
        """
        if location is None:
            logger.warning(
                "No location supplied; using default zone %s", self.default_zone,
            )
            return self.default_zone

        country = location.country

        if location.postal_code and country == "US":
            state = self.state_for_postal_code(location.postal_code)
            if state is not None:
                return f"US-{state}"

        if location.region:
            zone = self._region_zone(country, location.region)
            if zone is not None:
                return zone

        if location.coordinates is not None:
            zone = self._coordinate_zone(
                country, location.coordinates.latitude, location.coordinates.longitude,
            )
            if zone is not None:
                return zone

        if country in COUNTRY_ZONES:
            return country

        logger.warning(
            "Unresolvable location country=%s region=%s postal=%s; using default zone %s",
            country, location.region, location.postal_code, self.default_zone,
        )
        return self.default_zone

    def resolve_cloud_region(self, provider: str, region: Optional[str]) -> Optional[str]:
        """Resolve a provider region (e.g. ``aws``/``us-east-1``) to a zone.

        Returns:
            Zone id, or None when the provider region is unknown.
        """
        if not region:
            return None
        normalized = region.strip().lower()
        if provider in CLOUD_REGION_ZONES:
            return CLOUD_REGION_ZONES[provider].get(normalized)
        for zones in CLOUD_REGION_ZONES.values():
            if normalized in zones:
                return zones[normalized]
        return None

    @staticmethod
    def state_for_postal_code(postal_code: str) -> Optional[str]:
        """Map a US ZIP code to its state by three-digit prefix.

        Prefixes that fall in a gap of the table use the nearest range within
        a distance of 100; the approximation is logged.
        """
        digits = re.sub(r"[^0-9]", "", postal_code)
        if len(digits) < 3:
            return None
        prefix = int(digits[:3])

        nearest_state: Optional[str] = None
        nearest_distance = math.inf
        for low, high, state in US_POSTAL_PREFIX_RANGES:
            if low <= prefix <= high:
                return state
            distance = min(abs(prefix - low), abs(prefix - high))
            if distance < nearest_distance:
                nearest_distance = distance
                nearest_state = state

        if nearest_state is not None and nearest_distance <= _POSTAL_NEAREST_MAX_DISTANCE:
            logger.info(
                "Postal prefix %03d not mapped; using nearest state %s (distance %d)",
                prefix, nearest_state, nearest_distance,
            )
            return nearest_state
        return None

    @staticmethod
    def parent_zone(zone: str) -> Optional[str]:
        """Return the enclosing zone (``US-CA`` -> ``US``), or None."""
        if "-" in zone:
            return zone.split("-", 1)[0]
        return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _region_zone(country: str, region: str) -> Optional[str]:
        code = region.strip().upper()
        if country == "US":
            code = US_STATE_NAMES.get(code, code)
            if code in US_STATES:
                return f"US-{code}"
            return None
        candidate = code if code.startswith(f"{country}-") else f"{country}-{code}"
        if candidate in REGION_ZONES:
            return candidate
        return None

    @staticmethod
    def _coordinate_zone(country: str, latitude: float, longitude: float) -> Optional[str]:
        best: Optional[str] = None
        best_distance = math.inf
        for zone, (lat, lon) in ZONE_CENTROIDS.items():
            if zone.split("-", 1)[0] != country:
                continue
            if abs(latitude - lat) > _BOX_DEGREES or abs(longitude - lon) > _BOX_DEGREES:
                continue
            distance = math.hypot(latitude - lat, longitude - lon)
            if distance < best_distance:
                best_distance = distance
                best = zone
        return best


__all__ = [
    "GeographicResolver",
    "US_POSTAL_PREFIX_RANGES",
    "US_STATES",
    "REGION_ZONES",
    "COUNTRY_ZONES",
    "CLOUD_REGION_ZONES",
]
