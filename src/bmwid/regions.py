"""Static ConnectedDrive region table.

Each deployment of the identity service has its own client id, OAuth
``state`` value and token-endpoint Basic credentials.  These are published
constants of the mobile app, not something that can be discovered, so they
live here as a plain mapping from region code to :class:`RegionProfile`.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from bmwid.exceptions import ConfigError
from bmwid.models import RegionProfile

REGIONS: Mapping[str, RegionProfile] = MappingProxyType(
    {
        "NA": RegionProfile(
            code="NA",
            client_id="54394a4b-b6c1-45fe-b7b2-8fd3aa9253aa",
            auth_uri="https://login.bmwusa.com/gcdm",
            state="rgastJbZsMtup49-Lp0FMQ",
            token_authorization=(
                "Basic NTQzOTRhNGItYjZjMS00NWZlLWI3YjItOGZkM2FhOTI1M2FhOmQ5MmYz"
                "MWMwLWY1NzktNDRmNS1hNzdkLTk2NmY4ZjAwZTM1MQ=="
            ),
        ),
        "ROW": RegionProfile(
            code="ROW",
            client_id="31c357a0-7a1d-4590-aa99-33b97244d048",
            auth_uri="https://customer.bmwgroup.com/gcdm",
            state="cEG9eLAIi6Nv-aaCAniziE_B6FPoobva3qr5gukilYw",
            token_authorization=(
                "Basic MzFjMzU3YTAtN2ExZC00NTkwLWFhOTktMzNiOTcyNDRkMDQ4OmMwZTMz"
                "OTNkLTcwYTItNGY2Zi05ZDNjLTg1MzBhZjY0ZDU1Mg=="
            ),
        ),
    }
)


def resolve_region(code: str) -> RegionProfile:
    """Look up a region profile by code, ignoring case.

    Args:
        code: Region code such as ``"na"`` or ``"ROW"``.

    Returns:
        The matching :class:`RegionProfile`.

    Raises:
        ConfigError: If *code* is not a known region.
    """
    profile = REGIONS.get(code.strip().upper())
    if profile is None:
        available = ", ".join(sorted(REGIONS))
        raise ConfigError(
            f"Unknown region '{code}'. Available regions: {available}"
        )
    return profile
