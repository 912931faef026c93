"""
Plan catalog loader.

Loads config/plans.yml, the single source of truth for plan prices per
region and the payment provider each region is routed to.

Usage:
    from panelpass.config.plans import get_plan_catalog

    catalog = get_plan_catalog()
    plan = catalog.get_plan("Day Pass", country_code="NG")
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

DAYPASS_PLAN_NAME = "Day Pass"
MEMBER_PLAN_NAME = "Shattahs Member"


class PlanCatalogError(Exception):
    """Raised when the plan catalog cannot be loaded."""
    pass


@dataclass(frozen=True)
class PlanDetails:
    """Price and tier for a plan in one region."""
    name: str
    tier: str
    amount: int
    currency: str
    provider: str
    interval: Optional[str] = None

    @property
    def is_recurring(self) -> bool:
        return self.interval is not None

    @property
    def major_amount(self) -> float:
        """Amount in major currency units (e.g., 4.99)."""
        return self.amount / 100


@dataclass(frozen=True)
class Region:
    name: str
    provider: str
    country_codes: List[str]
    plans: Dict[str, PlanDetails]


class PlanCatalog:
    """In-memory view of config/plans.yml."""

    def __init__(self, raw: Dict[str, Any]):
        regions = raw.get("regions") or {}
        if not regions:
            raise PlanCatalogError("plans.yml defines no regions")

        self._regions: Dict[str, Region] = {}
        for region_name, region_raw in regions.items():
            provider = region_raw.get("provider")
            if provider not in ("paypal", "paystack"):
                raise PlanCatalogError(
                    f"Region '{region_name}' has unsupported provider: {provider}"
                )
            plans = {
                plan_name: PlanDetails(
                    name=plan_name,
                    tier=plan_raw["tier"],
                    amount=int(plan_raw["amount"]),
                    currency=plan_raw["currency"],
                    provider=provider,
                    interval=plan_raw.get("interval"),
                )
                for plan_name, plan_raw in (region_raw.get("plans") or {}).items()
            }
            self._regions[region_name] = Region(
                name=region_name,
                provider=provider,
                country_codes=[c.upper() for c in region_raw.get("country_codes") or []],
                plans=plans,
            )

        self._default_region = raw.get("default_region") or next(iter(self._regions))
        if self._default_region not in self._regions:
            raise PlanCatalogError(f"Unknown default_region: {self._default_region}")

    def region_for_country(self, country_code: Optional[str]) -> Region:
        code = (country_code or "").upper()
        for region in self._regions.values():
            if code and code in region.country_codes:
                return region
        return self._regions[self._default_region]

    def get_plan(self, plan_name: str, country_code: Optional[str] = None) -> Optional[PlanDetails]:
        return self.region_for_country(country_code).plans.get(plan_name)


def _resolve_path(config_path: Optional[str] = None) -> Path:
    if config_path:
        return Path(config_path)

    env_path = os.getenv("PLANS_CONFIG_PATH")
    if env_path:
        return Path(env_path)

    candidates = [
        # From backend/ directory (typical working dir)
        Path(__file__).parent.parent.parent / "config" / "plans.yml",
        Path(os.getcwd()) / "config" / "plans.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return candidates[0]


def load_plan_catalog(config_path: Optional[str] = None) -> PlanCatalog:
    path = _resolve_path(config_path)
    try:
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise PlanCatalogError(f"Plan catalog not found: {path}") from e
    except yaml.YAMLError as e:
        raise PlanCatalogError(f"Invalid plan catalog YAML: {e}") from e

    catalog = PlanCatalog(raw)
    logger.info("Plan catalog loaded", extra={"path": str(path)})
    return catalog


_catalog: Optional[PlanCatalog] = None
_catalog_lock = Lock()


def get_plan_catalog() -> PlanCatalog:
    """Get the process-wide plan catalog, loading it on first use."""
    global _catalog
    if _catalog is None:
        with _catalog_lock:
            if _catalog is None:
                _catalog = load_plan_catalog()
    return _catalog
