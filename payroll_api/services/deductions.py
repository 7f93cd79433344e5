from __future__ import annotations
from dataclasses import dataclass, field, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional

from payroll_api.common.errors import DeductionsExceedGross

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Shipped rates. Override per deployment via app.config["PAYROLL_DEDUCTION_POLICY"].
DEFAULT_DEDUCTION_POLICY: Dict[str, Any] = {
    "income_tax_rate": "0.12",
    "professional_tax_flat": "200",
    "professional_tax_slabs": None,     # e.g. [{"min":0,"max":7500,"amount":0}, ...]
    "pf_rate": "0.12",
    "pf_wage_cap": "15000",             # None -> uncapped
    "esi_rate": "0.0075",
    "esi_ceiling": "21000",             # None -> always applies
    "health_insurance_flat": "150",
    "retirement_rate": "0.05",
}


def money(x) -> Decimal:
    """Round half-up to 2 dp."""
    return Decimal(str(x)).quantize(CENT, rounding=ROUND_HALF_UP)


def _opt_dec(x) -> Optional[Decimal]:
    if x is None or x == "":
        return None
    return Decimal(str(x))


@dataclass(frozen=True)
class ProfessionalTaxSlab:
    min: Decimal
    max: Decimal
    amount: Decimal


@dataclass(frozen=True)
class DeductionPolicy:
    income_tax_rate: Decimal
    professional_tax_flat: Decimal
    pf_rate: Decimal
    esi_rate: Decimal
    health_insurance_flat: Decimal
    retirement_rate: Decimal
    pf_wage_cap: Optional[Decimal] = None
    esi_ceiling: Optional[Decimal] = None
    professional_tax_slabs: tuple = field(default_factory=tuple)

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]] = None) -> "DeductionPolicy":
        cfg = dict(DEFAULT_DEDUCTION_POLICY)
        cfg.update(raw or {})

        slabs = tuple(
            ProfessionalTaxSlab(
                min=Decimal(str(s.get("min", 0))),
                max=Decimal(str(s.get("max", 10**12))),
                amount=Decimal(str(s.get("amount", 0))),
            )
            for s in (cfg.get("professional_tax_slabs") or [])
        )
        policy = cls(
            income_tax_rate=Decimal(str(cfg["income_tax_rate"])),
            professional_tax_flat=Decimal(str(cfg["professional_tax_flat"])),
            pf_rate=Decimal(str(cfg["pf_rate"])),
            esi_rate=Decimal(str(cfg["esi_rate"])),
            health_insurance_flat=Decimal(str(cfg["health_insurance_flat"])),
            retirement_rate=Decimal(str(cfg["retirement_rate"])),
            pf_wage_cap=_opt_dec(cfg.get("pf_wage_cap")),
            esi_ceiling=_opt_dec(cfg.get("esi_ceiling")),
            professional_tax_slabs=slabs,
        )
        policy._validate()
        return policy

    def _validate(self):
        for name in ("income_tax_rate", "professional_tax_flat", "pf_rate", "esi_rate",
                     "health_insurance_flat", "retirement_rate"):
            if getattr(self, name) < 0:
                raise ValueError(f"deduction policy {name} must be >= 0")
        for s in self.professional_tax_slabs:
            if s.amount < 0 or s.max < s.min:
                raise ValueError(f"invalid professional tax slab {s}")

    def as_meta(self) -> Dict[str, Any]:
        """JSON-safe trace stored on the payroll row."""
        out = {}
        for k, v in asdict(self).items():
            if k == "professional_tax_slabs":
                out[k] = [{kk: str(vv) for kk, vv in s.items()} for s in v] or None
            else:
                out[k] = str(v) if v is not None else None
        return out


@dataclass(frozen=True)
class DeductionBreakdown:
    income_tax: Decimal
    professional_tax: Decimal
    provident_fund: Decimal
    esi: Decimal
    health_insurance: Decimal
    retirement_contribution: Decimal

    @property
    def total(self) -> Decimal:
        return (self.income_tax + self.professional_tax + self.provident_fund
                + self.esi + self.health_insurance + self.retirement_contribution)

    def as_dict(self) -> Dict[str, Decimal]:
        return asdict(self)


def professional_tax(gross: Decimal, policy: DeductionPolicy) -> Decimal:
    if not policy.professional_tax_slabs:
        return policy.professional_tax_flat
    for slab in policy.professional_tax_slabs:
        if slab.min <= gross <= slab.max:
            return slab.amount
    return ZERO


def provident_fund(gross: Decimal, policy: DeductionPolicy) -> Decimal:
    base = gross
    if policy.pf_wage_cap is not None and base > policy.pf_wage_cap:
        base = policy.pf_wage_cap
    return base * policy.pf_rate


def esi(gross: Decimal, policy: DeductionPolicy) -> Decimal:
    if policy.esi_ceiling is not None and gross > policy.esi_ceiling:
        return ZERO
    return gross * policy.esi_rate


def compute_deductions(gross: Decimal, policy: DeductionPolicy) -> DeductionBreakdown:
    """
    Every component is rounded half-up on its own before the components are
    summed, so the total is reproducible from the stored figures alone.

    Raises DeductionsExceedGross when any component is negative or above gross,
    or when the total would push net pay below zero.
    """
    gross = money(gross)
    d = DeductionBreakdown(
        income_tax=money(gross * policy.income_tax_rate),
        professional_tax=money(professional_tax(gross, policy)),
        provident_fund=money(provident_fund(gross, policy)),
        esi=money(esi(gross, policy)),
        health_insurance=money(policy.health_insurance_flat),
        retirement_contribution=money(gross * policy.retirement_rate),
    )

    bad: List[str] = [k for k, v in d.as_dict().items() if v < 0 or v > gross]
    if bad or d.total > gross:
        raise DeductionsExceedGross(
            f"Deductions {d.total} exceed gross pay {gross}",
            payload={
                "gross_pay": str(gross),
                "total_deductions": str(d.total),
                "components": {k: str(v) for k, v in d.as_dict().items()},
                "offending": bad,
            },
        )
    return d


def net_pay(gross: Decimal, deductions: DeductionBreakdown) -> Decimal:
    return money(gross) - deductions.total
