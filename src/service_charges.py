"""
Service charge price list

Static name/amount/sector entries maintained by admins and used when building
invoices.
"""

from typing import Dict, List, Optional, Tuple

from models import SERVICE_CHARGES, ServiceCharge


class ImportLineError(ValueError):
    """One or more lines of a bulk import could not be parsed."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


def parse_bulk_lines(text: str) -> Tuple[List[Dict], List[str]]:
    """Parse ``Service Name, Amount[, Sector]`` lines (comma or tab separated).

    Blank lines are skipped. Returns (charges, errors) with 1-based line numbers
    in the error messages.
    """
    charges: List[Dict] = []
    errors: List[str] = []
    for i, raw in enumerate(text.strip().splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        parts = line.split(",") if "," in line else line.split("\t")
        if len(parts) < 2:
            errors.append(f'line {i}: expected "Service Name, Amount"')
            continue
        name = parts[0].strip()
        if not name:
            errors.append(f"line {i}: service name is empty")
            continue
        try:
            amount = float(parts[1].strip())
        except ValueError:
            errors.append(f"line {i}: invalid amount {parts[1].strip()!r}")
            continue
        charge = {"name": name, "amount": amount, "sector": parts[2].strip() if len(parts) > 2 else ""}
        charges.append(charge)
    return charges, errors


class ServiceChargeCatalog:
    def __init__(self, store):
        self.store = store

    def all(self) -> List[ServiceCharge]:
        return [ServiceCharge.from_record(r) for r in self.store.list(SERVICE_CHARGES)]

    def search(self, term: str, sector: Optional[str] = None) -> List[ServiceCharge]:
        term = (term or "").lower()
        return [
            c for c in self.all()
            if term in c.name.lower() and (sector is None or c.sector == sector)
        ]

    def add(self, name: str, amount: float, sector: str = "") -> ServiceCharge:
        if not name or not name.strip():
            raise ValueError("service name is required")
        rec = self.store.create(SERVICE_CHARGES, {"name": name.strip(), "amount": float(amount), "sector": sector})
        return ServiceCharge.from_record(rec)

    def update(self, charge_id: str, **changes) -> ServiceCharge:
        allowed = {k: v for k, v in changes.items() if k in ("name", "amount", "sector")}
        if "amount" in allowed:
            allowed["amount"] = float(allowed["amount"])
        rec = self.store.update(SERVICE_CHARGES, charge_id, allowed)
        return ServiceCharge.from_record(rec)

    def delete(self, charge_id: str) -> str:
        return self.store.delete(SERVICE_CHARGES, charge_id)

    def bulk_import(self, text: str) -> List[ServiceCharge]:
        """Import every line or nothing."""
        charges, errors = parse_bulk_lines(text)
        if errors:
            raise ImportLineError(errors)
        if not charges:
            raise ImportLineError(["no service charges found"])
        created = [ServiceCharge.from_record(self.store.create(SERVICE_CHARGES, c)) for c in charges]
        print(f"✅ imported {len(created)} service charges")
        return created
