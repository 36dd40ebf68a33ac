"""Django ORM implementation of the tax rate repository.

Rate look-ups are memoised per repository instance, keyed by the
(country, state, zip) triple, since one order asks for the same
jurisdiction several times.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from django.core.exceptions import ValidationError
from django.db.models import Q

from modules.core.address import Address
from modules.taxes.models import TaxRate
from modules.taxes.repositories.interfaces import ITaxRateRepository


class TaxRateDjangoRepository(ITaxRateRepository):
    """Concrete tax rate repository backed by Django ORM."""

    def __init__(self) -> None:
        self._matches: Dict[Tuple[str, str, str], Optional[TaxRate]] = {}

    def get_by_id(self, id: Any) -> Optional[TaxRate]:
        try:
            return TaxRate.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[TaxRate]:
        queryset = TaxRate.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def save(self, entity: TaxRate) -> TaxRate:
        entity.save()
        self._matches.clear()
        return entity

    def delete(self, id: Any) -> bool:
        deleted, _ = TaxRate.objects.filter(id=id).delete()
        self._matches.clear()
        return deleted > 0

    def best_match(self, address: Address) -> Optional[TaxRate]:
        key = (address.country, address.state, address.zip)
        if key in self._matches:
            return self._matches[key]

        match = None
        if address.country:
            candidates = TaxRate.objects.filter(country=address.country).filter(
                Q(state="") | Q(state=address.state)
            )
            applicable = [
                rate
                for rate in candidates
                if not rate.zip_prefix or address.zip.startswith(rate.zip_prefix)
            ]
            if applicable:
                match = max(applicable, key=lambda rate: rate.specificity)

        self._matches[key] = match
        return match
