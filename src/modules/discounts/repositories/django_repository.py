"""Django ORM implementation of the discount code repository."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from django.core.exceptions import ValidationError
from django.db.models import F
from django.utils import timezone

from modules.discounts.models import DiscountCode
from modules.discounts.repositories.interfaces import IDiscountCodeRepository


class DiscountCodeDjangoRepository(IDiscountCodeRepository):
    """Concrete discount code repository backed by Django ORM."""

    def get_by_id(self, id: Any) -> Optional[DiscountCode]:
        try:
            return DiscountCode.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[DiscountCode]:
        queryset = DiscountCode.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def save(self, entity: DiscountCode) -> DiscountCode:
        entity.save()
        return entity

    def delete(self, id: Any) -> bool:
        deleted, _ = DiscountCode.objects.filter(id=id).delete()
        return deleted > 0

    def get_by_code(self, code: str) -> Optional[DiscountCode]:
        return DiscountCode.objects.filter(code=code.strip().upper()).first()

    def increment_use(self, code: str) -> bool:
        updated = DiscountCode.objects.filter(code=code.strip().upper()).update(
            use_count=F("use_count") + 1, updated_at=timezone.now()
        )
        return updated > 0
