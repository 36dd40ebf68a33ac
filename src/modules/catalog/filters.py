import django_filters

from modules.catalog.models import Product


class ProductFilter(django_filters.FilterSet):
    name = django_filters.CharFilter(field_name="name", lookup_expr="icontains")
    sku = django_filters.CharFilter(field_name="sku", lookup_expr="iexact")
    min_price = django_filters.NumberFilter(field_name="price", lookup_expr="gte")
    max_price = django_filters.NumberFilter(field_name="price", lookup_expr="lte")
    category = django_filters.UUIDFilter(field_name="categories__id")
    prod_type = django_filters.CharFilter(field_name="prod_type", lookup_expr="iexact")

    class Meta:
        model = Product
        fields = ["name", "sku", "min_price", "max_price", "category", "prod_type"]
