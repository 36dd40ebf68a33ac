import django_filters

from modules.orders.models import Order


class OrderFilter(django_filters.FilterSet):
    status = django_filters.CharFilter(field_name="status", lookup_expr="iexact")
    owner = django_filters.NumberFilter(field_name="owner_id")
    order_number = django_filters.CharFilter(
        field_name="order_number", lookup_expr="iexact"
    )
    invoiced = django_filters.BooleanFilter(
        field_name="order_seq", lookup_expr="isnull", exclude=True
    )
    start_date = django_filters.DateFilter(field_name="created_at", lookup_expr="gte")
    end_date = django_filters.DateFilter(field_name="created_at", lookup_expr="lte")
    min_total = django_filters.NumberFilter(
        field_name="order_total", lookup_expr="gte"
    )
    max_total = django_filters.NumberFilter(
        field_name="order_total", lookup_expr="lte"
    )

    class Meta:
        model = Order
        fields = [
            "status",
            "owner",
            "order_number",
            "invoiced",
            "start_date",
            "end_date",
            "min_total",
            "max_total",
        ]
