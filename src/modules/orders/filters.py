import django_filters

from modules.orders.models import Order


class OrderFilter(django_filters.FilterSet):
    status = django_filters.CharFilter(field_name="status", lookup_expr="iexact")
    merchant = django_filters.CharFilter(field_name="merchant_id")
    user = django_filters.CharFilter(field_name="user_id")
    abnormal = django_filters.BooleanFilter(field_name="is_abnormal")
    start_date = django_filters.DateFilter(field_name="created_at", lookup_expr="gte")
    end_date = django_filters.DateFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Order
        fields = [
            "status",
            "merchant",
            "user",
            "abnormal",
            "start_date",
            "end_date",
        ]
