import django_filters

from modules.orders.models import Order


class OrderFilter(django_filters.FilterSet):
    status = django_filters.CharFilter(field_name="status", lookup_expr="iexact")
    token = django_filters.CharFilter(field_name="token", lookup_expr="iexact")
    civil_date = django_filters.DateFilter(field_name="civil_date")
    start_date = django_filters.DateFilter(field_name="civil_date", lookup_expr="gte")
    end_date = django_filters.DateFilter(field_name="civil_date", lookup_expr="lte")

    class Meta:
        model = Order
        fields = ["status", "token", "civil_date", "start_date", "end_date"]
