import django_filters

from .models import Product


class ProductFilter(django_filters.FilterSet):
    """
    Catalog search filters. All supplied filters are combined with AND;
    price bounds are inclusive.
    """

    name = django_filters.CharFilter(field_name='name', lookup_expr='icontains')
    category = django_filters.CharFilter(field_name='category', lookup_expr='iexact')
    min_price = django_filters.NumberFilter(field_name='price', lookup_expr='gte')
    max_price = django_filters.NumberFilter(field_name='price', lookup_expr='lte')
    active = django_filters.BooleanFilter(field_name='is_active')

    class Meta:
        model = Product
        fields = ['name', 'category', 'min_price', 'max_price', 'active']
