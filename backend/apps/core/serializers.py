# apps/core/serializers.py

from decimal import Decimal

from rest_framework import serializers

from .models import LineItemBase


class MoneyField(serializers.DecimalField):
    """Money always crosses the API as a two-place decimal string"""

    def __init__(self, **kwargs):
        kwargs.setdefault('max_digits', 12)
        kwargs.setdefault('decimal_places', 2)
        kwargs['coerce_to_string'] = True
        super().__init__(**kwargs)


class LineItemSerializer(serializers.ModelSerializer):
    """Read shape shared by job, estimate option and invoice line items"""

    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, coerce_to_string=True, read_only=True)
    unit_price = MoneyField(read_only=True)
    total = MoneyField(read_only=True)

    class Meta:
        fields = ['id', 'description', 'quantity', 'unit_price', 'total', 'item_type', 'sort_order']
        read_only_fields = fields


class LineItemInputSerializer(serializers.Serializer):
    """Write shape for a new line item"""

    description = serializers.CharField(max_length=500)
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, default=Decimal('1.00'))
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2)
    item_type = serializers.ChoiceField(choices=LineItemBase.ITEM_TYPE_CHOICES, default='service')
    sort_order = serializers.IntegerField(min_value=0, required=False)


class LineItemUpdateSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=500, required=False)
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    item_type = serializers.ChoiceField(choices=LineItemBase.ITEM_TYPE_CHOICES, required=False)
    sort_order = serializers.IntegerField(min_value=0, required=False)


def line_items_data(items):
    """Plain dicts for the service layer from validated line item input"""
    return [dict(item) for item in items or []]
