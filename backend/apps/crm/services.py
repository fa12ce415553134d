# apps/crm/services.py

from apps.core.exceptions import ValidationError
from .models import Customer, Property


class CustomerReferenceMixin:
    """Resolves customer and property references for tenant-scoped services"""

    def resolve_customer(self, customer_id):
        if customer_id in (None, ''):
            raise ValidationError('Customer is required', field='customer_id')
        return self.get_for_tenant(Customer, customer_id, 'Customer')

    def resolve_property(self, property_id, customer=None, required=True):
        if property_id in (None, ''):
            if required:
                raise ValidationError('Property is required', field='property_id')
            return None
        prop = self.get_for_tenant(Property, property_id, 'Property')
        if customer is not None and prop.customer_id != customer.pk:
            raise ValidationError(
                'Property does not belong to the selected customer', field='property_id'
            )
        return prop
