# apps/crm/tests/factories.py
import factory
from factory.django import DjangoModelFactory

from apps.core.tests.factories import TenantFactory
from apps.crm.models import Customer, Property


class CustomerFactory(DjangoModelFactory):
    class Meta:
        model = Customer

    tenant = factory.SubFactory(TenantFactory)
    customer_type = 'residential'
    first_name = factory.Faker('first_name')
    last_name = factory.Faker('last_name')
    email = factory.Faker('email')
    phone = factory.Faker('numerify', text='555-###-####')


class PropertyFactory(DjangoModelFactory):
    class Meta:
        model = Property

    tenant = factory.LazyAttribute(lambda obj: obj.customer.tenant)
    customer = factory.SubFactory(CustomerFactory)
    address_line1 = factory.Faker('street_address')
    city = factory.Faker('city')
    state = factory.Faker('state_abbr')
    postal_code = factory.Faker('postcode')
    is_primary = True


__all__ = ['CustomerFactory', 'PropertyFactory']
