from decimal import Decimal

import factory
from catalog.models import Product
from django.contrib.auth import get_user_model
from factory import Faker
from factory.django import DjangoModelFactory


class UserFactory(DjangoModelFactory):
    class Meta:
        model = get_user_model()
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"shopper{n}")
    email = factory.LazyAttribute(lambda o: f"{o.username}@example.com")
    password = factory.PostGenerationMethodCall("set_password", "pass")


class StaffUserFactory(UserFactory):
    username = factory.Sequence(lambda n: f"staff{n}")
    is_staff = True


class ProductFactory(DjangoModelFactory):
    class Meta:
        model = Product

    name = Faker("sentence", nb_words=3)
    brand = Faker("company")
    category = "audio"
    sku = factory.Sequence(lambda n: f"SKU-{n:05d}")
    price = Decimal("1000.00")
    original_price = None
    quantity = 10
    is_active = True
    images = factory.LazyFunction(lambda: ["https://images.example.com/product.jpg"])
    colors = factory.LazyFunction(lambda: ["Black", "Silver"])
    sizes = factory.LazyFunction(list)
