from datetime import timedelta
from decimal import Decimal

import pytest
from cart import services as cart_services
from cart.coupons import CouponBook
from cart.models import Cart, CartHistory
from cart.services import (
    CartChanged,
    CartItemNotFound,
    CartNotFound,
    EmptyCart,
    InvalidCoupon,
    MinimumNotMet,
    add_item,
    apply_coupon,
    checkout_cart,
    checkout_totals,
    cleanup_expired_carts,
    clear_cart,
    mark_abandoned_carts,
    normalize_cart_items,
    prune_cart_history,
    remove_coupon,
    remove_item,
    replace_cart,
    sync_cart,
    update_item_quantity,
    validate_cart,
)
from cart.tests.factories import CartFactory, ProductFactory, UserFactory
from catalog.models import Product
from catalog.services import InsufficientStock, ProductNotFound
from django.db import DatabaseError
from django.utils import timezone
from orders.models import Order

ADDRESS = {
    "first_name": "Asha",
    "last_name": "Rao",
    "address": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
    "phone": "9876543210",
    "email": "Asha@Example.com",
}


# Adding and updating lines


@pytest.mark.django_db
def test_add_item_creates_cart_line_with_snapshot():
    user = UserFactory()
    product = ProductFactory(price=Decimal("1000.00"), original_price=Decimal("1200.00"), quantity=5)

    cart = add_item(user=user, product_id=product.id, quantity=2, selected_color="Black")

    item = cart.items.get()
    assert item.cart_item_id == f"{product.id}_Black_default"
    assert item.price == Decimal("1000.00")
    assert item.original_price == Decimal("1200.00")
    assert item.product_snapshot["id"] == product.id
    assert cart.total_items == 2
    assert cart.total_price == Decimal("2000.00")
    assert cart.total_original_price == Decimal("2400.00")
    assert cart.total_savings == Decimal("400.00")
    assert cart.expires_at > timezone.now()

    history = CartHistory.objects.get(user=user)
    assert history.action == "add"
    assert history.items[0]["quantity"] == 2


@pytest.mark.django_db
def test_add_same_variant_merges_and_other_variant_is_separate():
    user = UserFactory()
    product = ProductFactory(quantity=10)

    add_item(user=user, product_id=product.id, quantity=1, selected_color="Black", selected_size="M")
    add_item(user=user, product_id=product.id, quantity=2, selected_color="Black", selected_size="M")
    cart = add_item(user=user, product_id=product.id, quantity=1, selected_color="Silver", selected_size="M")

    lines = {i.cart_item_id: i.quantity for i in cart.items.all()}
    assert lines == {f"{product.id}_Black_M": 3, f"{product.id}_Silver_M": 1}
    assert cart.total_items == 4


@pytest.mark.django_db
def test_add_item_missing_or_inactive_product():
    user = UserFactory()
    inactive = ProductFactory(is_active=False)

    with pytest.raises(ProductNotFound):
        add_item(user=user, product_id=999999)
    with pytest.raises(ProductNotFound):
        add_item(user=user, product_id=inactive.id)


@pytest.mark.django_db
def test_add_item_insufficient_stock_reports_available():
    user = UserFactory()
    product = ProductFactory(quantity=1)

    with pytest.raises(InsufficientStock) as exc:
        add_item(user=user, product_id=product.id, quantity=2)

    assert exc.value.details["available_quantity"] == 1
    assert not Cart.objects.filter(user=user, items__isnull=False).exists()


@pytest.mark.django_db
def test_update_quantity_to_zero_removes_line():
    user = UserFactory()
    product = ProductFactory()
    cart = add_item(user=user, product_id=product.id, quantity=2)
    key = cart.items.get().cart_item_id

    cart = update_item_quantity(user=user, cart_item_id=key, quantity=5)
    assert cart.items.get().quantity == 5
    assert cart.total_items == 5

    cart = update_item_quantity(user=user, cart_item_id=key, quantity=0)
    assert cart.items.count() == 0
    assert cart.total_items == 0
    assert cart.total_price == Decimal("0.00")


@pytest.mark.django_db
def test_update_and_remove_errors():
    user = UserFactory()
    with pytest.raises(CartNotFound):
        update_item_quantity(user=user, cart_item_id="1_default_default", quantity=1)
    with pytest.raises(CartNotFound):
        remove_item(user=user, cart_item_id="1_default_default")

    CartFactory(user=user)
    with pytest.raises(CartItemNotFound):
        update_item_quantity(user=user, cart_item_id="missing", quantity=1)


@pytest.mark.django_db
def test_remove_absent_item_is_a_noop():
    user = UserFactory()
    product = ProductFactory()
    add_item(user=user, product_id=product.id)

    cart = remove_item(user=user, cart_item_id="missing")
    assert cart.items.count() == 1

    cart = remove_item(user=user, cart_item_id=f"{product.id}_default_default")
    assert cart.items.count() == 0
    assert CartHistory.objects.filter(user=user, action="remove").count() == 2


@pytest.mark.django_db
def test_clear_cart_drops_items_and_coupon_and_logs_prior_state():
    user = UserFactory()
    product = ProductFactory(quantity=20)
    add_item(user=user, product_id=product.id, quantity=3)
    apply_coupon(user=user, code="SAVE10")

    cart = clear_cart(user=user)

    assert cart.items.count() == 0
    assert cart.total_items == 0
    assert cart.has_coupon is False
    entry = CartHistory.objects.filter(user=user, action="clear").get()
    assert entry.items[0]["quantity"] == 3
    assert entry.cart_snapshot["coupon"]["code"] == "SAVE10"

    with pytest.raises(CartNotFound):
        clear_cart(user=UserFactory())


@pytest.mark.django_db
def test_history_write_failure_does_not_break_mutation(monkeypatch, caplog):
    class _BrokenHistory:
        class objects:
            @staticmethod
            def create(**kwargs):
                raise DatabaseError("history table unavailable")

    monkeypatch.setattr(cart_services, "CartHistory", _BrokenHistory)
    user = UserFactory()
    product = ProductFactory()

    cart = add_item(user=user, product_id=product.id)

    assert cart.items.count() == 1
    assert "cart.history_failed" in caplog.messages


# Normalisation, replace and sync


def test_normalize_drops_malformed_and_merges_duplicates():
    items = normalize_cart_items(
        [
            {"productId": "7", "name": "Monitor", "price": 1000, "quantity": 1, "selectedColor": "Black"},
            {"product_id": 7, "name": "Monitor", "price": 1000, "quantity": 2, "selected_color": "Black"},
            {"id": 8, "name": "Cable", "price": 199.5, "originalPrice": 100, "quantity": 1},
            {"_id": 9, "name": "", "price": 10, "quantity": 1},
            {"id": 10, "name": "Bool price", "price": True, "quantity": 1},
            {"id": 11, "name": "Bool qty", "price": 10, "quantity": True},
            {"id": 12, "name": "Str qty", "price": 10, "quantity": "2"},
            {"id": 13, "name": "Negative", "price": -1, "quantity": 1},
            {"id": "abc", "name": "Bad id", "price": 10, "quantity": 1},
            {"id": 14, "name": "Zero qty", "price": 10, "quantity": 0},
            "not-a-dict",
        ]
    )

    by_key = {i["cart_item_id"]: i for i in items}
    assert set(by_key) == {"7_Black_default", "8_default_default"}
    assert by_key["7_Black_default"]["quantity"] == 3
    cable = by_key["8_default_default"]
    assert cable["price"] == Decimal("199.50")
    assert cable["original_price"] == Decimal("199.50")
    assert cable["brand"] == ""
    assert cable["images"] == []
    assert cable["selected_size"] is None


def test_normalize_non_list_is_empty():
    assert normalize_cart_items(None) == []
    assert normalize_cart_items({"id": 1}) == []


@pytest.mark.django_db
def test_replace_cart_keeps_only_valid_lines():
    user = UserFactory()
    product = ProductFactory()
    add_item(user=user, product_id=product.id)

    cart = replace_cart(
        user=user,
        items=[
            {"productId": 42, "name": "Amp", "price": 500, "quantity": 2},
            {"productId": 43, "name": "Broken", "price": "x", "quantity": 1},
        ],
    )

    assert [i.cart_item_id for i in cart.items.all()] == ["42_default_default"]
    assert cart.total_price == Decimal("1000.00")
    sync_entry = CartHistory.objects.get(user=user, action="sync")
    assert sync_entry.items[0]["product_id"] == product.id


@pytest.mark.django_db
def test_sync_applies_then_flags_stale_client_as_conflict():
    user = UserFactory()
    lines = [{"productId": 1, "name": "Amp", "price": 500, "quantity": 1}]

    first = sync_cart(user=user, items=lines, last_sync_time=None)
    assert first.conflict is False
    assert first.cart.last_sync_time is not None
    server_time = first.cart.last_sync_time

    stale = sync_cart(
        user=user,
        items=[{"productId": 2, "name": "Other", "price": 10, "quantity": 1}],
        last_sync_time=(server_time - timedelta(minutes=5)).isoformat(),
    )
    assert stale.conflict is True
    assert [i.cart_item_id for i in stale.cart.items.all()] == ["1_default_default"]

    missing = sync_cart(user=user, items=[], last_sync_time=None)
    assert missing.conflict is True
    assert missing.cart.items.count() == 1

    newer_ms = int((server_time + timedelta(minutes=5)).timestamp() * 1000)
    fresh = sync_cart(
        user=user,
        items=[{"productId": 2, "name": "Other", "price": 10, "quantity": 1}],
        last_sync_time=newer_ms,
    )
    assert fresh.conflict is False
    assert [i.cart_item_id for i in fresh.cart.items.all()] == ["2_default_default"]
    assert fresh.cart.last_sync_time > server_time


# Validation against the catalog


@pytest.mark.django_db
def test_validate_drops_missing_products():
    user = UserFactory()
    keep = ProductFactory()
    gone = ProductFactory()
    hidden = ProductFactory()
    for product in (keep, gone, hidden):
        add_item(user=user, product_id=product.id)
    gone.delete()
    Product.objects.filter(id=hidden.id).update(is_active=False)

    cart, issues = validate_cart(user=user)

    assert {i.issue for i in issues} == {"product_not_found"}
    assert len(issues) == 2
    assert [i.product_id for i in cart.items.all()] == [keep.id]
    assert cart.total_items == 1


@pytest.mark.django_db
def test_validate_adopts_new_price_and_reports_change():
    user = UserFactory()
    product = ProductFactory(price=Decimal("1000.00"), quantity=5)
    add_item(user=user, product_id=product.id, quantity=2)
    Product.objects.filter(id=product.id).update(price=Decimal("800.00"))

    cart, issues = validate_cart(user=user)

    assert len(issues) == 1
    issue = issues[0].as_dict()
    assert issue["issue"] == "price_changed"
    assert issue["old_price"] == "1000.00"
    assert issue["new_price"] == "800.00"
    item = cart.items.get()
    assert item.price == Decimal("800.00")
    assert item.original_price == Decimal("1000.00")
    assert cart.total_price == Decimal("1600.00")
    assert cart.total_savings == Decimal("400.00")


@pytest.mark.django_db
def test_validate_reports_insufficient_stock_without_changing_quantity():
    user = UserFactory()
    product = ProductFactory(quantity=5)
    add_item(user=user, product_id=product.id, quantity=3)
    Product.objects.filter(id=product.id).update(quantity=1)

    cart, issues = validate_cart(user=user)

    assert [i.as_dict()["available_quantity"] for i in issues] == [1]
    assert issues[0].issue == "insufficient_stock"
    assert cart.items.get().quantity == 3


@pytest.mark.django_db
def test_validate_without_cart():
    with pytest.raises(CartNotFound):
        validate_cart(user=UserFactory())


# Coupons and totals


@pytest.mark.django_db
def test_fixed_coupon_minimum_order():
    user = UserFactory()
    product = ProductFactory(price=Decimal("2000.00"), quantity=10)
    add_item(user=user, product_id=product.id, quantity=2)

    with pytest.raises(MinimumNotMet) as exc:
        apply_coupon(user=user, code="SAVE500")
    assert exc.value.details["min_order"] == "5000"

    add_item(user=user, product_id=product.id, quantity=1)
    cart = apply_coupon(user=user, code="save500")
    assert cart.coupon_code == "SAVE500"
    assert cart.coupon_type == "fixed"
    assert cart.total_price == Decimal("6000.00")

    totals = checkout_totals(cart)
    assert totals.coupon_discount == Decimal("500.00")
    assert totals.total == Decimal("5500.00")


@pytest.mark.django_db
def test_invalid_coupon_and_remove():
    user = UserFactory()
    product = ProductFactory()
    add_item(user=user, product_id=product.id)

    with pytest.raises(InvalidCoupon):
        apply_coupon(user=user, code="BOGUS")

    apply_coupon(user=user, code="WELCOME15")
    cart = remove_coupon(user=user)
    assert cart.has_coupon is False
    assert cart.coupon_snapshot() is None

    with pytest.raises(CartNotFound):
        remove_coupon(user=UserFactory())


@pytest.mark.django_db
def test_checkout_totals_preview_and_lapsed_minimum():
    user = UserFactory()
    product = ProductFactory(price=Decimal("3000.00"), quantity=10)
    cart = add_item(user=user, product_id=product.id, quantity=2)
    apply_coupon(user=user, code="SAVE500")

    preview = checkout_totals(Cart.objects.get(id=cart.id), coupon_code="SAVE10")
    assert preview.coupon_code == "SAVE10"
    assert preview.coupon_discount == Decimal("600.00")
    assert Cart.objects.get(id=cart.id).coupon_code == "SAVE500"

    assert checkout_totals(Cart.objects.get(id=cart.id), coupon_code="NOPE").coupon_discount == Decimal("0.00")

    cart = update_item_quantity(user=user, cart_item_id=f"{product.id}_default_default", quantity=1)
    totals = checkout_totals(cart)
    assert totals.coupon_discount == Decimal("0.00")
    assert totals.total == Decimal("3000.00")


@pytest.mark.django_db
def test_coupon_book_can_be_injected():
    user = UserFactory()
    product = ProductFactory(price=Decimal("100.00"))
    add_item(user=user, product_id=product.id)
    book = CouponBook.from_mapping({"STAFF50": {"discount": 50, "type": "percentage"}})

    cart = apply_coupon(user=user, code="staff50", coupons=book)

    assert checkout_totals(cart, coupons=book).total == Decimal("50.00")
    with pytest.raises(InvalidCoupon):
        apply_coupon(user=user, code="SAVE10", coupons=book)


# Checkout


@pytest.mark.django_db
def test_checkout_places_order_and_empties_cart():
    user = UserFactory()
    monitor = ProductFactory(price=Decimal("3000.00"), quantity=5)
    cable = ProductFactory(price=Decimal("200.00"), quantity=10)
    add_item(user=user, product_id=monitor.id, quantity=2, selected_color="Black")
    add_item(user=user, product_id=cable.id, quantity=1)
    apply_coupon(user=user, code="SAVE500")

    order = checkout_cart(user=user, shipping_address=ADDRESS, payment_method="cod")

    assert order.status == "pending"
    assert order.total_price == Decimal("5700.00")
    assert order.discount_amount == Decimal("500.00")
    assert order.shipping_address.email == "asha@example.com"
    assert {(i.product_id, i.quantity, i.selected_color) for i in order.items.all()} == {
        (monitor.id, 2, "Black"),
        (cable.id, 1, None),
    }
    monitor.refresh_from_db()
    cable.refresh_from_db()
    assert (monitor.quantity, cable.quantity) == (3, 9)

    cart = Cart.objects.get(user=user)
    assert cart.items.count() == 0
    assert cart.total_items == 0
    assert cart.has_coupon is False
    assert CartHistory.objects.filter(user=user, action="checkout").count() == 1


@pytest.mark.django_db
def test_checkout_failure_leaves_cart_and_stock_untouched():
    user = UserFactory()
    plenty = ProductFactory(quantity=10)
    scarce = ProductFactory(quantity=5)
    add_item(user=user, product_id=plenty.id, quantity=2)
    add_item(user=user, product_id=scarce.id, quantity=3)
    Product.objects.filter(id=scarce.id).update(quantity=1)

    with pytest.raises(InsufficientStock):
        checkout_cart(user=user, shipping_address=ADDRESS, payment_method="cod")

    plenty.refresh_from_db()
    scarce.refresh_from_db()
    assert (plenty.quantity, scarce.quantity) == (10, 1)
    assert Order.objects.filter(user=user).count() == 0
    cart = Cart.objects.get(user=user)
    assert cart.items.count() == 2
    assert cart.total_items == 5
    assert not CartHistory.objects.filter(user=user, action="checkout").exists()


@pytest.mark.django_db
def test_checkout_after_price_change_asks_for_confirmation_then_charges_live_price():
    user = UserFactory()
    product = ProductFactory(price=Decimal("1000.00"), quantity=10)
    add_item(user=user, product_id=product.id, quantity=2)
    Product.objects.filter(id=product.id).update(price=Decimal("1500.00"))

    with pytest.raises(CartChanged) as exc:
        checkout_cart(user=user, shipping_address=ADDRESS, payment_method="cod")

    assert exc.value.status_code == 409
    assert exc.value.details["issues"] == [
        {
            "cart_item_id": f"{product.id}_default_default",
            "issue": "price_changed",
            "message": "Price has changed",
            "old_price": "1000.00",
            "new_price": "1500.00",
        }
    ]
    assert Order.objects.filter(user=user).count() == 0
    cart = Cart.objects.get(user=user)
    assert cart.total_price == Decimal("3000.00")
    product.refresh_from_db()
    assert product.quantity == 10

    order = checkout_cart(user=user, shipping_address=ADDRESS, payment_method="cod")

    lines = sum(item.price * item.quantity for item in order.items.all())
    assert lines == Decimal("3000.00")
    assert order.total_price == lines


@pytest.mark.django_db
def test_checkout_drops_delisted_products_and_places_nothing():
    user = UserFactory()
    kept = ProductFactory(quantity=5)
    delisted = ProductFactory(quantity=5)
    add_item(user=user, product_id=kept.id, quantity=1)
    add_item(user=user, product_id=delisted.id, quantity=1)
    Product.objects.filter(id=delisted.id).update(is_active=False)

    with pytest.raises(CartChanged) as exc:
        checkout_cart(user=user, shipping_address=ADDRESS, payment_method="cod")

    assert [issue["issue"] for issue in exc.value.details["issues"]] == ["product_not_found"]
    assert Order.objects.filter(user=user).count() == 0
    delisted.refresh_from_db()
    assert delisted.quantity == 5
    assert list(Cart.objects.get(user=user).items.values_list("product_id", flat=True)) == [kept.id]


@pytest.mark.django_db
def test_checkout_empty_cart():
    user = UserFactory()
    CartFactory(user=user)
    with pytest.raises(EmptyCart):
        checkout_cart(user=user, shipping_address=ADDRESS, payment_method="cod")


# Maintenance


@pytest.mark.django_db
def test_mark_abandoned_carts():
    now = timezone.now()
    stale = CartFactory(total_items=2, last_updated=now - timedelta(days=10))
    empty_stale = CartFactory(total_items=0, last_updated=now - timedelta(days=10))
    recent = CartFactory(total_items=1, last_updated=now - timedelta(days=1))

    assert mark_abandoned_carts(days=7) == 1

    stale.refresh_from_db()
    assert stale.is_abandoned is True
    assert stale.abandoned_at is not None
    assert Cart.objects.get(id=empty_stale.id).is_abandoned is False
    assert Cart.objects.get(id=recent.id).is_abandoned is False


@pytest.mark.django_db
def test_mutation_clears_abandoned_flag():
    user = UserFactory()
    CartFactory(user=user, is_abandoned=True, abandoned_at=timezone.now())
    cart = add_item(user=user, product_id=ProductFactory().id)
    assert cart.is_abandoned is False
    assert cart.abandoned_at is None


@pytest.mark.django_db
def test_cleanup_expired_carts_and_prune_history():
    now = timezone.now()
    expired = CartFactory(expires_at=now - timedelta(days=1))
    live = CartFactory(expires_at=now + timedelta(days=1))
    CartHistory.objects.create(user=live.user, action="add", timestamp=now - timedelta(days=120))
    CartHistory.objects.create(user=live.user, action="add", timestamp=now - timedelta(days=1))

    assert cleanup_expired_carts() == 1
    assert not Cart.objects.filter(id=expired.id).exists()
    assert Cart.objects.filter(id=live.id).exists()

    assert prune_cart_history(days=90) == 1
    assert CartHistory.objects.filter(user=live.user).count() == 1
