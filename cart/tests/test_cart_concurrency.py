import threading
from typing import List

import pytest
from cart.models import Cart
from cart.services import add_line
from cart.tests.factories import UserFactory
from common.choices import CartStatus
from common.principal import Principal
from django.db import close_old_connections, connection
from pricing.tests.fakes import FakeVendorClient


def _add_line_worker(barrier: threading.Barrier, principal, successes: List[int], errors: List[Exception]):
    # Ensure this thread uses its own DB connection
    close_old_connections()
    barrier.wait()
    try:
        line = add_line(principal=principal, product_id=42, quantity=1, option_ids=[11, 21], client=FakeVendorClient())
        successes.append(line.cart_id)
    except Exception as exc:  # pragma: no cover
        errors.append(exc)
    finally:
        connection.close()


@pytest.mark.django_db(transaction=True)
def test_threaded_first_adds_share_one_cart():
    if connection.vendor == "sqlite":
        pytest.skip("SQLite lacks real concurrent transactions; skipping threaded test.")
    principal = Principal(user=UserFactory())

    barrier = threading.Barrier(2)
    successes: List[int] = []
    errors: List[Exception] = []
    threads = [
        threading.Thread(target=_add_line_worker, args=(barrier, principal, successes, errors)) for _ in range(2)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # The unique open-cart constraint keeps a single cart; a losing create may surface as an error
    open_carts = Cart.objects.filter(user=principal.user, status__in=[CartStatus.OPEN, CartStatus.CHECKOUT])
    assert open_carts.count() == 1
    assert len(successes) >= 1
    assert len(set(successes)) == 1
