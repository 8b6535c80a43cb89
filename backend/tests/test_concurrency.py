# Overview: Threaded tests for concurrent writers (oversell, order numbering, double cancel, payouts) and the SQLite write lock.

"""
Concurrency Tests

Runs real threads against a file-backed SQLite database (one connection per
thread). Every worker gets its own app context and therefore its own session.
"""

import threading

import pytest

from lilium import create_app
from lilium.errors import InsufficientBalance, InsufficientStock, InvalidTransition
from lilium.extensions import db
from lilium.models import Address, Company, Order, Product, StockChangeRecord, User
from lilium.policies import Actor, SHOP_OWNER, SUPER_ADMIN
from lilium.services.bootstrap import get_engine
from lilium.services.concurrency import begin_write
from lilium.services.stock_ledger import CANCELLATION, SALE
from lilium.validation import CreateOrderInput, CreatePayoutInput, OrderItemInput


SUPER = Actor(id=1, role=SUPER_ADMIN)


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'DB_RETRY_BACKOFF': 0,
        'NOTIFICATION_WEBHOOK_URL': None,
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def seeded(file_app):
    """Vendor, product and buyers; returns plain ids."""
    with file_app.app_context():
        vendor = Company(name="Karkh Foods", zones=["KARKH"], commission_rate_bps=1000)
        db.session.add(vendor)
        db.session.flush()
        product = Product(sku="CONCUR-1", name="Concurrent Rice", company_id=vendor.id, price=10000, stock=1, zones=["KARKH"])
        db.session.add(product)
        buyers = []
        for n in range(8):
            user = User(name=f"Buyer {n}", email=f"buyer{n}@lilium.test", role=SHOP_OWNER)
            db.session.add(user)
            db.session.flush()
            address = Address(user_id=user.id, label="Shop", zone="KARKH")
            db.session.add(address)
            db.session.flush()
            buyers.append((user.id, address.id))
        db.session.commit()
        return {"vendor_id": vendor.id, "product_id": product.id, "buyers": buyers}


def run_concurrently(app, *jobs):
    """Run each job in its own thread and app context; returns results or exceptions in job order."""
    results = [None] * len(jobs)
    barrier = threading.Barrier(len(jobs))

    def worker(index, job):
        with app.app_context():
            try:
                barrier.wait()
                results[index] = job(get_engine())
            except Exception as exc:
                results[index] = exc
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i, job)) for i, job in enumerate(jobs)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def order_job(buyer, product_id, quantity=1):
    user_id, address_id = buyer

    def job(engine):
        return engine.orders.create_order(CreateOrderInput(
            buyer_id=user_id,
            address_id=address_id,
            items=(OrderItemInput(product_id=product_id, quantity=quantity),),
        )).order_number

    return job


def set_stock(app, product_id, stock):
    with app.app_context():
        db.session.get(Product, product_id).stock = stock
        db.session.commit()


class TestBeginWrite:

    def test_opens_transaction_on_scoped_session(self, db_session):
        assert not db.session().in_transaction()

        begin_write(db.session)
        assert db.session().in_transaction()

        # Already open: joined, not restarted
        begin_write(db.session)
        db.session.rollback()

    def test_default_engine_writes(self, engine, db_session, place_order, rice):
        assert engine.orders.session is db.session

        order = place_order((rice, 2))

        assert order.order_number == "ORD-000001"
        assert db_session.get(Product, rice.id, populate_existing=True).stock == 48


class TestConcurrentOrders:

    def test_last_unit_is_sold_once(self, file_app, seeded):
        buyers = seeded["buyers"]

        results = run_concurrently(
            file_app,
            order_job(buyers[0], seeded["product_id"]),
            order_job(buyers[1], seeded["product_id"]),
        )

        successes = [r for r in results if isinstance(r, str)]
        failures = [r for r in results if not isinstance(r, str)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientStock)

        with file_app.app_context():
            assert db.session.get(Product, seeded["product_id"]).stock == 0
            assert db.session.query(StockChangeRecord).filter_by(reason=SALE).count() == 1
            assert db.session.query(Order).count() == 1

    def test_order_numbers_are_unique_and_gapless(self, file_app, seeded):
        set_stock(file_app, seeded["product_id"], 100)

        results = run_concurrently(file_app, *[order_job(b, seeded["product_id"]) for b in seeded["buyers"]])

        assert all(isinstance(r, str) for r in results), results
        assert sorted(results) == [f"ORD-{n:06d}" for n in range(1, len(results) + 1)]
        with file_app.app_context():
            assert db.session.get(Product, seeded["product_id"]).stock == 100 - len(results)

    def test_double_cancel_restores_stock_once(self, file_app, seeded):
        set_stock(file_app, seeded["product_id"], 10)
        with file_app.app_context():
            order = get_engine().orders.create_order(CreateOrderInput(
                buyer_id=seeded["buyers"][0][0],
                address_id=seeded["buyers"][0][1],
                items=(OrderItemInput(product_id=seeded["product_id"], quantity=4),),
            ))
            order_id = order.id
            db.session.remove()

        def cancel(engine):
            return engine.orders.cancel(order_id, SUPER, "duplicate").status

        results = run_concurrently(file_app, cancel, cancel)

        assert results.count("CANCELLED") == 1
        assert sum(isinstance(r, InvalidTransition) for r in results) == 1
        with file_app.app_context():
            assert db.session.get(Product, seeded["product_id"]).stock == 10
            assert db.session.query(StockChangeRecord).filter_by(reason=CANCELLATION).count() == 1


class TestConcurrentPayouts:

    def test_balance_is_paid_out_once(self, file_app, seeded):
        set_stock(file_app, seeded["product_id"], 10)
        with file_app.app_context():
            engine = get_engine()
            order = engine.orders.create_order(CreateOrderInput(
                buyer_id=seeded["buyers"][0][0],
                address_id=seeded["buyers"][0][1],
                items=(OrderItemInput(product_id=seeded["product_id"], quantity=3),),
            ))
            for status in ("CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED"):
                engine.orders.transition(order.id, status, None, SUPER)
            db.session.remove()

        def request_payout(engine):
            return engine.payouts.create_payout(
                CreatePayoutInput(company_id=seeded["vendor_id"], method="CASH")
            ).amount

        results = run_concurrently(file_app, request_payout, request_payout)

        assert results.count(27000) == 1
        assert sum(isinstance(r, InsufficientBalance) for r in results) == 1
        with file_app.app_context():
            assert get_engine().settlements.available_balance(seeded["vendor_id"]) == 0
