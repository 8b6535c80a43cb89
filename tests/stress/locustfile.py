"""
Lilium Load Testing with Locust

Run against a seeded server (flask --app wsgi system seed-demo):
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001

Or headless:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001 \
           --users 10 --spawn-rate 2 --run-time 60s --headless

Pass thresholds:
- p95 response time < 500ms for reads
- p95 response time < 1000ms for writes
- Error rate < 1%

Expected business failures (409 out of stock, 400 insufficient balance)
count as successes.
"""

import os
import time
import random
from typing import Dict, List

from locust import HttpUser, task, between, events


# =============================================================================
# CONFIGURATION
# =============================================================================

# Actor headers for the demo data created by `system seed-demo`
SHOP_OWNER = {"X-Actor-Id": os.environ.get("LILIUM_SHOP_ID", "1"), "X-Actor-Role": "SHOP_OWNER"}
SUPER_ADMIN = {"X-Actor-Id": os.environ.get("LILIUM_ADMIN_ID", "2"), "X-Actor-Role": "SUPER_ADMIN"}
COMPANY_ID = int(os.environ.get("LILIUM_COMPANY_ID", "1"))
COMPANY_ADMIN = {
    "X-Actor-Id": os.environ.get("LILIUM_VENDOR_ADMIN_ID", "4"),
    "X-Actor-Role": "COMPANY_ADMIN",
    "X-Actor-Company": str(COMPANY_ID),
}
ADDRESS_ID = int(os.environ.get("LILIUM_ADDRESS_ID", "1"))
PRODUCT_IDS = [int(p) for p in os.environ.get("LILIUM_PRODUCT_IDS", "1,3").split(",")]


# =============================================================================
# METRICS TRACKING
# =============================================================================

class MetricsCollector:
    """Collect and report metrics."""

    def __init__(self):
        self.request_counts: Dict[str, int] = {}
        self.error_counts: Dict[str, int] = {}
        self.response_times: Dict[str, List[float]] = {}

    def record(self, name: str, response_time: float, success: bool):
        if name not in self.request_counts:
            self.request_counts[name] = 0
            self.error_counts[name] = 0
            self.response_times[name] = []

        self.request_counts[name] += 1
        if not success:
            self.error_counts[name] += 1
        self.response_times[name].append(response_time)

    def get_summary(self) -> Dict:
        summary = {}
        for name, times in self.response_times.items():
            times = sorted(times)
            count = len(times)
            if count == 0:
                continue
            summary[name] = {
                "count": self.request_counts[name],
                "errors": self.error_counts[name],
                "error_rate": self.error_counts[name] / self.request_counts[name] * 100,
                "avg_ms": sum(times) / count,
                "p95_ms": times[min(int(count * 0.95), count - 1)],
            }
        return summary


metrics = MetricsCollector()


# =============================================================================
# USER BEHAVIORS
# =============================================================================

class LiliumUser(HttpUser):
    wait_time = between(0.5, 2)
    abstract = True

    headers: Dict[str, str] = {}

    def timed(self, name: str, method: str, path: str, ok=(200,), **kwargs):
        start = time.time()
        response = self.client.request(method, path, headers=self.headers, name=name, **kwargs)
        metrics.record(name, (time.time() - start) * 1000, response.status_code in ok)
        return response


class ShopOwnerUser(LiliumUser):
    """Browses their orders, prices carts and checks out."""
    weight = 4
    headers = SHOP_OWNER

    def _cart(self):
        products = random.sample(PRODUCT_IDS, k=random.randint(1, len(PRODUCT_IDS)))
        return {
            "address_id": ADDRESS_ID,
            "items": [{"product_id": p, "quantity": random.randint(1, 3)} for p in products],
        }

    @task(4)
    def cart_summary(self):
        self.timed("cart/summary", "POST", "/api/cart/summary", json=self._cart())

    @task(3)
    def checkout(self):
        response = self.timed("cart/checkout", "POST", "/api/cart/checkout", ok=(201, 409), json=self._cart())
        if response.status_code == 201 and random.random() < 0.2:
            order_id = response.json()["orders"][0]["id"]
            self.timed("orders/cancel", "POST", f"/api/orders/{order_id}/cancel", json={"reason": "load test"})

    @task(3)
    def list_orders(self):
        self.timed("orders/list", "GET", "/api/orders", params={"limit": 20})

    @task(1)
    def saved_cart(self):
        self.timed("cart/saved_put", "PUT", "/api/cart/saved", json={"items": self._cart()["items"]})
        self.timed("cart/saved_get", "GET", "/api/cart/saved")

    @task(1)
    def health_check(self):
        self.timed("system/health", "GET", "/api/health")


class OperationsUser(LiliumUser):
    """Super admin moving orders towards delivery."""
    weight = 2
    headers = SUPER_ADMIN

    NEXT_STATUS = {
        "PENDING": "CONFIRMED",
        "CONFIRMED": "PROCESSING",
        "PROCESSING": "SHIPPED",
        "SHIPPED": "DELIVERED",
    }

    @task(4)
    def advance_orders(self):
        status = random.choice(list(self.NEXT_STATUS))
        response = self.timed("orders/list_by_status", "GET", "/api/orders", params={"status": status, "limit": 5})
        if response.status_code != 200:
            return
        for order in response.json()["orders"]:
            self.timed(
                "orders/transition",
                "POST",
                f"/api/orders/{order['id']}/status",
                ok=(200, 409),
                json={"status": self.NEXT_STATUS[status]},
            )

    @task(1)
    def stats(self):
        self.timed("orders/stats", "GET", "/api/orders/stats")

    @task(1)
    def restock(self):
        self.timed(
            "inventory/adjust",
            "POST",
            "/api/inventory/adjust",
            ok=(201,),
            json={"product_id": random.choice(PRODUCT_IDS), "delta": random.randint(5, 20), "note": "Load test restock"},
        )


class VendorUser(LiliumUser):
    """Company admin watching settlements and requesting payouts."""
    weight = 1
    headers = COMPANY_ADMIN

    @task(3)
    def balance(self):
        self.timed("settlements/balance", "GET", f"/api/settlements/{COMPANY_ID}/balance")

    @task(2)
    def summary(self):
        self.timed("settlements/summary", "GET", f"/api/settlements/{COMPANY_ID}/summary")

    @task(1)
    def request_payout(self):
        self.timed("payouts/create", "POST", "/api/payouts", ok=(201, 400), json={"method": "CASH"})

    @task(2)
    def low_stock(self):
        self.timed("inventory/low_stock", "GET", "/api/inventory/low-stock")


# =============================================================================
# EVENT HANDLERS
# =============================================================================

@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Print summary when test stops."""
    print("\n" + "=" * 80)
    print("LOAD TEST SUMMARY")
    print("=" * 80)

    summary = metrics.get_summary()

    print(f"\n{'Endpoint':<30} {'Count':>8} {'Errors':>8} {'Err%':>8} {'Avg(ms)':>10} {'P95(ms)':>10}")
    print("-" * 80)

    total_requests = 0
    total_errors = 0
    all_pass = True

    for name, stats in sorted(summary.items()):
        total_requests += stats["count"]
        total_errors += stats["errors"]

        is_write = any(word in name for word in ("checkout", "cancel", "transition", "adjust", "create", "put"))
        passed = stats["p95_ms"] < (1000 if is_write else 500) and stats["error_rate"] < 1
        if not passed:
            all_pass = False

        print(f"{name:<30} {stats['count']:>8} {stats['errors']:>8} {stats['error_rate']:>7.2f}% "
              f"{stats['avg_ms']:>9.1f} {stats['p95_ms']:>9.1f} [{'PASS' if passed else 'FAIL'}]")

    print("-" * 80)
    print(f"{'TOTAL':<30} {total_requests:>8} {total_errors:>8} {total_errors/max(total_requests,1)*100:>7.2f}%")
    print("=" * 80)
    print("\n[PASS] All endpoints within thresholds" if all_pass else "\n[FAIL] Some endpoints exceeded thresholds")
