from locust import HttpUser, task, between
import random


class BackofficeUser(HttpUser):
    wait_time = between(0.1, 0.5)

    def on_start(self):
        # One customer phone per simulated client
        self.phone = f"+1555{random.randint(1_000_000, 9_999_999)}"
        self.order_ids = []

    @task(3)
    def create_order(self):
        price = round(random.uniform(0.01, 100), 2)
        r = self.client.post(
            "/orders-with-transaction",
            json={
                "name": "Load item",
                "description": "generated",
                "price": str(price),
                "quantity": random.randint(1, 5),
                "customer_phone": self.phone,
            },
        )
        if r.status_code == 201:
            self.order_ids.append(r.json()["order"]["id"])

    @task(1)
    def update_order(self):
        if not self.order_ids:
            return
        order_id = random.choice(self.order_ids)
        self.client.put(
            f"/orders-with-transaction/{order_id}",
            json={"quantity": random.randint(1, 10)},
            name="/orders-with-transaction/[id]",
        )

    @task(1)
    def list_orders(self):
        self.client.get("/orders/by-user", params={"phone": self.phone})
