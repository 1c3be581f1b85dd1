from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.orders.constants import OrderStatus
from modules.orders.dtos import CreateOrderDTO, OrderItemDTO, PaymentReferenceDTO
from modules.orders.services import build_order_service

MENU = [
    ("Masala Dosa", Decimal("40.00")),
    ("Idli Vada", Decimal("30.00")),
    ("Veg Thali", Decimal("80.00")),
    ("Paneer Roll", Decimal("55.00")),
    ("Filter Coffee", Decimal("15.00")),
    ("Lemon Tea", Decimal("12.00")),
]

STUDENTS = [
    ("Aarav Sharma", "aarav@example.com", "9876543210"),
    ("Diya Patel", "diya@example.com", "9123456780"),
    ("Ishaan Nair", "ishaan@example.com", "9988776655"),
    ("Meera Iyer", "meera@example.com", "9090909090"),
    ("Rohan Das", "rohan@example.com", "9012345678"),
]


class Command(BaseCommand):
    help = "Seed the database with a staff account and today's demo orders."

    def add_arguments(self, parser):
        parser.add_argument("--orders", type=int, default=10)

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users_created = self._seed_users()
        tokens = self._seed_orders(options["orders"])

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={users_created}, "
                f"orders={len(tokens)}, "
                f"tokens={', '.join(tokens)}"
            )
        )

    def _seed_users(self) -> int:
        User = get_user_model()
        created = 0
        if not User.objects.filter(username="admin").exists():
            User.objects.create_superuser("admin", password="admin123")
            created += 1
        if not User.objects.filter(username="counter").exists():
            User.objects.create_user("counter", password="counter123", is_staff=True)
            created += 1
        return created

    def _seed_orders(self, count: int) -> list[str]:
        service = build_order_service()
        tokens: list[str] = []
        for index in range(count):
            name, email, phone = random.choice(STUDENTS)
            items = [
                OrderItemDTO(name=dish, unit_price=price, quantity=random.randint(1, 3))
                for dish, price in random.sample(MENU, k=random.randint(1, 3))
            ]
            dto = CreateOrderDTO(
                customer_name=name,
                customer_email=email,
                customer_phone=phone,
                items=items,
                total_amount=sum((item.subtotal for item in items), Decimal("0.00")),
                payment=PaymentReferenceDTO(
                    payment_id=f"pay_seed_{index:04d}",
                    signature="seed",
                    gateway_order_id=f"order_seed_{index:04d}",
                ),
            )
            order, created = service.create_order(dto)
            if not created:
                continue
            # Spread the queue over the open states
            if index % 3:
                service.transition(order.id, OrderStatus.PREPARING, actor="seed")
            if index % 3 == 2:
                service.transition(order.id, OrderStatus.READY, actor="seed")
            tokens.append(order.token)
        return tokens
