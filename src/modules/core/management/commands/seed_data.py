from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.orders.constants import SimulatedFault
from modules.orders.dtos import CreateOrderDTO, ShipOrderDTO
from modules.orders.models import Order
from modules.tracking.runtime import build_order_service
from modules.zones.dtos import ZoneInputDTO
from modules.zones.models import DeliveryZone
from modules.zones.repositories.django_repository import ZoneDjangoRepository
from modules.zones.services import ZoneService

DEPOT = (120.30, 30.30)

SEED_ZONES = [
    {
        "name": "Downtown",
        "description": "5 km around the depot",
        "rule_id": 101,
        "shape_type": "circle",
        "coordinates": [DEPOT],
        "radius_meters": 5000,
    },
    {
        "name": "East district",
        "description": "",
        "rule_id": 102,
        "shape_type": "polygon",
        "coordinates": [
            (120.34, 30.27),
            (120.42, 30.27),
            (120.42, 30.33),
            (120.34, 30.33),
        ],
    },
]

RECIPIENTS = [
    ("Li Wei", "12 Lakeside Rd", (120.31, 30.31)),
    ("Zhang Min", "88 West St", (120.28, 30.29)),
    ("Wang Fang", "5 Harbor Ln", (120.38, 30.30)),
    ("Chen Jie", "301 Garden Ave", (120.40, 30.29)),
    ("Liu Yang", "7 Bridge St", (120.32, 30.28)),
]


def _route(start, end, steps: int = 10):
    return [
        (
            round(start[0] + (end[0] - start[0]) * i / steps, 6),
            round(start[1] + (end[1] - start[1]) * i / steps, 6),
        )
        for i in range(steps + 1)
    ]


class Command(BaseCommand):
    help = "Seed database with merchants, delivery zones and orders for development."

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        merchant, customer, users_created = self._seed_users()
        zones = self._seed_zones(str(merchant.pk))
        orders_created = self._seed_orders(str(merchant.pk), str(customer.pk))

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={users_created}, "
                f"zones={len(zones)}, "
                f"orders={orders_created}"
            )
        )

    def _seed_users(self):
        User = get_user_model()
        created = 0
        if not User.objects.filter(username="admin").exists():
            User.objects.create_superuser("admin", password="admin123")
            created += 1
        merchant, was_created = User.objects.get_or_create(username="merchant")
        if was_created:
            merchant.set_password("merchant123")
            merchant.save()
            created += 1
        customer, was_created = User.objects.get_or_create(username="customer")
        if was_created:
            customer.set_password("customer123")
            customer.save()
            created += 1
        return merchant, customer, created

    def _seed_zones(self, merchant_id: str) -> list[DeliveryZone]:
        self.stdout.write("Creating zones...")
        service = ZoneService(repository=ZoneDjangoRepository())
        zones = service.list_zones(merchant_id)
        if zones:
            self.stdout.write(self.style.WARNING("Zones already present, skipping."))
            return zones
        for data in SEED_ZONES:
            zones.append(service.create_zone(merchant_id, ZoneInputDTO(**data)))
        self.stdout.write(self.style.SUCCESS("Creating zones... Done!"))
        return zones

    def _seed_orders(self, merchant_id: str, user_id: str) -> int:
        self.stdout.write("Creating orders...")
        if Order.objects.filter(merchant_id=merchant_id).exists():
            self.stdout.write(self.style.WARNING("Orders already present, skipping."))
            return 0

        service = build_order_service()
        faults = [None, None, SimulatedFault.LONG_TIME_STOPPED, SimulatedFault.ROUTE_DEVIATION, None]
        created = 0
        for (name, address, point), fault in zip(RECIPIENTS, faults):
            order = service.create_order(
                CreateOrderDTO(
                    merchant_id=merchant_id,
                    user_id=user_id,
                    amount=Decimal(random.randint(1500, 30000)) / 100,
                    recipient_name=name,
                    recipient_address=address,
                    recipient_coordinate=point,
                    simulated_fault=fault,
                )
            )
            created += 1
            # The last recipient stays pending.
            if created < len(RECIPIENTS):
                service.attach_route_and_ship(
                    order.id,
                    ShipOrderDTO(rule_id=order.rule_id, route_path=_route(DEPOT, point)),
                    merchant_id=merchant_id,
                )

        self.stdout.write(self.style.SUCCESS("Creating orders... Done!"))
        return created
