from unittest import mock

from django.core.cache import cache
from django.urls import reverse
from rest_framework.test import APITestCase

from apps.users.models import User
from core.throttling import PlanCreationThrottle


class ThrottleSmokeTest(APITestCase):
    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(
            username="throttle_user",
            display_name="Throttle",
            role="PLANNER",
            department="Operations",
        )
        self.client.force_authenticate(self.user)
        self.url = reverse("plans:create-or-list-plans")

    def _create(self, key):
        return self.client.post(
            self.url,
            {
                "title": "Throttled plan",
                "planType": "annual",
                "fiscalYear": 2026,
                "startDate": "2026-01-01",
                "endDate": "2026-12-31",
                "totalAmount": "0",
            },
            format="json",
            HTTP_IDEMPOTENCY_KEY=key,
        )

    def test_mutation_requests_execute(self):
        response = self._create("throttle-1")
        self.assertEqual(response.status_code, 201)

    def test_plan_creation_is_capped_per_user(self):
        with mock.patch.object(
            PlanCreationThrottle, "THROTTLE_RATES", {"plan_create": "2/hour"}
        ):
            self.assertEqual(self._create("cap-1").status_code, 201)
            self.assertEqual(self._create("cap-2").status_code, 201)
            response = self._create("cap-3")

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.data["error"]["code"], "THROTTLED")

    def test_reads_are_not_throttled_by_creation_cap(self):
        with mock.patch.object(
            PlanCreationThrottle, "THROTTLE_RATES", {"plan_create": "1/hour"}
        ):
            for _ in range(3):
                self.assertEqual(self.client.get(self.url).status_code, 200)
