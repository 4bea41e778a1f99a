from django.core.cache import cache
from django.test import SimpleTestCase
from rest_framework.exceptions import NotFound

from common.exception_handler import marketplace_exception_handler
from common.utils import Location, bounding_box, distance_km, within_radius
from common.utils.rate_limit import FixedWindowLimiter
from services.exceptions import InvalidCoordinate, RateLimitExceeded, SchedulingConflict


class GeoIndexTests(SimpleTestCase):
	def setUp(self):
		self.colombo = Location(6.9271, 79.8612)
		self.galle = Location(6.0535, 80.2210)

	def test_distance_to_self_is_zero(self):
		for point in (self.colombo, self.galle, Location(90, 180), Location(-90, -180)):
			self.assertEqual(distance_km(point, point), 0)

	def test_distance_is_symmetric(self):
		self.assertEqual(distance_km(self.colombo, self.galle), distance_km(self.galle, self.colombo))

	def test_colombo_to_galle(self):
		# ~105 km great-circle
		self.assertAlmostEqual(distance_km(self.colombo, self.galle), 104.9, delta=1.5)

	def test_within_radius_is_inclusive(self):
		d = distance_km(self.colombo, self.galle)
		self.assertTrue(within_radius(self.colombo, self.galle, d))
		self.assertFalse(within_radius(self.colombo, self.galle, d - 0.01))

	def test_invalid_coordinates_are_rejected_not_clamped(self):
		for lat, lng in ((90.0001, 0), (-91, 0), (0, 180.5), (0, -181), (float("nan"), 0)):
			with self.assertRaises(InvalidCoordinate):
				Location(lat, lng)
		with self.assertRaises(InvalidCoordinate):
			Location.from_values("north", "east")

	def test_bounding_box_contains_every_point_in_radius(self):
		box = bounding_box(self.colombo, 5)
		self.assertAlmostEqual(box.max_lat - box.min_lat, 10 / 111.0, places=6)
		self.assertGreater(box.max_lng - box.min_lng, box.max_lat - box.min_lat)
		# 4.9 km due north/east/south/west are all inside
		for lat_offset, lng_offset in ((0.044, 0), (-0.044, 0), (0, 0.0443), (0, -0.0443)):
			point = Location(self.colombo.latitude + lat_offset, self.colombo.longitude + lng_offset)
			self.assertLess(distance_km(self.colombo, point), 5)
			self.assertTrue(box.contains(point))
		self.assertFalse(box.contains(self.galle))

	def test_bounding_box_is_clamped_at_the_pole(self):
		box = bounding_box(Location(89.99, 10), 50)
		self.assertEqual(box.max_lat, 90.0)
		self.assertEqual((box.min_lng, box.max_lng), (-180.0, 180.0))


class RateLimiterTests(SimpleTestCase):
	def setUp(self):
		cache.clear()
		self.limiter = FixedWindowLimiter("test-scope", limit=3, window_seconds=3600)

	def test_allows_up_to_limit_then_blocks(self):
		self.assertEqual([self.limiter.hit("k") for _ in range(4)], [True, True, True, False])

	def test_keys_are_independent(self):
		for _ in range(3):
			self.limiter.check("a")
		with self.assertRaises(RateLimitExceeded):
			self.limiter.check("a")
		self.limiter.check("b")

	def test_reset_clears_counter(self):
		for _ in range(3):
			self.limiter.hit("k")
		self.limiter.reset("k")
		self.assertTrue(self.limiter.hit("k"))


class ExceptionHandlerTests(SimpleTestCase):
	def test_marketplace_errors_render_code_and_category_status(self):
		response = marketplace_exception_handler(SchedulingConflict("Taken", provider_id=3), {})
		self.assertEqual(response.status_code, 409)
		self.assertEqual(
			response.data,
			{"error": "scheduling_conflict", "message": "Taken", "details": {"provider_id": 3}},
		)

	def test_default_message_is_used(self):
		response = marketplace_exception_handler(InvalidCoordinate(), {})
		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data["error"], "invalid_coordinate")
		self.assertTrue(response.data["message"])

	def test_other_errors_fall_through_to_drf(self):
		response = marketplace_exception_handler(NotFound(), {})
		self.assertEqual(response.status_code, 404)
