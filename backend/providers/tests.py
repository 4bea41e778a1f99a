from datetime import datetime, time, timedelta
from decimal import Decimal
from unittest.mock import patch

from django.core.cache import cache
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from bookings.models import Booking
from common.utils import Location
from services.exceptions import ProviderProfileNotAllowed, RateLimitExceeded, ValidationFailure
from services.matching import SearchFilters, search_providers
from .models import DriverProfile, GuideProfile
from .services import create_provider_profile, set_provider_online, update_provider_location
from .views import ProviderLocationView, ProviderProfileView, ProviderSearchView

ALL_DAYS = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']
ORIGIN = Location(6.9271, 79.8612)


def add_guide(username, lat_offset=0.0, **fields):
	user = User.objects.create_user(username=username, password='pass1234', role='guide', verification_tier=2)
	defaults = dict(
		available_days=ALL_DAYS,
		working_hours_start=time(8),
		working_hours_end=time(18),
		is_online=True,
		current_latitude=Decimal(str(round(ORIGIN.latitude + lat_offset, 6))),
		current_longitude=Decimal(str(ORIGIN.longitude)),
		base_rate=Decimal('1000'),
		verification_status='verified',
		languages=['English'],
	)
	defaults.update(fields)
	return GuideProfile.objects.create(user=user, **defaults)


def next_week(start_hour=10, end_hour=12):
	day = timezone.localdate() + timedelta(days=7)
	return (
		timezone.make_aware(datetime.combine(day, time(start_hour))),
		timezone.make_aware(datetime.combine(day, time(end_hour))),
	)


class ProviderSearchTests(TestCase):
	def setUp(self):
		# ~1 km of latitude per 0.009 degrees
		self.near = add_guide('near', 0.0, rating=Decimal('3.5'), base_rate=Decimal('2000'))
		self.mid = add_guide('mid', 0.027, rating=Decimal('4.8'), base_rate=Decimal('800'))
		self.far = add_guide('far', 0.18)

	def usernames(self, matches):
		return [match.provider.user.username for match in matches]

	def test_radius_and_distance_order(self):
		matches = search_providers(ORIGIN, 10)

		self.assertEqual(self.usernames(matches), ['near', 'mid'])
		self.assertAlmostEqual(matches[1].distance_km, 3.0, delta=0.1)

	def test_sort_by_rating_and_price(self):
		self.assertEqual(self.usernames(search_providers(ORIGIN, 10, sort_key='rating')), ['mid', 'near'])
		self.assertEqual(self.usernames(search_providers(ORIGIN, 10, sort_key='price')), ['mid', 'near'])

	def test_premium_subscribers_come_first(self):
		GuideProfile.objects.filter(pk=self.mid.pk).update(subscription_tier='premium')
		self.assertEqual(self.usernames(search_providers(ORIGIN, 10)), ['mid', 'near'])

	def test_offline_providers_are_flagged_or_dropped(self):
		GuideProfile.objects.filter(pk=self.near.pk).update(is_online=False)

		self.assertEqual(self.usernames(search_providers(ORIGIN, 10)), ['mid'])

		matches = search_providers(ORIGIN, 10, SearchFilters(include_unavailable=True))
		self.assertEqual(self.usernames(matches), ['near', 'mid'])
		self.assertEqual(matches[0].availability.reason, 'provider_unavailable')

	def test_booked_provider_is_unavailable_for_overlapping_window(self):
		start, end = next_week()
		Booking.objects.create(
			booking_reference='B-SEARCH01',
			requester=User.objects.create_user(username='traveler', password='pass1234'),
			guide=self.near,
			booking_type='guide',
			start=start,
			end=end,
			duration_minutes=120,
			pickup_latitude=Decimal('6.927100'),
			pickup_longitude=Decimal('79.861200'),
			total_amount=Decimal('1000.00'),
			status='confirmed',
		)

		overlapping = SearchFilters(start=start + timedelta(hours=1), end=end + timedelta(hours=1))
		self.assertEqual(self.usernames(search_providers(ORIGIN, 10, overlapping)), ['mid'])

		overlapping.include_unavailable = True
		reasons = {m.provider.user.username: m.availability.reason for m in search_providers(ORIGIN, 10, overlapping)}
		self.assertEqual(reasons['near'], 'scheduling_conflict')

		after = SearchFilters(start=end, end=end + timedelta(hours=2))
		self.assertEqual(self.usernames(search_providers(ORIGIN, 10, after)), ['near', 'mid'])

	def test_attribute_filters(self):
		GuideProfile.objects.filter(pk=self.mid.pk).update(languages=['German', 'English'], verification_status='pending')

		self.assertEqual(self.usernames(search_providers(ORIGIN, 10, SearchFilters(language='german'))), ['mid'])
		self.assertEqual(self.usernames(search_providers(ORIGIN, 10, SearchFilters(verified_only=True))), ['near'])
		self.assertEqual(
			self.usernames(search_providers(ORIGIN, 10, SearchFilters(max_base_rate=Decimal('1000')))), ['mid']
		)
		self.assertEqual(
			self.usernames(search_providers(ORIGIN, 10, SearchFilters(min_rating=Decimal('4.0')))), ['mid']
		)

	def test_rejected_providers_are_never_listed(self):
		GuideProfile.objects.filter(pk=self.near.pk).update(verification_status='rejected')
		self.assertEqual(self.usernames(search_providers(ORIGIN, 10)), ['mid'])

	def test_kind_filter(self):
		user = User.objects.create_user(username='driver', password='pass1234', role='driver')
		DriverProfile.objects.create(
			user=user,
			available_days=ALL_DAYS,
			working_hours_start=time(8),
			working_hours_end=time(18),
			is_online=True,
			current_latitude=Decimal('6.930000'),
			current_longitude=Decimal('79.861200'),
			vehicle_number='WP-CAB-1234',
		)
		self.assertEqual(self.usernames(search_providers(ORIGIN, 10, SearchFilters(kind='driver'))), ['driver'])
		self.assertEqual(len(search_providers(ORIGIN, 10)), 3)

	def test_invalid_arguments(self):
		for radius in (0, -1, 101):
			with self.assertRaises(ValidationFailure):
				search_providers(ORIGIN, radius)
		with self.assertRaises(ValidationFailure):
			search_providers(ORIGIN, 10, sort_key='popularity')

	def test_search_view(self):
		factory = APIRequestFactory()
		request = factory.get('/api/providers/search/', {
			'latitude': ORIGIN.latitude,
			'longitude': ORIGIN.longitude,
			'radius_km': 10,
			'sort': 'rating',
		})
		force_authenticate(request, user=self.near.user)
		response = ProviderSearchView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 2)
		self.assertEqual(response.data['results'][0]['provider']['user']['username'], 'mid')


class ProviderProfileTests(TestCase):
	def setUp(self):
		cache.clear()
		self.factory = APIRequestFactory()

	def test_tier_one_users_cannot_offer_services(self):
		user = User.objects.create_user(username='newbie', password='pass1234')
		with self.assertRaises(ProviderProfileNotAllowed):
			create_provider_profile(user, 'guide', ['monday'], time(8), time(17), base_rate=Decimal('500'))

	def test_verified_traveler_becomes_guide(self):
		user = User.objects.create_user(username='local', password='pass1234', verification_tier=2)
		profile = create_provider_profile(user, 'guide', ['Monday', 'friday'], time(8), time(17), base_rate=Decimal('500'))

		user.refresh_from_db()
		self.assertEqual(user.role, 'guide')
		self.assertEqual(profile.available_days, ['monday', 'friday'])
		self.assertEqual(profile.verification_status, 'pending')

		with self.assertRaises(ValidationFailure):
			create_provider_profile(user, 'guide', ['monday'], time(8), time(17))

	def test_working_hours_must_be_ordered(self):
		user = User.objects.create_user(username='local', password='pass1234', verification_tier=2)
		with self.assertRaises(ValidationFailure):
			create_provider_profile(user, 'guide', ['monday'], time(17), time(8))

	def test_driver_profile_needs_vehicle_number(self):
		user = User.objects.create_user(username='cabbie', password='pass1234', verification_tier=3)
		request = self.factory.post('/api/providers/me/', {
			'kind': 'driver',
			'available_days': ['monday'],
			'working_hours_start': '08:00',
			'working_hours_end': '17:00',
			'base_rate': '100.00',
		}, format='json')
		force_authenticate(request, user=user)
		response = ProviderProfileView.as_view()(request)

		self.assertEqual(response.status_code, 400)
		self.assertIn('vehicle_number', response.data)

	def test_profile_view_without_profile_is_not_found(self):
		user = User.objects.create_user(username='traveler', password='pass1234')
		request = self.factory.get('/api/providers/me/')
		force_authenticate(request, user=user)
		response = ProviderProfileView.as_view()(request)
		self.assertEqual(response.status_code, 404)


@override_settings(MARKETPLACE={'LOCATION_UPDATES_PER_MINUTE': 2})
class ProviderLocationTests(TestCase):
	def setUp(self):
		cache.clear()
		self.guide = add_guide('mover', is_online=False)
		# Pin the rate-limit window
		patcher = patch('common.utils.rate_limit.time')
		clock = patcher.start()
		clock.time.return_value = 1_800_000_000.0
		self.addCleanup(patcher.stop)

	def test_updates_are_rate_limited(self):
		update_provider_location(self.guide.ref, 6.93, 79.85)
		update_provider_location(self.guide.ref, 6.94, 79.86)
		with self.assertRaises(RateLimitExceeded):
			update_provider_location(self.guide.ref, 6.95, 79.87)

		self.guide.refresh_from_db()
		self.assertEqual(self.guide.current_latitude, Decimal('6.940000'))

	def test_location_view(self):
		request = APIRequestFactory().post(
			'/api/providers/me/location/', {'latitude': '7.2906', 'longitude': '80.6337'}, format='json'
		)
		force_authenticate(request, user=self.guide.user)
		response = ProviderLocationView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertAlmostEqual(response.data['latitude'], 7.2906)

	def test_online_toggle(self):
		profile = set_provider_online(self.guide.ref, True)
		self.assertTrue(profile.is_online)
		self.guide.refresh_from_db()
		self.assertTrue(self.guide.is_online)
