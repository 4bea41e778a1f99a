import threading
from datetime import datetime, time, timedelta
from decimal import Decimal
from io import StringIO
from unittest import skipUnless
from unittest.mock import patch

from django.core import mail
from django.core.cache import cache
from django.core.management import call_command
from django.db import connection
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from common.utils import Location
from providers.models import DriverProfile, GuideProfile
from services.booking_management import (
	cancel_booking,
	complete_booking,
	confirm_booking,
	create_booking,
	rate_booking,
	start_booking,
)
from services.dispatch import (
	complete_ride,
	expire_ride_request,
	report_incident,
	request_ride,
	resolve_incident,
	respond_to_ride,
	share_trip,
	start_ride,
	trigger_sos,
)
from services.exceptions import (
	AlreadyRated,
	CancellationWindowClosed,
	InvalidRating,
	InvalidTransition,
	NotCompleted,
	PartySizeExceeded,
	ProviderUnavailable,
	SchedulingConflict,
	Unauthorized,
	ValidationFailure,
)
from services.matching import ProviderRef
from services.pricing import SurgeInputs
from .models import Booking, BookingStatus, CancelledBy, IncidentStatus, IncidentType, PaymentStatus
from .views import booking_action, create_booking_view, trigger_sos_view

ALL_DAYS = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']
COLOMBO = (6.9271, 79.8612)


def make_user(username, role='traveler', **extra):
	return User.objects.create_user(
		username=username,
		password='pass1234',
		email=f'{username}@example.com',
		role=role,
		**extra
	)


def make_guide(username='guide', **fields):
	defaults = dict(
		available_days=ALL_DAYS,
		working_hours_start=time(8),
		working_hours_end=time(18),
		is_online=True,
		current_latitude=Decimal('6.927100'),
		current_longitude=Decimal('79.861200'),
		base_rate=Decimal('1000'),
		verification_status='verified',
		languages=['english', 'sinhala'],
	)
	defaults.update(fields)
	return GuideProfile.objects.create(user=make_user(username, 'guide', verification_tier=2), **defaults)


def make_driver(username='driver', **fields):
	defaults = dict(
		available_days=ALL_DAYS,
		working_hours_start=time(8),
		working_hours_end=time(18),
		is_online=True,
		current_latitude=Decimal('6.928000'),
		current_longitude=Decimal('79.862000'),
		base_rate=Decimal('100'),
		per_km_rate=Decimal('50'),
		per_minute_rate=Decimal('2'),
		verification_status='verified',
		vehicle_number=f'WP-{username}',
	)
	defaults.update(fields)
	return DriverProfile.objects.create(user=make_user(username, 'driver', verification_tier=2), **defaults)


def local_window(days_ahead=7, start_hour=10, end_hour=12):
	day = timezone.localdate() + timedelta(days=days_ahead)
	return (
		timezone.make_aware(datetime.combine(day, time(start_hour))),
		timezone.make_aware(datetime.combine(day, time(end_hour))),
	)


def pickup():
	return Location(*COLOMBO)


def make_booking(requester, guide, hours_ahead, status=BookingStatus.CONFIRMED, **fields):
	start = timezone.now() + timedelta(hours=hours_ahead)
	defaults = dict(
		booking_reference=f'B-T{Booking.objects.count():07d}',
		requester=requester,
		guide=guide,
		booking_type='guide',
		start=start,
		end=start + timedelta(hours=2),
		duration_minutes=120,
		pickup_latitude=Decimal('6.927100'),
		pickup_longitude=Decimal('79.861200'),
		total_amount=Decimal('1000.00'),
		status=status,
		payment_status=PaymentStatus.PAID,
	)
	defaults.update(fields)
	return Booking.objects.create(**defaults)


class BookingCreationTests(TestCase):
	def setUp(self):
		cache.clear()
		self.traveler = make_user('traveler')
		self.guide = make_guide()
		self.start, self.end = local_window()

	def book(self, user=None, refs=None, **kwargs):
		kwargs.setdefault('surge_inputs', SurgeInputs())
		return create_booking(
			user or self.traveler,
			refs or [ProviderRef.guide(self.guide.id)],
			kwargs.pop('start', self.start),
			kwargs.pop('end', self.end),
			pickup(),
			**kwargs
		)

	def test_creates_pending_booking_with_price(self):
		result = self.book()
		booking = result.booking

		self.assertTrue(result.success)
		self.assertEqual(booking.status, BookingStatus.PENDING)
		self.assertEqual(booking.booking_type, 'guide')
		self.assertTrue(booking.booking_reference.startswith('B-'))
		self.assertEqual(booking.duration_minutes, 120)
		self.assertEqual(booking.total_amount, Decimal('1000.00'))
		self.assertEqual(booking.commission_amount, Decimal('100.00'))
		self.assertEqual(booking.platform_fee, Decimal('0.00'))

	def test_only_one_of_many_attempts_for_same_slot_succeeds(self):
		travelers = [make_user(f'traveler_{i}') for i in range(5)]
		created, conflicts = 0, 0
		for traveler in travelers:
			try:
				self.book(user=traveler)
				created += 1
			except SchedulingConflict:
				conflicts += 1

		self.assertEqual(created, 1)
		self.assertEqual(conflicts, 4)
		self.assertEqual(Booking.objects.filter(guide=self.guide).count(), 1)

	def test_adjacent_windows_do_not_conflict(self):
		self.book()
		later_start, later_end = local_window(start_hour=12, end_hour=14)
		result = self.book(user=make_user('other'), start=later_start, end=later_end)
		self.assertTrue(result.success)

	def test_cancelled_booking_frees_the_slot(self):
		booking = self.book().booking
		Booking.objects.filter(pk=booking.pk).update(status=BookingStatus.CANCELLED)
		self.assertTrue(self.book(user=make_user('other')).success)

	def test_combined_booking_prices_each_provider(self):
		driver = make_driver(base_rate=Decimal('500'), per_km_rate=0, per_minute_rate=0)
		result = self.book(refs=[ProviderRef.driver(driver.id), ProviderRef.guide(self.guide.id)])
		booking = result.booking

		self.assertEqual(booking.booking_type, 'combined')
		self.assertEqual(booking.total_amount, Decimal('1500.00'))
		self.assertEqual(booking.commission_amount, Decimal('125.00'))
		self.assertEqual(set(booking.price_breakdown['parts']), {'guide', 'driver'})

	def test_offline_provider_is_rejected(self):
		GuideProfile.objects.filter(pk=self.guide.pk).update(is_online=False)
		with self.assertRaises(ProviderUnavailable):
			self.book()

	def test_party_larger_than_capacity_is_rejected(self):
		with self.assertRaises(PartySizeExceeded):
			self.book(party_size=11)

	def test_two_guides_are_rejected(self):
		other = make_guide('guide_two')
		with self.assertRaises(ValidationFailure):
			self.book(refs=[ProviderRef.guide(self.guide.id), ProviderRef.guide(other.id)])


@skipUnless(connection.vendor == 'postgresql', 'row locks need PostgreSQL')
class ConcurrentBookingTests(TransactionTestCase):
	def setUp(self):
		cache.clear()
		self.guide = make_guide()
		self.travelers = [make_user(f'racer_{i}') for i in range(6)]
		self.start, self.end = local_window()

	def test_parallel_requests_for_one_slot_book_it_once(self):
		barrier = threading.Barrier(len(self.travelers))
		outcomes = []
		lock = threading.Lock()

		def attempt(traveler):
			try:
				barrier.wait()
				create_booking(
					traveler, [ProviderRef.guide(self.guide.id)], self.start, self.end,
					pickup(), surge_inputs=SurgeInputs(),
				)
				outcome = 'created'
			except SchedulingConflict:
				outcome = 'conflict'
			finally:
				connection.close()
			with lock:
				outcomes.append(outcome)

		threads = [threading.Thread(target=attempt, args=(t,)) for t in self.travelers]
		for thread in threads:
			thread.start()
		for thread in threads:
			thread.join()

		self.assertEqual(outcomes.count('created'), 1)
		self.assertEqual(outcomes.count('conflict'), len(self.travelers) - 1)
		self.assertEqual(Booking.objects.filter(guide=self.guide).count(), 1)


class BookingLifecycleTests(TestCase):
	def setUp(self):
		cache.clear()
		self.traveler = make_user('traveler')
		self.guide = make_guide(rating=Decimal('4.0'), total_reviews=10)
		self.admin = make_user('admin', 'admin')
		start, end = local_window()
		self.booking = create_booking(
			self.traveler, [ProviderRef.guide(self.guide.id)], start, end, pickup(),
			surge_inputs=SurgeInputs(),
		).booking

	def run_to_completion(self):
		confirm_booking(self.booking.id, self.guide.user)
		start_booking(self.booking.id, self.guide.user)
		return complete_booking(self.booking.id, self.guide.user, actual_distance_km=42)

	def test_full_flow(self):
		result = self.run_to_completion()
		booking = result.booking

		self.assertEqual(booking.status, BookingStatus.COMPLETED)
		self.assertIsNotNone(booking.confirmed_at)
		self.assertIsNotNone(booking.started_at)
		self.assertEqual(booking.final_amount, Decimal('1000.00'))
		self.assertEqual(booking.fare_variance, Decimal('0.00'))
		self.assertEqual(booking.commission_amount, Decimal('100.00'))
		self.assertEqual(result.extra['final_fare'], '1000.00')

		self.guide.refresh_from_db()
		self.traveler.refresh_from_db()
		self.assertEqual(self.guide.total_completed, 1)
		self.assertEqual(self.traveler.completed_bookings, 1)

	def test_requester_cannot_confirm(self):
		with self.assertRaises(Unauthorized):
			confirm_booking(self.booking.id, self.traveler)

	def test_admin_can_confirm(self):
		self.assertEqual(confirm_booking(self.booking.id, self.admin).booking.status, BookingStatus.CONFIRMED)

	def test_out_of_order_transitions(self):
		with self.assertRaises(InvalidTransition):
			start_booking(self.booking.id, self.guide.user)
		with self.assertRaises(InvalidTransition):
			complete_booking(self.booking.id, self.guide.user)

	def test_terminal_bookings_refuse_every_transition(self):
		self.run_to_completion()
		for action in (confirm_booking, start_booking, complete_booking):
			with self.assertRaises(InvalidTransition):
				action(self.booking.id, self.guide.user)
		with self.assertRaises(InvalidTransition):
			cancel_booking(self.booking.id, self.traveler)

	def test_rating_updates_running_average(self):
		self.run_to_completion()
		rate_booking(self.booking.id, self.traveler, 5, 'Great tour')

		self.guide.refresh_from_db()
		self.assertEqual(self.guide.rating, Decimal('4.1'))
		self.assertEqual(self.guide.total_reviews, 11)

		with self.assertRaises(AlreadyRated):
			rate_booking(self.booking.id, self.traveler, 4)
		self.guide.refresh_from_db()
		self.assertEqual(self.guide.total_reviews, 11)

	def test_rating_rules(self):
		with self.assertRaises(NotCompleted):
			rate_booking(self.booking.id, self.traveler, 5)
		with self.assertRaises(InvalidRating):
			rate_booking(self.booking.id, self.traveler, 6)
		self.run_to_completion()
		with self.assertRaises(Unauthorized):
			rate_booking(self.booking.id, self.guide.user, 5)


class CancellationTests(TestCase):
	def setUp(self):
		self.traveler = make_user('traveler')
		self.guide = make_guide()
		self.admin = make_user('admin', 'admin')

	def test_more_than_a_day_ahead_refunds_everything(self):
		booking = make_booking(self.traveler, self.guide, hours_ahead=30)
		result = cancel_booking(booking.id, self.traveler, 'Change of plans')

		booking.refresh_from_db()
		self.assertEqual(booking.status, BookingStatus.CANCELLED)
		self.assertEqual(booking.cancelled_by, CancelledBy.REQUESTER)
		self.assertEqual(booking.refund_amount, Decimal('1000.00'))
		self.assertEqual(booking.payment_status, PaymentStatus.REFUNDED)
		self.assertEqual(result.extra['refund_amount'], '1000.00')

	def test_between_cutoff_and_a_day_refunds_half(self):
		booking = make_booking(self.traveler, self.guide, hours_ahead=10)
		cancel_booking(booking.id, self.traveler)

		booking.refresh_from_db()
		self.assertEqual(booking.refund_amount, Decimal('500.00'))
		self.assertEqual(booking.payment_status, PaymentStatus.PARTIALLY_REFUNDED)

	def test_inside_cutoff_is_refused(self):
		booking = make_booking(self.traveler, self.guide, hours_ahead=1)
		with self.assertRaises(CancellationWindowClosed):
			cancel_booking(booking.id, self.traveler)
		with self.assertRaises(CancellationWindowClosed):
			cancel_booking(booking.id, self.guide.user)

		booking.refresh_from_db()
		self.assertEqual(booking.status, BookingStatus.CONFIRMED)

	def test_admin_bypasses_cutoff(self):
		booking = make_booking(self.traveler, self.guide, hours_ahead=1)
		cancel_booking(booking.id, self.admin, 'Provider emergency')

		booking.refresh_from_db()
		self.assertEqual(booking.cancelled_by, CancelledBy.ADMIN)
		self.assertEqual(booking.refund_amount, Decimal('0.00'))

	def test_provider_cancellation_is_recorded(self):
		booking = make_booking(self.traveler, self.guide, hours_ahead=30)
		cancel_booking(booking.id, self.guide.user)

		booking.refresh_from_db()
		self.assertEqual(booking.cancelled_by, CancelledBy.PROVIDER)
		self.assertEqual(booking.cancelled_by_user, self.guide.user)

	def test_stranger_cannot_cancel(self):
		booking = make_booking(self.traveler, self.guide, hours_ahead=30)
		with self.assertRaises(Unauthorized):
			cancel_booking(booking.id, make_user('stranger'))

	def test_unpaid_booking_keeps_payment_status(self):
		booking = make_booking(self.traveler, self.guide, hours_ahead=30, payment_status=PaymentStatus.PENDING)
		cancel_booking(booking.id, self.traveler)

		booking.refresh_from_db()
		self.assertEqual(booking.payment_status, PaymentStatus.PENDING)


# 2030-01-09 is a Wednesday, inside the drivers' working hours
FIXED_NOW = timezone.make_aware(datetime(2030, 1, 9, 10, 0))


class RideDispatchTests(TestCase):
	def setUp(self):
		cache.clear()
		patcher = patch('django.utils.timezone.now', return_value=FIXED_NOW)
		patcher.start()
		self.addCleanup(patcher.stop)

		self.passenger = make_user('passenger')
		self.driver = make_driver()

	def request(self, **kwargs):
		kwargs.setdefault('distance', 10)
		kwargs.setdefault('estimated_duration_minutes', 20)
		return request_ride(self.passenger, self.driver.id, pickup(), **kwargs)

	def test_request_prices_ride_with_platform_fee(self):
		booking = self.request().booking

		self.assertEqual(booking.booking_type, 'ride')
		self.assertTrue(booking.booking_reference.startswith('R-'))
		self.assertEqual(booking.status, BookingStatus.PENDING)
		self.assertEqual(booking.start, FIXED_NOW)
		self.assertEqual(booking.platform_fee, Decimal('32.00'))
		self.assertEqual(booking.total_amount, Decimal('672.00'))

	def test_accept_start_complete_reprices_from_actuals(self):
		booking = self.request().booking

		self.assertEqual(respond_to_ride(booking.id, self.driver.user, 'accept').booking.status, BookingStatus.CONFIRMED)
		start_ride(booking.id, self.driver.user)
		result = complete_ride(booking.id, self.driver.user, actual_distance_km=12, actual_duration_minutes=25)

		self.assertEqual(result.booking.final_amount, Decimal('787.50'))
		self.assertEqual(result.booking.fare_variance, Decimal('115.50'))
		self.assertEqual(result.booking.commission_amount, Decimal('37.50'))
		self.assertEqual(result.extra['variance_percentage'], '17.19')

	def test_decline_refunds_in_full(self):
		booking = self.request().booking
		respond_to_ride(booking.id, self.driver.user, 'decline')

		booking.refresh_from_db()
		self.assertEqual(booking.status, BookingStatus.CANCELLED)
		self.assertEqual(booking.cancelled_by, CancelledBy.PROVIDER)
		self.assertEqual(booking.refund_amount, booking.total_amount)

	def test_only_requested_driver_can_respond(self):
		booking = self.request().booking
		other = make_driver('other_driver')
		with self.assertRaises(Unauthorized):
			respond_to_ride(booking.id, other.user, 'accept')

	def test_second_response_is_refused(self):
		booking = self.request().booking
		respond_to_ride(booking.id, self.driver.user, 'accept')
		with self.assertRaises(InvalidTransition):
			respond_to_ride(booking.id, self.driver.user, 'decline')

	def test_young_ride_is_not_expired(self):
		booking = self.request().booking
		result = expire_ride_request(booking.id, timeout_seconds=120)

		self.assertFalse(result.success)
		booking.refresh_from_db()
		self.assertEqual(booking.status, BookingStatus.PENDING)

	def test_unanswered_ride_expires(self):
		booking = self.request().booking
		Booking.objects.filter(pk=booking.pk).update(created_at=FIXED_NOW - timedelta(seconds=300))

		out = StringIO()
		call_command('process_ride_timeouts', timeout=120, stdout=out)

		booking.refresh_from_db()
		self.assertEqual(booking.status, BookingStatus.CANCELLED)
		self.assertEqual(booking.cancelled_by, CancelledBy.SYSTEM)
		self.assertEqual(booking.cancellation_reason, 'ProviderTimeout')
		self.assertEqual(booking.refund_amount, booking.total_amount)
		self.assertIn('Cancelled 1', out.getvalue())

	def test_accepted_ride_is_never_expired(self):
		booking = self.request().booking
		respond_to_ride(booking.id, self.driver.user, 'accept')
		Booking.objects.filter(pk=booking.pk).update(created_at=FIXED_NOW - timedelta(seconds=300))

		self.assertFalse(expire_ride_request(booking.id, timeout_seconds=120).success)
		booking.refresh_from_db()
		self.assertEqual(booking.status, BookingStatus.CONFIRMED)

	def test_non_ride_bookings_are_not_ride_actions(self):
		guide = make_guide()
		booking = make_booking(self.passenger, guide, hours_ahead=30)
		with self.assertRaises(InvalidTransition):
			start_ride(booking.id, guide.user)


class SafetyTests(TestCase):
	def setUp(self):
		self.traveler = make_user('traveler')
		self.guide = make_guide()
		self.moderator = make_user('moderator', 'moderator')
		self.booking = make_booking(self.traveler, self.guide, hours_ahead=30)

	@patch('services.dispatch.safety.notify_booking_parties')
	@patch('services.dispatch.safety.notify_safety_team')
	def test_sos_is_accepted_on_a_cancelled_booking(self, notify_safety, notify_parties):
		Booking.objects.filter(pk=self.booking.pk).update(status=BookingStatus.CANCELLED)

		with self.captureOnCommitCallbacks(execute=True):
			incident = trigger_sos(self.booking.id, self.traveler, pickup(), 'Help')

		self.assertEqual(incident.incident_type, IncidentType.SOS)
		self.assertEqual(incident.status, IncidentStatus.OPEN)
		self.assertEqual(incident.latitude, Decimal('6.927100'))
		notify_safety.assert_called_once()
		notify_parties.assert_called_once()

		self.booking.refresh_from_db()
		self.assertEqual(self.booking.status, BookingStatus.CANCELLED)

	def test_sos_from_someone_else_is_refused(self):
		with self.assertRaises(Unauthorized):
			trigger_sos(self.booking.id, self.guide.user)

	def test_safety_team_is_mailed(self):
		with self.settings(ADMINS=[('Safety desk', 'safety@example.com')]):
			with self.captureOnCommitCallbacks(execute=True):
				trigger_sos(self.booking.id, self.traveler, message='Driver is lost')
		self.assertEqual(len(mail.outbox), 1)
		self.assertIn('Driver is lost', mail.outbox[0].body)

	def test_report_and_resolve_incident(self):
		incident = report_incident(self.booking.id, self.guide.user, 'Traveler was abusive', ['photo.jpg'])
		self.assertEqual(incident.status, IncidentStatus.UNDER_REVIEW)
		self.assertEqual(incident.evidence, ['photo.jpg'])

		with self.assertRaises(Unauthorized):
			resolve_incident(incident.id, self.traveler)

		resolved = resolve_incident(incident.id, self.moderator)
		self.assertEqual(resolved.status, IncidentStatus.RESOLVED)
		self.assertEqual(resolved.resolved_by, self.moderator)

		with self.assertRaises(InvalidTransition):
			resolve_incident(incident.id, self.moderator)

	def test_stranger_cannot_report(self):
		with self.assertRaises(Unauthorized):
			report_incident(self.booking.id, make_user('stranger'), 'Something happened')

	def test_incidents_cannot_be_deleted(self):
		incident = report_incident(self.booking.id, self.traveler, 'Late pickup')
		with self.assertRaises(NotImplementedError):
			incident.delete()

	def test_share_trip_reaches_email_and_phone(self):
		shared = share_trip(self.booking.id, self.traveler, ['friend@example.com', '+94771234567', ' '])

		self.assertEqual(shared['shared_with'], ['friend@example.com', '+94771234567'])
		self.assertTrue(shared['tracking_link'].endswith(self.booking.booking_reference))
		self.assertEqual(len(mail.outbox), 1)
		self.assertIn(shared['tracking_link'], mail.outbox[0].body)

	def test_share_trip_is_refused_after_the_trip(self):
		Booking.objects.filter(pk=self.booking.pk).update(status=BookingStatus.COMPLETED)
		with self.assertRaises(InvalidTransition):
			share_trip(self.booking.id, self.traveler, ['friend@example.com'])


class BookingApiTests(TestCase):
	def setUp(self):
		cache.clear()
		self.factory = APIRequestFactory()
		self.traveler = make_user('traveler')
		self.guide = make_guide()
		start, end = local_window()
		self.payload = {
			'guide_id': self.guide.id,
			'start': start.isoformat(),
			'end': end.isoformat(),
			'pickup_latitude': COLOMBO[0],
			'pickup_longitude': COLOMBO[1],
		}

	def post(self, view, data, user, **kwargs):
		request = self.factory.post('/api/bookings/', data, format='json')
		force_authenticate(request, user=user)
		return view(request, **kwargs)

	def test_create_then_conflict(self):
		response = self.post(create_booking_view, self.payload, self.traveler)
		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['booking']['status'], 'pending')

		response = self.post(create_booking_view, self.payload, make_user('other'))
		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'scheduling_conflict')

	def test_create_requires_a_provider(self):
		payload = dict(self.payload)
		del payload['guide_id']
		response = self.post(create_booking_view, payload, self.traveler)
		self.assertEqual(response.status_code, 400)

	def test_unknown_action(self):
		booking = make_booking(self.traveler, self.guide, hours_ahead=30)
		response = self.post(booking_action, {}, self.guide.user, booking_id=booking.id, action='teleport')
		self.assertEqual(response.status_code, 404)

	def test_confirm_by_traveler_is_forbidden(self):
		booking = make_booking(self.traveler, self.guide, hours_ahead=30, status=BookingStatus.PENDING)
		response = self.post(booking_action, {}, self.traveler, booking_id=booking.id, action='confirm')
		self.assertEqual(response.status_code, 403)
		self.assertEqual(response.data['error'], 'unauthorized')

	def test_sos_with_garbled_location_still_goes_through(self):
		booking = make_booking(self.traveler, self.guide, hours_ahead=30)
		response = self.post(
			trigger_sos_view, {'latitude': 123.0, 'longitude': 80.0}, self.traveler, booking_id=booking.id
		)
		self.assertEqual(response.status_code, 201)
		self.assertIsNone(response.data['incident']['latitude'])
